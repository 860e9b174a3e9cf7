"""In-memory raster images.

A ``RasterImage`` holds one packed 32-bit ARGB value per pixel in a
row-major numpy array of shape ``(height, width)``. Images are read-only
once constructed; a stage that needs to mutate pixels works on its own copy
and wraps the result in a new image.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from bitmap_prep.errors import InvalidArgument, check_argument

BYTES_PER_PIXEL = 4
RGBA_CHANNELS = 4
RGB_CHANNELS = 3
ROTATION_ANGLES = (0, 90, 180, 270)


def estimate_byte_size(width: int, height: int) -> int:
    """Expected memory occupation of an ARGB image of the given size."""
    return width * height * BYTES_PER_PIXEL


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Immutable ARGB raster.

    The pixel buffer is adopted, not copied: it is coerced to a contiguous
    ``uint32`` array and flagged read-only, so the producer must not keep
    writing to it after handing it over.
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        check_argument(self.width > 0 and self.height > 0, f"invalid raster size {self.width}x{self.height}")
        pixels = np.ascontiguousarray(self.pixels, dtype=np.uint32)
        if pixels.size != self.width * self.height:
            raise InvalidArgument(
                f"pixel buffer holds {pixels.size} values, expected {self.width * self.height}"
            )
        pixels = pixels.reshape(self.height, self.width)
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    # ---- constructors ---------------------------------------------
    @classmethod
    def filled(cls, width: int, height: int, argb: int) -> RasterImage:
        check_argument(width > 0 and height > 0, f"invalid raster size {width}x{height}")
        return cls(width, height, np.full((height, width), argb & 0xFFFFFFFF, dtype=np.uint32))

    @classmethod
    def from_rgba(cls, array: np.ndarray) -> RasterImage:
        """Pack an ``(h, w, 4)`` or ``(h, w, 3)`` uint8 array into ARGB."""
        if array.ndim != 3 or array.shape[2] not in (RGB_CHANNELS, RGBA_CHANNELS):
            raise InvalidArgument(f"expected (h, w, 3|4) array, got shape {array.shape}")
        h, w = array.shape[:2]
        chans = array.astype(np.uint32)
        if array.shape[2] == RGBA_CHANNELS:
            alpha = chans[..., 3]
        else:
            alpha = np.full((h, w), 0xFF, dtype=np.uint32)
        packed = (alpha << 24) | (chans[..., 0] << 16) | (chans[..., 1] << 8) | chans[..., 2]
        return cls(w, h, packed)

    # ---- accessors ------------------------------------------------
    @property
    def byte_size(self) -> int:
        return estimate_byte_size(self.width, self.height)

    @property
    def is_square(self) -> bool:
        return self.width == self.height

    @property
    def alpha(self) -> np.ndarray:
        return (self.pixels >> 24).astype(np.uint8)

    def to_rgba(self) -> np.ndarray:
        """Unpack into a fresh ``(h, w, 4)`` uint8 array in RGBA order."""
        p = self.pixels
        out = np.empty((self.height, self.width, RGBA_CHANNELS), dtype=np.uint8)
        out[..., 0] = (p >> 16) & 0xFF
        out[..., 1] = (p >> 8) & 0xFF
        out[..., 2] = p & 0xFF
        out[..., 3] = p >> 24
        return out

    def same_pixels(self, other: RasterImage) -> bool:
        return self.width == other.width and self.height == other.height and np.array_equal(self.pixels, other.pixels)

    # ---- transforms -----------------------------------------------
    def rotated(self, angle: int) -> RasterImage:
        """Return this image rotated clockwise by a multiple of 90 degrees.

        A zero angle returns ``self``; any other angle allocates a new buffer.
        """
        check_argument(angle in ROTATION_ANGLES, f"unsupported rotation angle {angle}")
        if angle == 0:
            return self
        turned = np.ascontiguousarray(np.rot90(self.pixels, k=-(angle // 90)))
        return RasterImage(turned.shape[1], turned.shape[0], turned)

    def __repr__(self) -> str:
        return f"RasterImage({self.width}x{self.height})"
