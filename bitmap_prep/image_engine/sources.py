"""Image sources: bounds probing and sampled decoding.

Every source supports three operations:

- ``probe()`` returns the full-resolution ``DecodeBounds`` without
  materialising pixels, or ``None`` if the source is missing/unreadable.
- ``decode(sample_size)`` returns a ``RasterImage`` downscaled by the integer
  sample size, or ``None`` on failure.
- ``orientation()`` returns the EXIF orientation, NORMAL when unknown.

Failures never raise; they are logged and reported as ``None``.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any, Protocol

import numpy as np

from bitmap_prep.errors import check_argument
from bitmap_prep.logger import get_logger

from .orientation import Orientation, orientation_of, read_exif_orientation
from .raster import RGB_CHANNELS, RGBA_CHANNELS, RasterImage
from .sampling import DecodeBounds
from .vips import get_pyvips_module

_logger = get_logger("sources")

# Sample sizes the JPEG loader can apply while decoding DCT blocks.
_JPEG_SHRINK_FACTORS = (2, 4, 8)


class ImageSource(Protocol):
    def probe(self) -> DecodeBounds | None: ...

    def decode(self, sample_size: int) -> RasterImage | None: ...

    def orientation(self) -> Orientation: ...


def vips_to_raster(image: Any) -> RasterImage:
    """Convert a pyvips image into an ARGB ``RasterImage``."""
    if image.interpretation not in ("srgb", "b-w"):
        image = image.colourspace("srgb")

    if image.hasalpha():
        colour = image.extract_band(0, n=image.bands - 1)
        alpha = image.extract_band(image.bands - 1)
    else:
        colour, alpha = image, None

    if colour.bands < RGB_CHANNELS:
        grey = colour.extract_band(0)
        colour = grey.bandjoin([grey] * (RGB_CHANNELS - 1))
    elif colour.bands > RGB_CHANNELS:
        colour = colour.extract_band(0, n=RGB_CHANNELS)

    image = colour.bandjoin(alpha) if alpha is not None else colour.bandjoin_const([255])
    if image.format != "uchar":
        image = image.cast("uchar")

    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, RGBA_CHANNELS)
    return RasterImage.from_rgba(array)


class _VipsImageSource(ABC):
    """Shared decode path for pyvips-backed sources."""

    @abstractmethod
    def _open(self, **kwargs: Any) -> Any:
        """Open the underlying pyvips image; loader options go in ``kwargs``."""

    def _loader_name(self) -> str:
        return ""

    def probe(self) -> DecodeBounds | None:
        try:
            image = self._open()
            return DecodeBounds(image.width, image.height)
        except Exception as e:
            _logger.debug("probe failed: %s: %s", self, e)
            return None

    def decode(self, sample_size: int) -> RasterImage | None:
        check_argument(sample_size >= 1, f"sample size must be >= 1, got {sample_size}")
        try:
            if sample_size in _JPEG_SHRINK_FACTORS and "Jpeg" in self._loader_name():
                image = self._open(shrink=sample_size)
            else:
                image = self._open()
                if sample_size > 1:
                    image = image.shrink(sample_size, sample_size)
            raster = vips_to_raster(image)
        except Exception as e:
            _logger.debug("decode failed: %s sample=%s: %s", self, sample_size, e)
            return None
        _logger.debug("decoded %s sample=%s -> %sx%s", self, sample_size, raster.width, raster.height)
        return raster


class FileImageSource(_VipsImageSource):
    def __init__(self, path: str | os.PathLike[str]):
        check_argument(bool(str(path)), "image path must not be empty")
        self.path = str(path)

    def _open(self, **kwargs: Any) -> Any:
        if not os.path.isfile(self.path):
            raise FileNotFoundError(self.path)
        pyvips = get_pyvips_module()
        return pyvips.Image.new_from_file(self.path, access="sequential", **kwargs)

    def _loader_name(self) -> str:
        try:
            return get_pyvips_module().Image.find_load(self.path) or ""
        except Exception:
            return ""

    def orientation(self) -> Orientation:
        return read_exif_orientation(self.path)

    def __str__(self) -> str:
        return self.path


class BufferImageSource(_VipsImageSource):
    """Encoded image bytes already held in memory."""

    def __init__(self, data: bytes, name: str = "<buffer>"):
        check_argument(bool(data), "image buffer must not be empty")
        self.data = bytes(data)
        self.name = name

    def _open(self, **kwargs: Any) -> Any:
        pyvips = get_pyvips_module()
        return pyvips.Image.new_from_buffer(self.data, "", access="sequential", **kwargs)

    def _loader_name(self) -> str:
        try:
            return get_pyvips_module().Image.find_load_buffer(self.data) or ""
        except Exception:
            return ""

    def orientation(self) -> Orientation:
        try:
            return orientation_of(self._open())
        except Exception as e:
            _logger.warning("orientation read failed for %s: %s", self.name, e)
            return Orientation.NORMAL

    def __str__(self) -> str:
        return self.name


class RasterImageSource:
    """An already-decoded raster exposed as a source.

    Sampling keeps every ``sample_size``-th pixel on both axes.
    """

    def __init__(self, image: RasterImage, orientation: Orientation = Orientation.NORMAL):
        self.image = image
        self._orientation = orientation

    def probe(self) -> DecodeBounds | None:
        return DecodeBounds(self.image.width, self.image.height)

    def decode(self, sample_size: int) -> RasterImage | None:
        check_argument(sample_size >= 1, f"sample size must be >= 1, got {sample_size}")
        if sample_size == 1:
            return self.image
        sampled = np.ascontiguousarray(self.image.pixels[::sample_size, ::sample_size])
        return RasterImage(sampled.shape[1], sampled.shape[0], sampled)

    def orientation(self) -> Orientation:
        return self._orientation

    def __str__(self) -> str:
        return f"<raster {self.image.width}x{self.image.height}>"
