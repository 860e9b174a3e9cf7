"""Bounded decoding with orientation correction.

This module turns an image source into a ``RasterImage`` that is no larger
than needed: the source is probed first, a sample size is derived from the
requested dimensions and the image is decoded at that reduced size before
any rotation or cropping happens.

Decode failures are reported as ``None`` so callers can show a placeholder;
only invalid arguments raise.
"""

from __future__ import annotations

import os
from typing import Any

from bitmap_prep.errors import InvalidArgument, check_argument
from bitmap_prep.logger import get_logger

from .crop import crop_to_square
from .metrics import metrics
from .orientation import resolve_rotation
from .raster import RGBA_CHANNELS, RasterImage
from .sampling import bounded_max, fit_inside
from .sources import BufferImageSource, FileImageSource, ImageSource, RasterImageSource
from .vips import get_pyvips_module

_logger = get_logger("decoder")

MAX_WIDTH = 1280
MAX_HEIGHT = 1280


def as_source(source: Any) -> ImageSource:
    """Wrap paths, encoded bytes and rasters; pass other sources through."""
    if source is None:
        raise InvalidArgument("image source must not be None")
    if isinstance(source, (str, os.PathLike)):
        return FileImageSource(source)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return BufferImageSource(bytes(source))
    if isinstance(source, RasterImage):
        return RasterImageSource(source)
    return source


def _decode_at(source: ImageSource, sample_size: int) -> RasterImage | None:
    image = source.decode(sample_size)
    if image is None:
        metrics.inc("decoder.decode_failed")
        _logger.debug("decode failed: %s sample=%s", source, sample_size)
    else:
        metrics.inc("decoder.decoded")
    return image


def _probe(source: ImageSource):
    bounds = source.probe()
    if bounds is None:
        metrics.inc("decoder.not_found")
        _logger.debug("probe failed (missing or unreadable): %s", source)
    return bounds


def decode_sampled(source: Any, req_width: int = MAX_WIDTH, req_height: int = MAX_HEIGHT) -> RasterImage | None:
    """Decode an image big enough to fit ``req_width`` x ``req_height``, ignoring orientation."""
    src = as_source(source)
    bounds = _probe(src)
    if bounds is None:
        return None
    return _decode_at(src, fit_inside(bounds, req_width, req_height))


def load_oriented(
    source: Any, req_width: int = MAX_WIDTH, req_height: int = MAX_HEIGHT, apply_rotation: bool = True
) -> RasterImage | None:
    """Decode ``source`` at a bounded resolution and rotate it upright.

    When ``apply_rotation`` is set the EXIF orientation is honoured; for
    quarter turns the requested width and height are swapped before sizing,
    since they describe the upright frame.
    """
    src = as_source(source)
    bounds = _probe(src)
    if bounds is None:
        return None

    rotation = 0
    if apply_rotation:
        orientation = src.orientation()
        rotation = resolve_rotation(orientation)
        _logger.debug("orientation: %s -> rotation=%s", orientation, rotation)
        if rotation in (90, 270):
            req_width, req_height = req_height, req_width

    sample_size = fit_inside(bounds, req_width, req_height)
    decoded = _decode_at(src, sample_size)
    if decoded is None or rotation == 0:
        return decoded

    rotated = decoded.rotated(rotation)
    del decoded
    return rotated


def load_bounded(source: Any, max_side: int) -> RasterImage | None:
    """Decode ``source`` so that neither side exceeds ``max_side`` by more than rounding."""
    check_argument(max_side > 0, f"max_side must be positive, got {max_side}")
    src = as_source(source)
    bounds = _probe(src)
    if bounds is None:
        return None
    return _decode_at(src, bounded_max(bounds, max_side))


def crop_profile(source: Any, max_side: int) -> RasterImage | None:
    """Decode, orient and square-crop ``source`` for use as a profile picture.

    The sample size is chosen memory-first (``bounded_max``), so the result
    may be smaller than ``max_side``.
    """
    check_argument(max_side > 0, f"max_side must be positive, got {max_side}")
    src = as_source(source)
    bounds = _probe(src)
    if bounds is None:
        return None
    rotation = resolve_rotation(src.orientation())
    decoded = _decode_at(src, bounded_max(bounds, max_side))
    if decoded is None:
        return None
    return crop_to_square(decoded, rotation)


def raster_to_vips(image: RasterImage) -> Any:
    pyvips = get_pyvips_module()
    rgba = image.to_rgba()
    vimg = pyvips.Image.new_from_memory(rgba.tobytes(), image.width, image.height, RGBA_CHANNELS, "uchar")
    return vimg.copy(interpretation="srgb")


def encode_png(image: RasterImage) -> bytes:
    return bytes(raster_to_vips(image).write_to_buffer(".png"))


def write_image(image: RasterImage, path: str | os.PathLike[str]) -> str:
    """Write ``image`` to ``path``; the format follows the file suffix."""
    out_path = str(path)
    vimg = raster_to_vips(image)
    if os.path.splitext(out_path)[1].lower() in (".jpg", ".jpeg"):
        vimg = vimg.flatten(background=[255, 255, 255])
    vimg.write_to_file(out_path)
    _logger.debug("wrote %s (%sx%s)", out_path, image.width, image.height)
    return out_path
