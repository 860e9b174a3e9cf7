"""EXIF orientation handling."""

from __future__ import annotations

from enum import IntEnum

from bitmap_prep.logger import get_logger

from .metrics import metrics
from .vips import get_pyvips_module

_logger = get_logger("orientation")

_ORIENTATION_FIELD = "orientation"


class Orientation(IntEnum):
    """EXIF orientation tag values that map to a pure rotation."""

    UNDEFINED = 0
    NORMAL = 1
    ROTATE_180 = 3
    ROTATE_90 = 6
    ROTATE_270 = 8


# Clockwise degrees needed to display the raster upright.
_ROTATIONS: dict[int, int] = {
    Orientation.ROTATE_90: 90,
    Orientation.ROTATE_180: 180,
    Orientation.ROTATE_270: 270,
}


def resolve_rotation(orientation: int) -> int:
    """Map an orientation code to a rotation angle; unknown codes map to 0."""
    return _ROTATIONS.get(int(orientation), 0)


def to_orientation(code: int) -> Orientation:
    try:
        return Orientation(int(code))
    except ValueError:
        return Orientation.NORMAL


def orientation_of(image) -> Orientation:
    """Orientation stored in the metadata of an opened pyvips image."""
    if image.get_typeof(_ORIENTATION_FIELD) == 0:
        return Orientation.NORMAL
    return to_orientation(image.get(_ORIENTATION_FIELD))


def read_exif_orientation(path: str) -> Orientation:
    """Read the EXIF orientation of the image at ``path``.

    Never raises: a missing tag or an unreadable file yields NORMAL.
    """
    try:
        pyvips = get_pyvips_module()
        orientation = orientation_of(pyvips.Image.new_from_file(path))
    except Exception as e:
        metrics.inc("orientation.read_failed")
        _logger.warning("orientation read failed for %s: %s", path, e)
        return Orientation.NORMAL
    _logger.debug("image orientation: path=%s orientation=%s", path, orientation.name)
    return orientation
