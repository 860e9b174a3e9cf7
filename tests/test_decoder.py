from pathlib import Path

import numpy as np
import pytest

from bitmap_prep.errors import InvalidArgument
from bitmap_prep.image_engine.decoder import (
    as_source,
    crop_profile,
    decode_sampled,
    encode_png,
    load_bounded,
    load_oriented,
    write_image,
)
from bitmap_prep.image_engine.metrics import metrics
from bitmap_prep.image_engine.orientation import Orientation
from bitmap_prep.image_engine.raster import RasterImage
from bitmap_prep.image_engine.sampling import DecodeBounds
from bitmap_prep.image_engine.sources import FileImageSource, RasterImageSource, _VipsImageSource


class _RecordingSource:
    """Source with fixed bounds that records the sample sizes it is asked for."""

    def __init__(self, width: int, height: int, orientation=Orientation.NORMAL, readable: bool = True):
        self.bounds = DecodeBounds(width, height)
        self._orientation = orientation
        self.readable = readable
        self.samples: list[int] = []
        self.orientation_reads = 0

    def probe(self):
        return self.bounds

    def decode(self, sample_size: int):
        self.samples.append(sample_size)
        if not self.readable:
            return None
        return RasterImage.filled(self.bounds.out_width // sample_size, self.bounds.out_height // sample_size, 0xFF102030)

    def orientation(self):
        self.orientation_reads += 1
        return self._orientation


class _MissingSource(_RecordingSource):
    def probe(self):
        return None


def _indexed(width: int, height: int) -> RasterImage:
    ys, xs = np.mgrid[0:height, 0:width]
    return RasterImage(width, height, (0xFF000000 | (ys * 1000 + xs)).astype(np.uint32))


def test_load_oriented_without_rotation() -> None:
    src = _RecordingSource(1000, 500)
    out = load_oriented(src, 100, 100)
    assert src.samples == [4]
    assert (out.width, out.height) == (250, 125)


def test_load_oriented_swaps_request_for_quarter_turns() -> None:
    src = _RecordingSource(1000, 500, Orientation.ROTATE_90)
    out = load_oriented(src, 100, 300)
    # swapped to (300, 100): round(500 / 100) == 5 -> 4
    assert src.samples == [4]
    assert (out.width, out.height) == (125, 250)


def test_load_oriented_half_turn_keeps_request() -> None:
    src = _RecordingSource(1000, 500, Orientation.ROTATE_180)
    out = load_oriented(src, 100, 300)
    # unswapped, landscape uses height: round(500 / 300) == 2
    assert src.samples == [2]
    assert (out.width, out.height) == (500, 250)


def test_load_oriented_ignores_orientation_when_disabled() -> None:
    src = _RecordingSource(1000, 500, Orientation.ROTATE_90)
    out = load_oriented(src, 100, 300, apply_rotation=False)
    assert src.orientation_reads == 0
    assert src.samples == [2]
    assert (out.width, out.height) == (500, 250)


def test_load_oriented_rotates_pixels_clockwise() -> None:
    image = _indexed(4, 2)
    out = load_oriented(RasterImageSource(image, Orientation.ROTATE_90), 10, 10)
    assert (out.width, out.height) == (2, 4)
    assert out.pixels[0, 0] == image.pixels[1, 0]


def test_missing_source_reports_none() -> None:
    metrics.reset()
    assert load_oriented(_MissingSource(10, 10), 5, 5) is None
    assert metrics.count("decoder.not_found") == 1


def test_unreadable_source_reports_none() -> None:
    metrics.reset()
    assert load_oriented(_RecordingSource(10, 10, readable=False), 5, 5) is None
    assert decode_sampled(_RecordingSource(10, 10, readable=False), 5, 5) is None
    assert metrics.count("decoder.decode_failed") == 2


def test_none_source_is_invalid() -> None:
    with pytest.raises(InvalidArgument):
        load_oriented(None, 10, 10)


def test_decode_sampled_uses_fit_inside() -> None:
    src = _RecordingSource(100, 100, Orientation.ROTATE_90)
    decode_sampled(src, 50, 50)
    assert src.samples == [2]
    assert src.orientation_reads == 0


def test_load_bounded_uses_ceil_policy() -> None:
    src = _RecordingSource(1000, 400)
    out = load_bounded(src, 300)
    assert src.samples == [4]
    assert out.width <= 300


def test_crop_profile_decodes_bounded_and_squares() -> None:
    src = _RecordingSource(1000, 400, Orientation.ROTATE_270)
    out = crop_profile(src, 300)
    assert src.samples == [4]
    assert out.width == out.height == 100


def test_crop_profile_rejects_bad_side() -> None:
    with pytest.raises(InvalidArgument):
        crop_profile(_RecordingSource(10, 10), 0)


def test_crop_profile_missing_source_skips_orientation(tmp_path: Path) -> None:
    src = _MissingSource(10, 10, Orientation.ROTATE_90)
    assert crop_profile(src, 5) is None
    assert src.orientation_reads == 0

    metrics.reset()
    assert crop_profile(str(tmp_path / "nope.jpg"), 5) is None
    assert metrics.count("decoder.not_found") == 1
    assert metrics.count("orientation.read_failed") == 0


def test_vips_source_requires_open() -> None:
    class _NoOpen(_VipsImageSource):
        def orientation(self):
            return Orientation.NORMAL

    with pytest.raises(TypeError):
        _NoOpen()


def test_raster_source_sampling() -> None:
    image = _indexed(9, 5)
    src = as_source(image)
    assert isinstance(src, RasterImageSource)
    assert src.decode(1) is image
    half = src.decode(2)
    assert (half.width, half.height) == (5, 3)
    assert half.pixels[1, 1] == image.pixels[2, 2]


def test_as_source_wraps_paths(tmp_path: Path) -> None:
    src = as_source(tmp_path / "a.png")
    assert isinstance(src, FileImageSource)
    assert src.path.endswith("a.png")


def test_missing_file_decodes_to_none(tmp_path: Path) -> None:
    assert load_oriented(str(tmp_path / "nope.jpg"), 10, 10) is None


# ---- pyvips-backed files ---------------------------------------------


def _write_rgb(pyvips, path: Path, width: int, height: int, orientation: int | None = None) -> None:
    x = pyvips.Image.xyz(width, height)
    r = (x.extract_band(0) * 255 / max(1, width - 1)).cast("uchar")
    g = (x.extract_band(1) * 255 / max(1, height - 1)).cast("uchar")
    b = (r * 0 + 77).cast("uchar")
    image = r.bandjoin([g, b]).copy(interpretation="srgb")
    if orientation is not None:
        image = image.copy()
        image.set_type(pyvips.GValue.gint_type, "orientation", orientation)
    image.write_to_file(str(path))


def test_file_source_probe_and_decode(tmp_path: Path) -> None:
    pyvips = pytest.importorskip("pyvips")
    path = tmp_path / "wide.png"
    _write_rgb(pyvips, path, 64, 32)

    src = FileImageSource(path)
    assert src.probe() == DecodeBounds(64, 32)
    full = src.decode(1)
    assert (full.width, full.height) == (64, 32)
    assert np.all(full.alpha == 255)
    half = src.decode(2)
    assert (half.width, half.height) == (32, 16)


def test_file_source_reports_unreadable_file(tmp_path: Path) -> None:
    pytest.importorskip("pyvips")
    path = tmp_path / "broken.png"
    path.write_bytes(b"not an image")
    src = FileImageSource(path)
    assert src.probe() is None
    assert src.decode(1) is None
    assert load_oriented(src, 10, 10) is None


def test_load_oriented_jpeg_with_exif_rotation(tmp_path: Path) -> None:
    pyvips = pytest.importorskip("pyvips")
    path = tmp_path / "rotated.jpg"
    _write_rgb(pyvips, path, 40, 20, orientation=6)

    out = load_oriented(str(path), 100, 100)
    assert (out.width, out.height) == (20, 40)


def test_crop_profile_from_file(tmp_path: Path) -> None:
    pyvips = pytest.importorskip("pyvips")
    path = tmp_path / "tall.png"
    _write_rgb(pyvips, path, 30, 90)

    out = crop_profile(str(path), 45)
    # ceil(90 / 45) == 2 -> 15x45 -> 15x15
    assert out.width == out.height == 15


def test_encode_and_write(tmp_path: Path) -> None:
    pyvips = pytest.importorskip("pyvips")
    image = _indexed(6, 4)
    data = encode_png(image)
    assert data.startswith(b"\x89PNG")

    out_path = write_image(image, tmp_path / "out.png")
    back = FileImageSource(out_path).decode(1)
    assert back.same_pixels(image)
    assert pyvips.Image.new_from_file(out_path).width == 6
