import numpy as np

from bitmap_prep.image_engine.decoder import load_oriented
from bitmap_prep.image_engine.metrics import metrics
from bitmap_prep.image_engine.raster import RasterImage
from bitmap_prep.image_engine.stackblur import stack_blur


def test_metrics_counters_and_timings() -> None:
    metrics.reset()
    metrics.inc("a")
    metrics.inc("a", 2)
    with metrics.timed("t"):
        pass
    snap = metrics.snapshot()
    assert snap["counters"] == {"a": 3}
    assert len(snap["timings"]["t"]) == 1
    assert metrics.count("missing") == 0


def test_metrics_record_decode_and_blur() -> None:
    metrics.reset()
    image = RasterImage(4, 4, np.arange(16, dtype=np.uint32) | 0xFF000000)
    load_oriented(image, 2, 2)
    stack_blur(image, 1)
    snap = metrics.snapshot()
    assert snap["counters"].get("decoder.decoded") == 1
    assert "stackblur.duration" in snap["timings"]
