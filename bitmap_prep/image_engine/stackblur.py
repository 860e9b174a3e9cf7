"""Stack Blur.

Stack Blur Algorithm by Mario Klingemann <mario@quasimondo.com>

A compromise between Gaussian and box blur: each output channel value is a
triangularly weighted mean of the ``2 * radius + 1`` neighbours along a line
(weights ``radius + 1 - |offset|``), with edge pixels repeated instead of
wrapping or padding with zeros. The weighted sum is maintained incrementally
with a ring buffer (the "stack"): every step adds one incoming sample on the
right and retires one on the left, so the cost per pixel does not depend on
the radius.

The filter is separable. The horizontal pass walks all rows in lock-step,
holding one numpy vector per stack slot; the vertical pass runs the same
routine over the transposed intermediate result. All arithmetic is integer
and the final division goes through a lookup table, so identical inputs
always give identical outputs. Alpha is copied through untouched.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from bitmap_prep.logger import get_logger

from .metrics import metrics
from .raster import RGB_CHANNELS, RasterImage

_logger = get_logger("stackblur")

BLUR_RADIUS = 110

_ALPHA_MASK = np.uint32(0xFF000000)


@lru_cache(maxsize=8)
def division_table(radius: int) -> np.ndarray:
    """Map a weighted channel sum to its 0-255 mean.

    The weights of a window sum to ``(radius + 1) ** 2``, so the table has
    ``256 * (radius + 1) ** 2`` entries. Tables are shared between calls.
    """
    div = radius + radius + 1
    divsum = ((div + 1) >> 1) ** 2
    table = (np.arange(256 * divsum, dtype=np.int64) // divsum).astype(np.uint8)
    table.setflags(write=False)
    return table


def _blur_lines(channels: np.ndarray, radius: int, table: np.ndarray) -> np.ndarray:
    """Blur an ``(lines, length, 3)`` int64 array along axis 1."""
    lines, length, _ = channels.shape
    last = length - 1
    div = radius + radius + 1
    r1 = radius + 1

    stack = np.empty((div, lines, RGB_CHANNELS), dtype=np.int64)
    total = np.zeros((lines, RGB_CHANNELS), dtype=np.int64)
    in_sum = np.zeros_like(total)
    out_sum = np.zeros_like(total)

    for i in range(-radius, radius + 1):
        sample = channels[:, min(last, max(i, 0))]
        stack[i + radius] = sample
        total += sample * (r1 - abs(i))
        if i > 0:
            in_sum += sample
        else:
            out_sum += sample

    out = np.empty((lines, length, RGB_CHANNELS), dtype=np.uint8)
    pointer = radius
    for x in range(length):
        out[:, x] = table[total]

        total -= out_sum
        slot = stack[(pointer - radius + div) % div]
        out_sum -= slot

        incoming = channels[:, min(x + r1, last)]
        slot[...] = incoming
        in_sum += incoming
        total += in_sum

        pointer = (pointer + 1) % div
        slot = stack[pointer]
        out_sum += slot
        in_sum -= slot

    return out


def stack_blur(image: RasterImage, radius: int = BLUR_RADIUS) -> RasterImage | None:
    """Blur the RGB channels of ``image``; returns None when ``radius < 1``."""
    if radius < 1:
        return None

    argb = image.pixels
    rgb = np.stack(((argb >> 16) & 0xFF, (argb >> 8) & 0xFF, argb & 0xFF), axis=-1).astype(np.int64)
    table = division_table(radius)

    with metrics.timed("stackblur.duration"):
        horizontal = _blur_lines(rgb, radius, table)
        vertical = _blur_lines(horizontal.transpose(1, 0, 2).astype(np.int64), radius, table)

    blurred = vertical.transpose(1, 0, 2).astype(np.uint32)
    out = (argb & _ALPHA_MASK) | (blurred[..., 0] << 16) | (blurred[..., 1] << 8) | blurred[..., 2]
    _logger.debug("stack_blur %sx%s radius=%s", image.width, image.height, radius)
    return RasterImage(image.width, image.height, out)
