"""Decode-time sample size calculation.

A sample size is the integer divisor a decoder applies to both axes while
reading an image, so a 4000x3000 photo decoded with sample size 4 is
materialised at roughly 1000x750.

Two policies are provided:

- ``fit_inside`` keeps the decoded image at least as large as the requested
  size and snaps factors above 3 down to a power of two, which decoders can
  serve through their fast path.
- ``bounded_max`` guarantees the longest side does not exceed a hard limit;
  factors are not snapped, so the result may be noticeably smaller.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from bitmap_prep.errors import check_argument

# Factors up to this value are kept exact.
EXACT_SAMPLE_LIMIT = 3


@dataclass(frozen=True)
class DecodeBounds:
    """Source dimensions reported by a bounds-only probe."""

    out_width: int
    out_height: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & -n) == n


def next_lower_power_of_two(n: int) -> int:
    """Largest power of two that is <= ``n``. Returns 1 for ``n == 0``."""
    check_argument(n >= 0, f"next_lower_power_of_two requires n >= 0, got {n}")
    if n == 0:
        return 1
    return 1 << (n.bit_length() - 1)


def fit_inside(bounds: DecodeBounds, req_width: int, req_height: int) -> int:
    check_argument(req_width > 0 and req_height > 0, f"invalid requested size {req_width}x{req_height}")
    height = bounds.out_height
    width = bounds.out_width
    sample = 1

    if height > req_height or width > req_width:
        if width > height:
            sample = _round_half_up(height / req_height)
        else:
            sample = _round_half_up(width / req_width)

    if sample > EXACT_SAMPLE_LIMIT and not is_power_of_two(sample):
        sample = next_lower_power_of_two(sample)

    return max(1, sample)


def bounded_max(bounds: DecodeBounds, max_side: int) -> int:
    check_argument(max_side > 0, f"max_side must be positive, got {max_side}")
    height = bounds.out_height
    width = bounds.out_width
    sample = 1

    if height > max_side or width > max_side:
        longest = width if width > height else height
        sample = math.ceil(longest / max_side)

    return sample
