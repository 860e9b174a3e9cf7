"""Exceptions raised by bitmap_prep.

Decode failures are not exceptions: decoders return ``None`` so callers can
fall back to a placeholder. Only invalid arguments fail fast.
"""


class BitmapPrepError(Exception):
    """Base class for all bitmap_prep errors."""


class InvalidArgument(BitmapPrepError, ValueError):
    """A caller passed a value outside the accepted domain."""


def check_argument(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidArgument(message)
