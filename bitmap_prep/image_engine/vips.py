"""Lazy access to pyvips.

pyvips loads libvips through cffi at import time, which is slow and may fail
on machines without the native library. Import it on first use so pure
modules (sampling, crop, stackblur) work without it.
"""

import contextlib
from typing import Any

_pyvips: Any | None = None


def get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        # Decoded rasters are handed over as numpy buffers; the libvips
        # operation cache would only keep duplicates alive.
        with contextlib.suppress(Exception):
            pyvips.cache_set_max(0)
            pyvips.cache_set_max_mem(0)
            pyvips.cache_set_max_files(0)
        _pyvips = pyvips
    return _pyvips
