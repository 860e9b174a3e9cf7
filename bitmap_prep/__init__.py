"""bitmap_prep - memory-bounded image preparation for profile pictures."""

__version__ = "1.0.0"
