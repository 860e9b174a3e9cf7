"""Image Engine - decode, orient, crop and blur rasters.

This package provides the processing stages:
- Sample size policies (sampling)
- EXIF orientation (orientation)
- Image sources and bounded decoding (sources, decoder)
- Square cropping (crop)
- Stack blur (stackblur)
- Background transforms delivered on the owning thread (pipeline)

Usage:
    from bitmap_prep.image_engine import crop_to_square, load_oriented, stack_blur

    image = load_oriented("/path/to/photo.jpg", 640, 640)
    square = crop_to_square(image)
    blurred = stack_blur(square, 24)

The pipeline module requires PySide6 and is imported explicitly:
    from bitmap_prep.image_engine.pipeline import ImageTarget, TransformPipeline
"""

from .crop import CropGeometry, crop_geometry, crop_profile_image, crop_to_square
from .decoder import crop_profile, decode_sampled, load_bounded, load_oriented
from .orientation import Orientation, resolve_rotation
from .raster import RasterImage
from .sampling import DecodeBounds, bounded_max, fit_inside, next_lower_power_of_two
from .stackblur import BLUR_RADIUS, stack_blur

__all__ = [
    "BLUR_RADIUS",
    "CropGeometry",
    "DecodeBounds",
    "Orientation",
    "RasterImage",
    "bounded_max",
    "crop_geometry",
    "crop_profile",
    "crop_profile_image",
    "crop_to_square",
    "decode_sampled",
    "fit_inside",
    "load_bounded",
    "load_oriented",
    "next_lower_power_of_two",
    "resolve_rotation",
    "stack_blur",
]
