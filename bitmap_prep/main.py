"""Command line entry point.

Prepares a single image: bounded decode with orientation correction, an
optional square profile crop and an optional stack blur, then writes the
result. The blur runs through ``TransformPipeline`` so the same background
worker/owning thread hand-off used by interactive clients is exercised.
"""

from __future__ import annotations

import argparse
import os
import sys

from bitmap_prep.errors import BitmapPrepError
from bitmap_prep.image_engine.decoder import crop_profile, load_oriented, write_image
from bitmap_prep.image_engine.raster import RasterImage
from bitmap_prep.image_engine.sources import FileImageSource
from bitmap_prep.logger import get_logger, setup_logger
from bitmap_prep.settings_manager import SettingsManager

logger = get_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bitmap-prep", description="Decode, orient, crop and blur an image")
    parser.add_argument("input", help="Source image file")
    parser.add_argument("output", help="Destination file (format from suffix)")
    parser.add_argument("--settings", help="JSON settings file")
    parser.add_argument("--width", type=int, help="Requested width (default: settings max_width)")
    parser.add_argument("--height", type=int, help="Requested height (default: settings max_height)")
    parser.add_argument("--profile", action="store_true", help="Crop to a square profile picture")
    parser.add_argument("--max-side", type=int, help="Longest side for --profile (default: settings profile_max_side)")
    parser.add_argument("--no-rotate", action="store_true", help="Ignore the EXIF orientation")
    parser.add_argument("--blur", action="store_true", help="Apply a stack blur")
    parser.add_argument("--blur-radius", type=int, help="Blur radius (default: settings blur_radius)")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    return parser


def _apply_cli_logging_options(args: argparse.Namespace) -> None:
    if args.log_level:
        os.environ["BITMAP_PREP_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["BITMAP_PREP_LOG_CATS"] = args.log_cats
    setup_logger()


def blur_in_background(image: RasterImage, radius: int, max_workers: int | None = None) -> RasterImage | None:
    """Blur on a worker thread and wait for delivery on this thread's event loop."""
    from PySide6.QtCore import QCoreApplication

    from bitmap_prep.image_engine.pipeline import ImageTarget, TransformPipeline

    app = QCoreApplication.instance() or QCoreApplication([])
    pipeline = TransformPipeline(max_workers=max_workers)
    target = ImageTarget(token="cli")
    pipeline.delivered.connect(lambda _request: app.quit())
    try:
        pipeline.blur(image, target, radius, source="cli")
        # A submit failure is delivered synchronously; only wait for pending work.
        if pipeline.in_flight:
            app.exec()
    finally:
        pipeline.shutdown(wait=True)
    if target.image is None:
        logger.error("blur failed: %s", target.last_error)
    return target.image


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _apply_cli_logging_options(args)
    settings = SettingsManager(args.settings)

    try:
        source = FileImageSource(args.input)
        if args.profile:
            image = crop_profile(source, args.max_side or settings.profile_max_side)
        else:
            image = load_oriented(
                source,
                args.width or settings.max_width,
                args.height or settings.max_height,
                apply_rotation=settings.apply_rotation and not args.no_rotate,
            )
        if image is None:
            logger.error("could not decode %s", args.input)
            return 1

        if args.blur:
            image = blur_in_background(image, args.blur_radius or settings.blur_radius, settings.max_workers)
            if image is None:
                return 1
    except BitmapPrepError as e:
        logger.error("%s", e)
        return 2

    write_image(image, args.output)
    logger.info("%s -> %s (%sx%s)", args.input, args.output, image.width, image.height)
    return 0


if __name__ == "__main__":
    sys.exit(run())
