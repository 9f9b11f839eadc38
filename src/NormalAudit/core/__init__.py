"""Core utilities -- re-exports all public symbols for convenience."""

from .buffer import PixelBuffer, BlockCorners
from .io import (
    ImageDecodeError,
    DiagnosticWriteError,
    load_image,
    load_texels,
    save_diagnostic_image,
)
from .scanning import scan_images, output_path_for
from .logging import setup_logging

__all__ = [
    "PixelBuffer", "BlockCorners",
    "ImageDecodeError", "DiagnosticWriteError",
    "load_image", "load_texels", "save_diagnostic_image",
    "scan_images", "output_path_for",
    "setup_logging",
]
