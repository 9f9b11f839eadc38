"""Map stored channel values to tangent-space normal components and back."""

import logging

import numpy as np

from ..core import PixelBuffer

logger = logging.getLogger("normal_audit.decode")


def decode_normals(buffer: PixelBuffer, center: float, value_range: float,
                   invert_y: bool = False) -> PixelBuffer:
    """Decode channels 0-2 in place: ``n = (stored - center) / range``.

    The height channel is left untouched. Returns the same buffer.
    """
    normals = buffer.data[:, :, :3]
    normals -= center
    normals /= value_range
    if invert_y:
        normals[:, :, 1] *= -1.0
    logger.debug(
        "Decoded %dx%d normals (center=%.6f, range=%.6f, invert_y=%s)",
        buffer.width, buffer.height, center, value_range, invert_y,
    )
    return buffer


def encode_normals(normals: np.ndarray, center: float, value_range: float,
                   invert_y: bool = False) -> np.ndarray:
    """Inverse of `decode_normals` for an (..., 3) array; returns a new array."""
    encoded = np.array(normals, dtype=np.float64, copy=True)
    if invert_y:
        encoded[..., 1] *= -1.0
    return encoded * value_range + center
