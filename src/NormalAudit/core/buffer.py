"""Toroidally indexed texel buffer.

Every neighbor lookup wraps (x mod width, y mod height), i.e. the texture is
assumed to tile. Non-tiling textures are audited the same way; their border
blocks then compare opposite edges of the image.
"""

import logging
from typing import Iterator, NamedTuple, Tuple

import numpy as np

logger = logging.getLogger("normal_audit.buffer")


class BlockCorners(NamedTuple):
    """Corner texels of the 2x2 blocks anchored on a band of rows.

    Each array has shape (rows, width, 4); index [j, x] of ``p10`` is the
    right neighbor of index [j, x] of ``p00``, and so on.
    """

    p00: np.ndarray
    p10: np.ndarray
    p01: np.ndarray
    p11: np.ndarray


class PixelBuffer:
    """A (height, width, 4) float texel grid with wrapped 2D access."""

    def __init__(self, data: np.ndarray, has_height: bool = True):
        """Wrap an existing (H, W, 4) array without copying it."""
        if data.ndim != 3 or data.shape[-1] != 4:
            raise ValueError(f"texel buffer must be HxWx4, got shape {data.shape}")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ValueError(f"texel buffer must not be empty, got shape {data.shape}")
        self.data = data
        self.has_height = bool(has_height)

    @classmethod
    def from_channels(cls, rgb: np.ndarray, height: np.ndarray = None) -> "PixelBuffer":
        """Build a buffer from an (H, W, 3) array and an optional (H, W) height map."""
        h, w = rgb.shape[:2]
        data = np.zeros((h, w, 4), dtype=np.float64)
        data[:, :, :3] = rgb[:, :, :3]
        if height is not None:
            data[:, :, 3] = height
        return cls(data, has_height=height is not None)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    def get(self, x: int, y: int) -> np.ndarray:
        """Return the texel at (x, y), wrapping both coordinates."""
        return self.data[y % self.height, x % self.width]

    def neighbors(self, x: int, y: int) -> BlockCorners:
        """Return the 2x2 block anchored at (x, y) as single texels."""
        return BlockCorners(
            p00=self.get(x, y),
            p10=self.get(x + 1, y),
            p01=self.get(x, y + 1),
            p11=self.get(x + 1, y + 1),
        )

    def rows(self, y0: int, y1: int, dx: int = 0, dy: int = 0) -> np.ndarray:
        """Return rows y0..y1-1 shifted by (dx, dy) with wraparound.

        ``rows(y0, y1, dx, dy)[j, x]`` is ``get(x + dx, y0 + j + dy)``.
        """
        index = np.arange(y0 + dy, y1 + dy)
        band = np.take(self.data, index, axis=0, mode="wrap")
        if dx:
            band = np.roll(band, -dx, axis=1)
        return band

    def corners(self, y0: int, y1: int) -> BlockCorners:
        """Return the four corners of every block anchored in rows y0..y1-1."""
        return BlockCorners(
            p00=self.rows(y0, y1),
            p10=self.rows(y0, y1, dx=1),
            p01=self.rows(y0, y1, dy=1),
            p11=self.rows(y0, y1, dx=1, dy=1),
        )

    def bands(self, band_rows: int) -> Iterator[Tuple[int, int]]:
        """Yield (y0, y1) row ranges covering the buffer."""
        step = max(int(band_rows), 1)
        for y0 in range(0, self.height, step):
            yield y0, min(y0 + step, self.height)
