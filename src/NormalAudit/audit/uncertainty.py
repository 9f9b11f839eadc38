"""Propagate quantization uncertainty and keep only unexplained residuals.

Stored channels are integer codes, so every decoded value is only known to
within half a code step. A residual no larger than the uncertainty propagated
from its inputs is noise, not error: only the excess is counted.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from ..core import BlockCorners
from .curl import BlockIntegrals
from .regression import FitParameters

logger = logging.getLogger("normal_audit.uncertainty")


def ratio_e(n, d, e):
    """Half-width of the interval of ``n / d`` when both are known to +-e.

    Non-negative whenever ``|d| > e``.
    """
    n = np.abs(np.asarray(n, dtype=np.float64))
    d = np.abs(np.asarray(d, dtype=np.float64))
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        result = (n + e) / (d - e) - (n - e) / (d + e)
    if np.ndim(result) == 0:
        return float(result)
    return result


def fabs_without_explained_error(error, explained_error):
    """Return ``max(0, |error| - explained_error)``."""
    abs_error = np.abs(np.asarray(error, dtype=np.float64))
    with np.errstate(invalid="ignore"):
        result = np.where(abs_error < explained_error, 0.0, abs_error - explained_error)
    if result.ndim == 0:
        return float(result)
    return result


@dataclass(frozen=True)
class ErrorBound:
    """Assumed quantization half-widths for normal and height channels."""

    normal_e: float
    height_e: float

    @classmethod
    def from_encoding(cls, discount: float, value_range: float,
                      max_code: float = 255.0) -> "ErrorBound":
        """Derive bounds for channels stored as integer codes 0..max_code.

        A normal component is scaled by 1 / range on decode, so its bound is
        scaled the same way. ``discount`` multiplies both bounds.
        """
        return cls(
            normal_e=discount / (max_code * value_range),
            height_e=discount / max_code,
        )


class BlockUncertainty(NamedTuple):
    """Propagated uncertainty of each edge integral of a band of blocks."""

    top_e: np.ndarray
    right_e: np.ndarray
    bottom_e: np.ndarray
    left_e: np.ndarray

    @property
    def escher_x_e(self) -> np.ndarray:
        return self.top_e + self.bottom_e

    @property
    def escher_y_e(self) -> np.ndarray:
        return self.left_e + self.right_e


def block_uncertainty(c: BlockCorners, normal_e: float) -> BlockUncertainty:
    p00, p10, p01, p11 = c.p00, c.p10, c.p01, c.p11
    return BlockUncertainty(
        top_e=ratio_e(p00[..., 0], p00[..., 2], normal_e) +
        ratio_e(p10[..., 0], p10[..., 2], normal_e),
        right_e=ratio_e(p10[..., 1], p10[..., 2], normal_e) +
        ratio_e(p11[..., 1], p11[..., 2], normal_e),
        bottom_e=ratio_e(p11[..., 0], p11[..., 2], normal_e) +
        ratio_e(p01[..., 0], p01[..., 2], normal_e),
        left_e=ratio_e(p01[..., 1], p01[..., 2], normal_e) +
        ratio_e(p00[..., 1], p00[..., 2], normal_e),
    )


class BlockResiduals(NamedTuple):
    """Unexplained residual magnitudes of a band of blocks."""

    x_error: np.ndarray      # top edge vs pooled height slope
    y_error: np.ndarray      # left edge vs pooled height slope
    x_x_error: np.ndarray    # top edge vs x-only height slope
    y_y_error: np.ndarray    # left edge vs y-only height slope
    escher_error: np.ndarray
    escher_xy_error: np.ndarray
    length2_error: np.ndarray


def block_residuals(c: BlockCorners, blocks: BlockIntegrals, fit: FitParameters,
                    bound: ErrorBound) -> BlockResiduals:
    """Compute every unexplained residual of one band against pass-1 fits."""
    unc = block_uncertainty(c, bound.normal_e)
    height_step_e = 2.0 * bound.height_e

    def _height_error(edge, edge_e, step, slope):
        with np.errstate(invalid="ignore", over="ignore"):
            return fabs_without_explained_error(
                step - edge * slope, height_step_e + edge_e * abs(slope),
            )

    mx, my = fit.escher_mx, fit.escher_my
    with np.errstate(invalid="ignore", over="ignore"):
        escher_error = fabs_without_explained_error(
            blocks.escher_x - blocks.escher_y, unc.escher_x_e + unc.escher_y_e,
        )
        escher_xy_error = fabs_without_explained_error(
            blocks.escher_x * mx - blocks.escher_y * my,
            unc.escher_x_e * abs(mx) + unc.escher_y_e * abs(my),
        )

    n = c.p00[..., :3]
    length2_error = fabs_without_explained_error(
        np.sum(n * n, axis=-1) - 1.0,
        2.0 * np.sum(np.abs(n), axis=-1) * bound.normal_e,
    )

    return BlockResiduals(
        x_error=_height_error(blocks.top, unc.top_e, blocks.top_height, fit.height_m),
        y_error=_height_error(blocks.left, unc.left_e, blocks.left_height, fit.height_m),
        x_x_error=_height_error(blocks.top, unc.top_e, blocks.top_height, fit.height_x_m),
        y_y_error=_height_error(blocks.left, unc.left_e, blocks.left_height, fit.height_y_m),
        escher_error=escher_error,
        escher_xy_error=escher_xy_error,
        length2_error=length2_error,
    )


def _ss(values: np.ndarray) -> float:
    with np.errstate(invalid="ignore", over="ignore"):
        return float(np.sum(values * values))


@dataclass
class ResidualSums:
    """Pass-2 sums of squared unexplained residuals."""

    height_ss: float = 0.0
    height_x_ss: float = 0.0
    height_y_ss: float = 0.0
    escher_ss: float = 0.0
    escher_xy_ss: float = 0.0
    length2_ss: float = 0.0
    count: int = 0

    def add(self, r: BlockResiduals):
        self.height_ss += _ss(r.x_error) + _ss(r.y_error)
        self.height_x_ss += _ss(r.x_x_error)
        self.height_y_ss += _ss(r.y_y_error)
        self.escher_ss += _ss(r.escher_error)
        self.escher_xy_ss += _ss(r.escher_xy_error)
        self.length2_ss += _ss(r.length2_error)
        self.count += int(np.size(r.length2_error))


def diagnostic_channels(r: BlockResiduals, post_correction: bool = False) -> np.ndarray:
    """Stack one band's residuals into (rows, width, 3) diagnostic texels.

    Post-correction mode reports the residuals left after the per-axis
    height slopes and the area-preserving escher fit are applied.
    """
    if post_correction:
        channels = (r.x_x_error + r.y_y_error, r.length2_error, r.escher_xy_error)
    else:
        channels = (r.x_error + r.y_error, r.length2_error, r.escher_error)
    return np.stack(channels, axis=-1).astype(np.float32)

