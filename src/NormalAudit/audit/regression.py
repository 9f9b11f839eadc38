"""Least-squares fits gathered during the first audit pass.

All fits go through the origin because both sides are differences that are
expected to be proportional. Degenerate sums (all-zero inputs) produce NaN or
infinite coefficients instead of raising; they surface as null in reports.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from .curl import BlockIntegrals

logger = logging.getLogger("normal_audit.regression")


def divide(num: float, den: float) -> float:
    """IEEE float division: x/0 gives +-inf and 0/0 gives NaN."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.divide(np.float64(num), np.float64(den)))


@dataclass
class LeastSquaresSums:
    """Running sums of squares and cross-products of paired samples."""

    sxx: float = 0.0
    sxy: float = 0.0
    syy: float = 0.0

    def add(self, x: np.ndarray, y: np.ndarray):
        """Accumulate every (x, y) pair of two equally shaped arrays."""
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        self.sxx += float(np.sum(x * x))
        self.sxy += float(np.sum(x * y))
        self.syy += float(np.sum(y * y))

    def __add__(self, other: "LeastSquaresSums") -> "LeastSquaresSums":
        return LeastSquaresSums(
            self.sxx + other.sxx, self.sxy + other.sxy, self.syy + other.syy,
        )

    def slope(self) -> float:
        """Slope m minimizing sum((y - m x)^2)."""
        return divide(self.sxy, self.sxx)


def area_preserving_fit(sums: LeastSquaresSums):
    """Find (mx, my) with |mx * my| = 1 minimizing sum((x mx - y my)^2).

    Substituting mx = sqrt(m), my = 1 / sqrt(m) turns the objective into
    ``sxx m - 2 sxy + syy / m``, minimized at ``m = sqrt(syy / sxx)``.
    mx takes the sign of sxy so the cross term stays negative.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        mx = float(np.sqrt(np.sqrt(np.divide(sums.syy, sums.sxx))))
        my = float(np.sqrt(np.sqrt(np.divide(sums.sxx, sums.syy))))
    if sums.sxy < 0:
        mx = -mx
    return mx, my


@dataclass(frozen=True)
class FitParameters:
    """Global regression results handed from pass 1 to pass 2."""

    height_x_m: float
    height_y_m: float
    height_m: float
    escher_mx: float
    escher_my: float
    # Total sums of squares of each dependent variable, for R^2.
    height_x_syy: float
    height_y_syy: float
    escher_syy: float

    @property
    def height_syy(self) -> float:
        return self.height_x_syy + self.height_y_syy

    @property
    def escher_xy_syy(self) -> float:
        """Dependent-variable variance after the area-preserving rescale."""
        return self.escher_syy * self.escher_my * self.escher_my


@dataclass
class RegressionAccumulator:
    """Pass-1 sums for height-vs-gradient and curl-x-vs-curl-y fits."""

    height_x: LeastSquaresSums = field(default_factory=LeastSquaresSums)
    height_y: LeastSquaresSums = field(default_factory=LeastSquaresSums)
    escher: LeastSquaresSums = field(default_factory=LeastSquaresSums)

    def add(self, blocks: BlockIntegrals):
        """Accumulate one band of blocks.

        Bottom and right edges are not correlated separately; they are the
        top and left edges of neighboring blocks.
        """
        self.height_x.add(blocks.top, blocks.top_height)
        self.height_y.add(blocks.left, blocks.left_height)
        self.escher.add(blocks.escher_x, blocks.escher_y)

    @property
    def height(self) -> LeastSquaresSums:
        """Both axes pooled into a single height-vs-gradient fit."""
        return self.height_x + self.height_y

    def fit(self) -> FitParameters:
        mx, my = area_preserving_fit(self.escher)
        params = FitParameters(
            height_x_m=self.height_x.slope(),
            height_y_m=self.height_y.slope(),
            height_m=self.height.slope(),
            escher_mx=mx,
            escher_my=my,
            height_x_syy=self.height_x.syy,
            height_y_syy=self.height_y.syy,
            escher_syy=self.escher.syy,
        )
        logger.debug(
            "Fit: height_m=%.6g (x=%.6g, y=%.6g), escher mx=%.6g my=%.6g",
            params.height_m, params.height_x_m, params.height_y_m,
            params.escher_mx, params.escher_my,
        )
        return params
