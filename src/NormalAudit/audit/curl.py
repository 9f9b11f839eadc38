"""Discrete curl of the gradient field implied by a normal map.

For each 2x2 block of texels, the gradient implied by the normals is
integrated along the closed path through the four texel centers. By Stokes'
theorem this equals the surface integral of the curl of the gradient, which
is identically zero for a surface that actually exists. The two halves of the
loop ("escher_x" and "escher_y") must therefore agree.
"""

from typing import NamedTuple

import numpy as np

from ..core import BlockCorners


def integrate(na, da, nb, db, nearest: bool = False):
    """Integrate ``-(na + (nb - na) t) / (da + (db - da) t)`` for t in [0, 1].

    ``n`` is a tangential normal component and ``d`` the normal's z
    component at either end of an edge, both linearly interpolated along it.
    Accepts scalars or arrays. Zero depths give non-finite results.
    """
    na = np.asarray(na, dtype=np.float64)
    da = np.asarray(da, dtype=np.float64)
    nb = np.asarray(nb, dtype=np.float64)
    db = np.asarray(db, dtype=np.float64)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        average = -(na / da + nb / db) * 0.5
        if nearest:
            result = average
        else:
            dd = db - da
            exact = -((np.log(np.abs(db)) - np.log(np.abs(da))) * (db * na - da * nb) +
                      dd * (nb - na)) / (dd * dd)
            result = np.where(dd == 0, average, exact)

    if result.ndim == 0:
        return float(result)
    return result


class BlockIntegrals(NamedTuple):
    """Edge integrals and height steps of a band of 2x2 blocks."""

    top: np.ndarray
    right: np.ndarray
    bottom: np.ndarray
    left: np.ndarray
    top_height: np.ndarray
    left_height: np.ndarray

    @property
    def escher_x(self) -> np.ndarray:
        return self.top - self.bottom

    @property
    def escher_y(self) -> np.ndarray:
        return self.left - self.right


def block_integrals(c: BlockCorners, nearest: bool = False) -> BlockIntegrals:
    """Compute the four edge integrals of every block in a band.

    Edges run p00->p10 (top, x gradient), p10->p11 (right, y gradient),
    p11->p01 (bottom, x gradient) and p01->p00 (left, y gradient).
    """
    p00, p10, p01, p11 = c.p00, c.p10, c.p01, c.p11
    return BlockIntegrals(
        top=integrate(p00[..., 0], p00[..., 2], p10[..., 0], p10[..., 2], nearest),
        right=integrate(p10[..., 1], p10[..., 2], p11[..., 1], p11[..., 2], nearest),
        bottom=integrate(p11[..., 0], p11[..., 2], p01[..., 0], p01[..., 2], nearest),
        left=integrate(p01[..., 1], p01[..., 2], p00[..., 1], p00[..., 2], nearest),
        top_height=p10[..., 3] - p00[..., 3],
        left_height=p01[..., 3] - p00[..., 3],
    )
