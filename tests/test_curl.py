"""Tests for edge integration and per-block curl integrals."""

import unittest

import numpy as np

from NormalAudit.audit import block_integrals, integrate
from NormalAudit.core import PixelBuffer


def _midpoint_integral(na, da, nb, db, steps=200000):
    t = (np.arange(steps) + 0.5) / steps
    return float(np.mean(-(na + (nb - na) * t) / (da + (db - da) * t)))


class TestIntegrate(unittest.TestCase):
    def test_equal_depths_uses_average(self):
        self.assertAlmostEqual(integrate(0.2, 1.0, 0.4, 1.0), -0.3)

    def test_constant_ratio_is_exact(self):
        self.assertAlmostEqual(integrate(0.2, 0.5, 0.4, 1.0), -0.4)

    def test_matches_numeric_quadrature(self):
        for na, da, nb, db in [(0.0, 1.0, 1.0, 0.5), (-0.3, 0.9, 0.6, 0.7),
                               (0.5, 0.4, -0.5, 0.95)]:
            self.assertAlmostEqual(
                integrate(na, da, nb, db), _midpoint_integral(na, da, nb, db), places=6,
            )

    def test_nearest_uses_average(self):
        self.assertAlmostEqual(integrate(0.0, 1.0, 1.0, 0.5, nearest=True), -1.0)
        self.assertNotAlmostEqual(integrate(0.0, 1.0, 1.0, 0.5), -1.0)

    def test_zero_depth_is_non_finite(self):
        self.assertFalse(np.isfinite(integrate(0.1, 0.0, 0.1, 0.0)))

    def test_scalar_in_scalar_out(self):
        self.assertIsInstance(integrate(0.1, 1.0, 0.2, 0.9), float)

    def test_vectorized_matches_scalar(self):
        na = np.array([0.0, -0.3, 0.2])
        da = np.array([1.0, 0.9, 0.5])
        nb = np.array([1.0, 0.6, 0.4])
        db = np.array([0.5, 0.7, 0.5])
        out = integrate(na, da, nb, db)
        self.assertEqual(out.shape, (3,))
        for i in range(3):
            self.assertAlmostEqual(out[i], integrate(na[i], da[i], nb[i], db[i]))


class TestBlockIntegrals(unittest.TestCase):
    def test_planar_surface_has_no_curl(self):
        a, b = 0.3, -0.2
        data = np.zeros((4, 4, 4))
        data[:, :, :3] = np.array([-a, -b, 1.0]) / np.sqrt(a * a + b * b + 1.0)
        blocks = block_integrals(PixelBuffer(data).corners(0, 4))
        np.testing.assert_allclose(blocks.top, a)
        np.testing.assert_allclose(blocks.bottom, a)
        np.testing.assert_allclose(blocks.left, b)
        np.testing.assert_allclose(blocks.right, b)
        np.testing.assert_allclose(blocks.escher_x, 0.0, atol=1e-12)
        np.testing.assert_allclose(blocks.escher_y, 0.0, atol=1e-12)

    def test_height_steps_follow_right_and_down_neighbors(self):
        data = np.zeros((3, 3, 4))
        data[:, :, 2] = 1.0
        y, x = np.mgrid[0:3, 0:3]
        data[:, :, 3] = 2.0 * x + 5.0 * y
        blocks = block_integrals(PixelBuffer(data).corners(0, 3))
        self.assertEqual(blocks.top_height[0, 0], 2.0)
        self.assertEqual(blocks.left_height[0, 0], 5.0)
        # Wraps from the last column back to the first.
        self.assertEqual(blocks.top_height[0, 2], -4.0)

    def test_shear_field_has_unit_curl(self):
        # x gradient grows with y while the y gradient is zero.
        data = np.zeros((4, 4, 4))
        data[:, :, 2] = 1.0
        data[:, :, 0] = -np.arange(4)[:, None]
        blocks = block_integrals(PixelBuffer(data).corners(0, 3))
        np.testing.assert_allclose(blocks.escher_x, -1.0)
        np.testing.assert_allclose(blocks.escher_y, 0.0)

    def test_band_matches_single_block(self):
        rng = np.random.default_rng(3)
        data = np.zeros((5, 6, 4))
        data[:, :, :2] = rng.uniform(-0.5, 0.5, (5, 6, 2))
        data[:, :, 2] = rng.uniform(0.6, 1.0, (5, 6))
        data[:, :, 3] = rng.random((5, 6))
        buf = PixelBuffer(data)
        band = block_integrals(buf.corners(0, 5))
        for x, y in [(0, 0), (5, 4), (2, 3)]:
            single = block_integrals(buf.neighbors(x, y))
            for name in ("top", "right", "bottom", "left", "top_height", "left_height"):
                self.assertAlmostEqual(
                    float(getattr(band, name)[y, x]), float(getattr(single, name)),
                )


if __name__ == "__main__":
    unittest.main(verbosity=2)
