"""Tests for the wrapped texel buffer."""

import unittest

import numpy as np

from NormalAudit.core import PixelBuffer


def _indexed(h=3, w=4):
    data = np.zeros((h, w, 4))
    y, x = np.mgrid[0:h, 0:w]
    data[:, :, 0] = x
    data[:, :, 1] = y
    return PixelBuffer(data)


class TestPixelBuffer(unittest.TestCase):
    def test_rejects_bad_shapes(self):
        with self.assertRaises(ValueError):
            PixelBuffer(np.zeros((4, 4, 3)))
        with self.assertRaises(ValueError):
            PixelBuffer(np.zeros((0, 4, 4)))

    def test_dimensions(self):
        buf = _indexed()
        self.assertEqual((buf.width, buf.height, buf.shape), (4, 3, (3, 4)))

    def test_get_wraps_both_axes(self):
        buf = _indexed()
        np.testing.assert_array_equal(buf.get(4, 3)[:2], [0, 0])
        np.testing.assert_array_equal(buf.get(-1, -1)[:2], [3, 2])

    def test_neighbors_wrap_at_edges(self):
        c = _indexed().neighbors(3, 2)
        np.testing.assert_array_equal(c.p00[:2], [3, 2])
        np.testing.assert_array_equal(c.p10[:2], [0, 2])
        np.testing.assert_array_equal(c.p01[:2], [3, 0])
        np.testing.assert_array_equal(c.p11[:2], [0, 0])

    def test_rows_match_get(self):
        buf = _indexed()
        band = buf.rows(1, 3, dx=1, dy=1)
        self.assertEqual(band.shape, (2, 4, 4))
        for j in range(2):
            for x in range(4):
                np.testing.assert_array_equal(band[j, x], buf.get(x + 1, 1 + j + 1))

    def test_corners_match_neighbors(self):
        buf = _indexed()
        corners = buf.corners(0, 3)
        for y in range(3):
            for x in range(4):
                single = buf.neighbors(x, y)
                for name in ("p00", "p10", "p01", "p11"):
                    np.testing.assert_array_equal(getattr(corners, name)[y, x],
                                                  getattr(single, name))

    def test_bands_cover_every_row_once(self):
        buf = _indexed(h=10)
        self.assertEqual(list(buf.bands(4)), [(0, 4), (4, 8), (8, 10)])
        self.assertEqual(list(buf.bands(100)), [(0, 10)])

    def test_from_channels(self):
        rgb = np.full((2, 2, 3), 0.5)
        with_height = PixelBuffer.from_channels(rgb, np.ones((2, 2)))
        without = PixelBuffer.from_channels(rgb)
        self.assertTrue(with_height.has_height)
        self.assertFalse(without.has_height)
        np.testing.assert_array_equal(without.data[:, :, 3], 0.0)
        np.testing.assert_array_equal(with_height.data[:, :, 3], 1.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
