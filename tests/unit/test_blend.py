import unittest
import sys
import os
import numpy as np

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../src')))

from gasnet.blend import blend, limit_magnitude, smooth_magnitude, smoothstep


class TestBlend(unittest.TestCase):

    def test_endpoints_exact(self):
        """blend returns exactly y1 at x1 and y2 at x2"""
        for y1, y2, x1, x2 in [(0.0, 1.0, 0.0, 1.0), (3.7, -2.1, 10.0, 12.5), (1e5, 2e5, -1e-3, 1e-3)]:
            with self.subTest(y1=y1, y2=y2):
                self.assertEqual(blend(y1, y2, x1, x2, x1), y1)
                self.assertEqual(blend(y1, y2, x1, x2, x2), y2)
                self.assertEqual(blend(y1, y2, x1, x2, x1 - 1.0), y1)
                self.assertEqual(blend(y1, y2, x1, x2, x2 + 1.0), y2)

    def test_monotonic_between_bounds(self):
        xs = np.linspace(0.0, 1.0, 201)
        ys = np.array([blend(2.0, 5.0, 0.0, 1.0, x) for x in xs])
        self.assertTrue(np.all(np.diff(ys) >= 0))
        self.assertTrue(np.all((ys >= 2.0) & (ys <= 5.0)))

    def test_derivative_continuous_at_bounds(self):
        """Finite-difference slope tends to zero on both sides of each bound"""
        h = 1e-6
        for x_b in (0.0, 1.0):
            left = (blend(0.0, 1.0, 0.0, 1.0, x_b) - blend(0.0, 1.0, 0.0, 1.0, x_b - h)) / h
            right = (blend(0.0, 1.0, 0.0, 1.0, x_b + h) - blend(0.0, 1.0, 0.0, 1.0, x_b)) / h
            self.assertLess(abs(left - right), 1e-4)

    def test_invalid_bounds(self):
        with self.assertRaisesRegex(ValueError, "x1 <= x2"):
            blend(0.0, 1.0, 1.0, 0.0, 0.5)

    def test_degenerate_band_is_step(self):
        self.assertEqual(blend(1.0, 2.0, 0.5, 0.5, 0.4), 1.0)
        self.assertEqual(blend(1.0, 2.0, 0.5, 0.5, 0.6), 2.0)

    def test_vector_values(self):
        out = blend(np.zeros(3), np.ones(3), 0.0, 1.0, 0.5)
        np.testing.assert_allclose(out, [0.5, 0.5, 0.5])
        self.assertAlmostEqual(float(smoothstep(0.5)), 0.5)


class TestLimiters(unittest.TestCase):

    def test_limit_magnitude_never_exceeds(self):
        values = np.linspace(-5.0, 5.0, 1001)
        limited = np.array([limit_magnitude(v, 2.0, 0.02) for v in values])
        self.assertTrue(np.all(np.abs(limited) <= 2.0))
        # Untouched below the knee, sign preserved
        self.assertEqual(limit_magnitude(1.5, 2.0, 0.02), 1.5)
        self.assertEqual(limit_magnitude(-10.0, 2.0, 0.02), -2.0)

    def test_smooth_magnitude(self):
        self.assertEqual(smooth_magnitude(-3.0, 0.0), 3.0)
        self.assertAlmostEqual(smooth_magnitude(0.0, 0.5), 1.0)


if __name__ == '__main__':
    unittest.main()
