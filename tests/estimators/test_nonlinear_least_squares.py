"""
Unit tests for the weighted Levenberg-Marquardt solver.

Tests cover:
    - Convergence on range positioning and RSSI models
    - Observation weights
    - Covariance scaling and variance floor
    - Failure reporting (rank, non-finite models, shapes)
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from radiosource.estimators.nonlinear_least_squares import (
    NonlinearLSResult,
    levenberg_marquardt,
)
from radiosource.rf.measurement_models import (
    received_power_dbm,
    received_power_dbm_jacobian,
)


class TestLevenbergMarquardtRangePositioning(unittest.TestCase):
    """Test LM on 2D range positioning, hᵢ(x) = ‖x - aᵢ‖."""

    def setUp(self):
        self.anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float)
        self.true_pos = np.array([3.0, 4.0])

        def h(x):
            return np.linalg.norm(self.anchors - x, axis=1)

        def jacobian(x):
            diff = x - self.anchors
            ranges = np.linalg.norm(diff, axis=1, keepdims=True)
            return diff / np.maximum(ranges, 1e-10)

        self.h = h
        self.jacobian = jacobian
        self.y_clean = h(self.true_pos)

    def test_exact_measurements_convergence(self):
        """Test LM converges to true position with exact measurements."""
        result = self.solve(np.array([5.0, 5.0]))

        assert_allclose(result.x, self.true_pos, atol=1e-6)
        self.assertTrue(result.converged)
        self.assertEqual(result.rank, 2)

    def test_poor_initial_guess(self):
        """Test LM converges from a far initial guess."""
        result = self.solve(np.array([50.0, -40.0]))
        assert_allclose(result.x, self.true_pos, atol=1e-5)

    def test_result_dataclass_fields(self):
        """Test NonlinearLSResult contains all expected fields."""
        result = self.solve(np.array([5.0, 5.0]))

        self.assertIsInstance(result, NonlinearLSResult)
        self.assertEqual(result.covariance.shape, (2, 2))
        self.assertEqual(len(result.residuals), 4)
        self.assertGreater(result.iterations, 0)
        self.assertAlmostEqual(result.cost, 0.5 * result.chi_square)

    def solve(self, x0, **kwargs):
        return levenberg_marquardt(self.h, self.jacobian, self.y_clean, x0, **kwargs)


class TestLevenbergMarquardtRssi(unittest.TestCase):
    """Test LM on the RSSI model over [x, y, z, power]."""

    def setUp(self):
        rng = np.random.default_rng(21)
        self.frequency = 2.4e9
        self.receivers = rng.uniform(-30.0, 30.0, size=(30, 3))
        self.truth = np.array([4.0, -7.0, 2.0, -22.0])

    def h(self, x):
        distances = np.linalg.norm(self.receivers - x[:3], axis=1)
        return received_power_dbm(x[3], distances, self.frequency)

    def jacobian(self, x):
        J = received_power_dbm_jacobian(x[:3], self.receivers, self.frequency)
        return J[:, :4]

    def test_recovers_source(self):
        """Test noiseless RSSI recovers position and power."""
        y = self.h(self.truth)
        result = levenberg_marquardt(
            self.h, self.jacobian, y, np.array([0.5, 0.5, 0.5, -30.0])
        )

        self.assertTrue(result.converged)
        assert_allclose(result.x, self.truth, atol=1e-6)

    def test_variance_floor_on_exact_fit(self):
        """Test zero residuals keep covariance at (J'WJ)⁻¹ with floor 1."""
        y = self.h(self.truth)
        result = levenberg_marquardt(
            self.h, self.jacobian, y, self.truth + 0.1, variance_floor=1.0
        )

        J = self.jacobian(result.x)
        assert_allclose(result.covariance, np.linalg.inv(J.T @ J), rtol=1e-6)
        self.assertTrue(np.all(np.diag(result.covariance) > 0.0))

    def test_covariance_scales_with_weights(self):
        """Test halving σ (4x weight) divides covariance by 4."""
        y = self.h(self.truth)
        unit = levenberg_marquardt(
            self.h, self.jacobian, y, self.truth, variance_floor=1.0
        )
        weighted = levenberg_marquardt(
            self.h, self.jacobian, y, self.truth,
            weights=np.full(len(y), 4.0), variance_floor=1.0,
        )
        assert_allclose(weighted.covariance, unit.covariance / 4.0, rtol=1e-6)


class TestLevenbergMarquardtWeights(unittest.TestCase):
    """Test weighting on a linear model."""

    def setUp(self):
        self.A = np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0], [1.0, -1.0]])
        self.h = lambda x: self.A @ x
        self.jacobian = lambda x: self.A

    def test_zero_weight_ignores_observation(self):
        """Test a zero-weighted outlier does not affect the solution."""
        truth = np.array([2.0, -1.0])
        y = self.A @ truth
        y[3] += 100.0

        result = levenberg_marquardt(
            self.h, self.jacobian, y, np.zeros(2),
            weights=np.array([1.0, 1.0, 1.0, 0.0]),
        )

        assert_allclose(result.x, truth, atol=1e-8)

    def test_invalid_weights(self):
        """Test negative or misshaped weights raise ValueError."""
        y = np.zeros(4)
        with self.assertRaises(ValueError):
            levenberg_marquardt(self.h, self.jacobian, y, np.zeros(2), weights=-np.ones(4))
        with self.assertRaises(ValueError):
            levenberg_marquardt(self.h, self.jacobian, y, np.zeros(2), weights=np.ones(3))


class TestLevenbergMarquardtFailures(unittest.TestCase):
    """Test failure reporting."""

    def test_rank_deficient_jacobian(self):
        """Test collinear problems report rank and no covariance."""
        A = np.array([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])
        y = np.array([1.0, 2.0, 3.0])

        result = levenberg_marquardt(lambda x: A @ x, lambda x: A, y, np.zeros(2))

        self.assertEqual(result.rank, 1)
        self.assertIsNone(result.covariance)

    def test_non_finite_model(self):
        """Test non-finite model values raise FloatingPointError."""
        with self.assertRaises(FloatingPointError):
            levenberg_marquardt(
                lambda x: np.array([np.nan, 0.0]),
                lambda x: np.eye(2),
                np.zeros(2),
                np.zeros(2),
            )

    def test_jacobian_shape_mismatch(self):
        """Test wrong Jacobian shape raises ValueError."""
        with self.assertRaises(ValueError):
            levenberg_marquardt(
                lambda x: x, lambda x: np.eye(3), np.ones(2), np.zeros(2)
            )


if __name__ == "__main__":
    unittest.main()
