"""
Unit tests for the non-robust RSSI radio source estimator.
"""

import unittest
from unittest import mock

import numpy as np
from numpy.testing import assert_allclose

from radiosource.estimators import (
    RadioSourceEstimatorListener,
    RssiRadioSourceEstimator,
)
from radiosource.exceptions import EstimationError, LockedError, NotReadyError
from radiosource.rf import RadioSource, RssiReading, simulate_rssi_readings

FREQUENCY = 2.4e9
ABSOLUTE_ERROR = 1e-6
TIMES = 10


def make_readings(rng, num_readings=50, noise_std_db=0.0, outlier_ratio=0.0,
                  path_loss_exponent=2.0):
    """Random 3D survey of a source within [-50, 50]^3."""
    source = RadioSource("bssid", FREQUENCY)
    position = rng.uniform(-50.0, 50.0, size=3)
    power_dbm = rng.uniform(-30.0, -10.0)
    receivers = rng.uniform(-50.0, 50.0, size=(num_readings, 3))
    rssi, _ = simulate_rssi_readings(
        position, receivers, power_dbm, FREQUENCY,
        path_loss_exponent=path_loss_exponent,
        noise_std_db=noise_std_db, outlier_ratio=outlier_ratio, rng=rng,
    )
    readings = [RssiReading(source, r, p) for r, p in zip(rssi, receivers)]
    return readings, position, power_dbm


class CountingListener(RadioSourceEstimatorListener):
    def __init__(self):
        self.start = 0
        self.end = 0

    def on_estimate_start(self, estimator):
        self.start += 1

    def on_estimate_end(self, estimator):
        self.end += 1


class TestRssiRadioSourceEstimator(unittest.TestCase):
    """Test weighted nonlinear LS over all readings."""

    def test_defaults(self):
        """Test default state before estimation."""
        estimator = RssiRadioSourceEstimator()

        self.assertFalse(estimator.is_ready)
        self.assertFalse(estimator.is_locked)
        self.assertIsNone(estimator.estimated_position)
        self.assertEqual(estimator.estimated_transmitted_power, 1.0)
        self.assertEqual(estimator.estimated_transmitted_power_dbm, 0.0)
        self.assertEqual(estimator.estimated_path_loss_exponent, 2.0)
        self.assertIsNone(estimator.covariance)
        self.assertIsNone(estimator.chi_square)
        self.assertIsNone(estimator.estimated_radio_source)

    def test_not_ready(self):
        """Test estimate() without readings raises NotReadyError."""
        with self.assertRaises(NotReadyError):
            RssiRadioSourceEstimator().estimate()

    def test_estimate_without_noise(self):
        """Test exact readings give an exact estimate with covariance."""
        rng = np.random.default_rng(100)
        num_valid = 0
        for _ in range(TIMES):
            readings, position, power_dbm = make_readings(rng)
            listener = CountingListener()
            estimator = RssiRadioSourceEstimator(readings, listener)

            try:
                estimated = estimator.estimate()
            except EstimationError:
                continue

            self.assertEqual(listener.start, 1)
            self.assertEqual(listener.end, 1)
            self.assertFalse(estimator.is_locked)

            if np.linalg.norm(estimated.position - position) > ABSOLUTE_ERROR:
                continue

            assert_allclose(estimator.estimated_position, position, atol=ABSOLUTE_ERROR)
            self.assertAlmostEqual(
                estimator.estimated_transmitted_power_dbm, power_dbm, delta=ABSOLUTE_ERROR
            )
            self.assertLess(estimator.chi_square, 1e-12)
            self.assertEqual(estimator.covariance.shape, (4, 4))
            self.assertGreater(estimator.estimated_transmitted_power_variance, 0.0)
            self.assertIsNone(estimator.estimated_path_loss_exponent_variance)
            self.assertEqual(estimated.source, readings[0].source)
            num_valid += 1

        self.assertGreater(num_valid, 0)

    def test_estimate_with_initial_power(self):
        """Test trilateration seeding from an initial power guess."""
        rng = np.random.default_rng(101)
        readings, position, power_dbm = make_readings(rng)

        estimator = RssiRadioSourceEstimator(
            readings, initial_transmitted_power_dbm=power_dbm + 1.0
        )
        estimator.estimate()

        assert_allclose(estimator.estimated_position, position, atol=ABSOLUTE_ERROR)

    def test_estimate_power_and_path_loss_with_known_position(self):
        """Test position disabled estimates power and path loss."""
        rng = np.random.default_rng(102)
        readings, position, power_dbm = make_readings(rng, path_loss_exponent=1.8)

        estimator = RssiRadioSourceEstimator(
            readings,
            initial_position=position,
            position_estimation_enabled=False,
            path_loss_estimation_enabled=True,
        )
        self.assertEqual(estimator.min_readings, 3)
        estimator.estimate()

        assert_allclose(estimator.estimated_position, position)
        self.assertAlmostEqual(estimator.estimated_path_loss_exponent, 1.8, places=6)
        self.assertAlmostEqual(
            estimator.estimated_transmitted_power_dbm, power_dbm, places=6
        )
        self.assertIsNone(estimator.estimated_position_covariance)

    def test_degenerate_geometry(self):
        """Test collinear receivers raise EstimationError and unlock."""
        source = RadioSource("bssid", FREQUENCY)
        readings = [
            RssiReading(source, -60.0 - i, np.array([10.0 * i + 1.0, 0.0, 0.0]))
            for i in range(8)
        ]
        estimator = RssiRadioSourceEstimator(readings)

        with self.assertRaises(EstimationError):
            estimator.estimate()
        self.assertFalse(estimator.is_locked)

    def test_numerical_failure_raises_estimation_error(self):
        """Test solver numerical errors surface as EstimationError."""
        rng = np.random.default_rng(104)
        readings, _, _ = make_readings(rng)
        estimator = RssiRadioSourceEstimator(readings)

        for error in (np.linalg.LinAlgError("singular"), FloatingPointError("overflow")):
            with self.subTest(error=type(error).__name__):
                with mock.patch(
                    "radiosource.estimators.rssi_estimator.initial_solution",
                    side_effect=error,
                ):
                    with self.assertRaises(EstimationError):
                        estimator.estimate()
                self.assertFalse(estimator.is_locked)
                self.assertIsNone(estimator.estimated_position)

    def test_locked_during_estimation(self):
        """Test configuration changes raise LockedError from callbacks."""
        rng = np.random.default_rng(103)
        readings, _, _ = make_readings(rng)
        errors = []

        class MutatingListener(RadioSourceEstimatorListener):
            def on_estimate_start(self, estimator):
                assert estimator.is_locked
                try:
                    estimator.path_loss_estimation_enabled = True
                except LockedError as e:
                    errors.append(e)
                try:
                    estimator.estimate()
                except LockedError as e:
                    errors.append(e)

        estimator = RssiRadioSourceEstimator(readings, MutatingListener())
        estimator.estimate()

        self.assertEqual(len(errors), 2)
        self.assertFalse(estimator.path_loss_estimation_enabled)


if __name__ == "__main__":
    unittest.main()
