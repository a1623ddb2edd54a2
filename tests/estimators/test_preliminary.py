"""
Unit tests for preliminary radio source solutions.

Tests cover:
    - Linear trilateration seeding
    - Closed-form power / path-loss solution with known position
    - Subset solutions for every combination of unknowns
    - Degenerate subsets raising PreliminarySolutionError
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from radiosource.estimators.parameterization import UnknownParameterization
from radiosource.estimators.preliminary import (
    initial_solution,
    solve_power_and_path_loss,
    solve_preliminary,
    trilaterate,
)
from radiosource.estimators.rssi_model import RssiObservations
from radiosource.exceptions import PreliminarySolutionError
from radiosource.rf.measurement_models import received_power_dbm

FREQUENCY = 2.4e9


def make_observations(receivers, source, power_dbm, path_loss=2.0):
    """Noiseless observations of a source."""
    receivers = np.asarray(receivers, dtype=float)
    distances = np.linalg.norm(receivers - source, axis=1)
    return RssiObservations(
        positions=receivers,
        rssi=received_power_dbm(power_dbm, distances, FREQUENCY, path_loss),
        standard_deviations=np.ones(len(receivers)),
        frequency=FREQUENCY,
    )


class TestTrilaterate(unittest.TestCase):
    """Test linear trilateration."""

    def test_exact_ranges(self):
        """Test exact ranges to 4 non-coplanar anchors recover position."""
        anchors = np.array(
            [[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 0.0], [0.0, 0.0, 10.0]]
        )
        truth = np.array([2.0, 3.0, 4.0])
        distances = np.linalg.norm(anchors - truth, axis=1)

        assert_allclose(trilaterate(anchors, distances), truth, atol=1e-9)

    def test_collinear_anchors(self):
        """Test collinear anchors raise PreliminarySolutionError."""
        anchors = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
        with self.assertRaises(PreliminarySolutionError):
            trilaterate(anchors, np.ones(4))


class TestClosedFormPowerAndPathLoss(unittest.TestCase):
    """Test linear solution with known position."""

    def setUp(self):
        rng = np.random.default_rng(4)
        self.receivers = rng.uniform(-20.0, 20.0, size=(6, 3))
        self.source = np.array([1.0, 1.0, 1.0])

    def test_power_and_path_loss(self):
        """Test power and path loss are recovered exactly."""
        observations = make_observations(self.receivers, self.source, -17.0, 2.6)

        solution = solve_power_and_path_loss(observations, self.source, None, None)

        self.assertAlmostEqual(solution.transmitted_power_dbm, -17.0, places=9)
        self.assertAlmostEqual(solution.path_loss_exponent, 2.6, places=9)

    def test_power_only(self):
        """Test power is recovered with fixed path loss."""
        observations = make_observations(self.receivers, self.source, -17.0, 2.6)

        solution = solve_power_and_path_loss(observations, self.source, None, 2.6)

        self.assertAlmostEqual(solution.transmitted_power_dbm, -17.0, places=9)
        self.assertEqual(solution.path_loss_exponent, 2.6)

    def test_path_loss_only(self):
        """Test path loss is recovered with fixed power."""
        observations = make_observations(self.receivers, self.source, -17.0, 2.6)

        solution = solve_power_and_path_loss(observations, self.source, -17.0, None)

        self.assertAlmostEqual(solution.path_loss_exponent, 2.6, places=9)

    def test_equidistant_receivers_rank_deficient(self):
        """Test power and path loss are not separable at equal distances."""
        receivers = np.array([[5.0, 0.0, 0.0], [0.0, 5.0, 0.0], [0.0, 0.0, 5.0]])
        observations = make_observations(receivers, np.zeros(3), -20.0)

        with self.assertRaises(PreliminarySolutionError):
            solve_power_and_path_loss(observations, np.zeros(3), None, None)


class TestSolvePreliminary(unittest.TestCase):
    """Test subset solutions."""

    def setUp(self):
        rng = np.random.default_rng(12)
        self.receivers = rng.uniform(-50.0, 50.0, size=(20, 3))
        self.source = np.array([5.0, -5.0, 2.0])
        self.power = -20.0
        self.observations = make_observations(self.receivers, self.source, self.power)

    def test_position_and_power_with_power_guess(self):
        """Test minimal subset solves exactly when seeded by trilateration."""
        subset = self.observations.subset(np.arange(5))
        parameterization = UnknownParameterization(3, True, True, False)

        solution = solve_preliminary(
            subset, parameterization, initial_transmitted_power_dbm=self.power
        )

        assert_allclose(solution.position, self.source, atol=1e-6)
        self.assertAlmostEqual(solution.transmitted_power_dbm, self.power, places=6)
        self.assertEqual(solution.path_loss_exponent, 2.0)

    def test_position_and_power_from_centroid(self):
        """Test over-determined subset converges without initial values."""
        parameterization = UnknownParameterization(3, True, True, False)

        solution = solve_preliminary(self.observations, parameterization)

        assert_allclose(solution.position, self.source, atol=1e-6)
        self.assertAlmostEqual(solution.transmitted_power_dbm, self.power, places=6)

    def test_position_only(self):
        """Test position-only estimation with known power."""
        subset = self.observations.subset(np.arange(4))
        parameterization = UnknownParameterization(3, True, False, False)

        solution = solve_preliminary(
            subset, parameterization, initial_transmitted_power_dbm=self.power
        )

        assert_allclose(solution.position, self.source, atol=1e-6)
        self.assertEqual(solution.transmitted_power_dbm, self.power)

    def test_power_and_path_loss_with_known_position(self):
        """Test position disabled uses the closed-form solution."""
        observations = make_observations(self.receivers, self.source, self.power, 2.4)
        parameterization = UnknownParameterization(3, False, True, True)

        solution = solve_preliminary(
            observations.subset(np.arange(3)),
            parameterization,
            initial_position=self.source,
        )

        assert_allclose(solution.position, self.source)
        self.assertAlmostEqual(solution.transmitted_power_dbm, self.power, places=9)
        self.assertAlmostEqual(solution.path_loss_exponent, 2.4, places=9)

    def test_too_few_readings(self):
        """Test subsets below min readings raise PreliminarySolutionError."""
        parameterization = UnknownParameterization(3, True, True, False)
        with self.assertRaises(PreliminarySolutionError):
            solve_preliminary(self.observations.subset(np.arange(4)), parameterization)

    def test_collinear_receivers(self):
        """Test collinear receivers cannot locate a 3D source."""
        receivers = np.column_stack(
            [[0.0, 10.0, 25.0, 37.0, 50.0], np.zeros(5), np.zeros(5)]
        )
        observations = make_observations(receivers, self.source, self.power)
        parameterization = UnknownParameterization(3, True, True, False)

        with self.assertRaises(PreliminarySolutionError):
            solve_preliminary(observations, parameterization)

    def test_missing_initial_position(self):
        """Test position disabled requires an initial position."""
        parameterization = UnknownParameterization(3, False, True, False)
        with self.assertRaises(ValueError):
            initial_solution(self.observations, parameterization)


if __name__ == "__main__":
    unittest.main()
