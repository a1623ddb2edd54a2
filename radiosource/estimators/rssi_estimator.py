"""
Non-robust RSSI radio source estimator.

Fits all readings at once with weighted Levenberg-Marquardt. Suitable when
readings are known to be free of outliers; otherwise use
LMedSRobustRssiRadioSourceEstimator.
"""

import logging
from typing import Optional

import numpy as np

from radiosource.estimators.base import RadioSourceEstimator
from radiosource.estimators.preliminary import initial_solution
from radiosource.estimators.refinement import refine_solution
from radiosource.estimators.rssi_model import RssiObservations
from radiosource.exceptions import (
    EstimationError,
    InvalidPropagationInputError,
    PreliminarySolutionError,
    RefinementError,
)

log = logging.getLogger(__name__)


class RssiRadioSourceEstimator(RadioSourceEstimator):
    """
    Weighted nonlinear least squares estimator over all readings.

    Seeds the unknowns like the preliminary solver (initial values,
    trilateration or centroid) and reports the covariance of the fit.

    Example:
        >>> estimator = RssiRadioSourceEstimator(
        ...     readings, initial_transmitted_power_dbm=-20.0
        ... )
        >>> source = estimator.estimate()
        >>> estimator.chi_square
    """

    def _reset_results(self) -> None:
        super()._reset_results()
        self._chi_square: Optional[float] = None

    @property
    def chi_square(self) -> Optional[float]:
        """Weighted sum of squared residuals of the last fit."""
        return self._chi_square

    def _estimate(self) -> None:
        observations = RssiObservations.from_readings(self._readings)
        parameterization = self.parameterization

        try:
            seed = initial_solution(
                observations,
                parameterization,
                self._initial_position,
                self._initial_transmitted_power_dbm,
                self._initial_path_loss_exponent,
            )
            result = refine_solution(observations, parameterization, seed)
        except (
            PreliminarySolutionError,
            RefinementError,
            InvalidPropagationInputError,
            FloatingPointError,
            np.linalg.LinAlgError,
        ) as e:
            raise EstimationError(f"Radio source estimation failed: {e}") from e

        log.debug(
            "Fitted %d readings in %d iterations, chi-square %.3e",
            len(observations),
            result.iterations,
            result.chi_square,
        )
        self._chi_square = result.chi_square
        self._publish(result.solution, result.covariance)
