"""
LMedS robust RSSI radio source estimator.

Estimates the position, transmitted power and/or path-loss exponent of a
radio source from RSSI readings contaminated with outliers (multipath,
obstructed readings, wrongly located receivers):

1. LMedS search: candidates are solved from random subsets of readings and
   scored by the median squared residual over all readings.
2. Inlier classification from the robust scale of the best candidate.
3. Optional refinement by weighted nonlinear least squares over the
   inliers, which also yields the covariance of the estimated parameters.

If refinement fails, the unrefined best candidate is kept and no covariance
is reported.
"""

import logging
import warnings
from typing import Optional, Sequence, Union

import numpy as np

from radiosource.config import (
    DEFAULT_CONFIDENCE,
    DEFAULT_INLIER_FACTOR,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
    DEFAULT_STOP_THRESHOLD,
    RobustEstimatorConfig,
)
from radiosource.estimators.base import (
    RadioSourceEstimator,
    RadioSourceEstimatorListener,
)
from radiosource.estimators.lmeds import InliersData, LMedSRobustEstimator
from radiosource.estimators.preliminary import solve_preliminary
from radiosource.estimators.refinement import refine_solution
from radiosource.estimators.rssi_model import RadioSourceSolution, RssiObservations
from radiosource.exceptions import RefinementError
from radiosource.rf.measurement_models import DEFAULT_PATH_LOSS_EXPONENT
from radiosource.rf.types import RssiReading

log = logging.getLogger(__name__)


class LMedSRobustRssiRadioSourceEstimator(RadioSourceEstimator):
    """
    Robust radio source estimator using Least Median of Squares.

    LMedS does not need an inlier threshold: the stop threshold only ends
    the search early once the median squared residual (dB²) is small
    enough to be considered exact.

    Args:
        readings: Optional located RSSI readings of a single radio source.
        listener: Optional listener notified during estimation.
        initial_position: Optional initial position. Required when the
            position is not estimated.
        initial_transmitted_power_dbm: Optional initial power in dBm.
            Required when the power is not estimated.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        rng: numpy Generator, seed or None for the random subsets.
        dims: Spatial dimension, taken from the readings if None.

    Example:
        >>> estimator = LMedSRobustRssiRadioSourceEstimator(readings, rng=42)
        >>> estimator.path_loss_estimation_enabled = True
        >>> source = estimator.estimate()
        >>> source.position, source.transmitted_power_dbm
        >>> estimator.inliers_data.num_inliers
    """

    METHOD = "lmeds"

    def __init__(
        self,
        readings: Optional[Sequence[RssiReading]] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        initial_position: Optional[np.ndarray] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        rng: Union[np.random.Generator, int, None] = None,
        dims: Optional[int] = None,
    ):
        self._stop_threshold = DEFAULT_STOP_THRESHOLD
        self._confidence = DEFAULT_CONFIDENCE
        self._max_iterations = DEFAULT_MAX_ITERATIONS
        self._progress_delta = DEFAULT_PROGRESS_DELTA
        self._inlier_factor = DEFAULT_INLIER_FACTOR
        self._preliminary_subset_size: Optional[int] = None
        self._refine_result = True
        self._keep_covariance = True
        self._rng = np.random.default_rng(rng)

        super().__init__(
            readings=readings,
            listener=listener,
            initial_position=initial_position,
            initial_transmitted_power_dbm=initial_transmitted_power_dbm,
            initial_path_loss_exponent=initial_path_loss_exponent,
            dims=dims,
        )

    @property
    def method(self) -> str:
        """Robust method used by this estimator."""
        return self.METHOD

    # ------------------------------------------------------------------
    # Robust search settings
    # ------------------------------------------------------------------

    @property
    def stop_threshold(self) -> float:
        """Median squared residual (dB²) at which the search stops early."""
        return self._stop_threshold

    @stop_threshold.setter
    def stop_threshold(self, threshold: float) -> None:
        self._check_unlocked()
        if not threshold > 0.0:
            raise ValueError(f"stop_threshold must be positive, got {threshold}")
        self._stop_threshold = float(threshold)

    @property
    def confidence(self) -> float:
        return self._confidence

    @confidence.setter
    def confidence(self, confidence: float) -> None:
        self._check_unlocked()
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        self._confidence = float(confidence)

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, max_iterations: int) -> None:
        self._check_unlocked()
        if not isinstance(max_iterations, (int, np.integer)):
            raise TypeError(
                f"max_iterations must be an integer, got {type(max_iterations)}"
            )
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self._max_iterations = int(max_iterations)

    @property
    def progress_delta(self) -> float:
        return self._progress_delta

    @progress_delta.setter
    def progress_delta(self, progress_delta: float) -> None:
        self._check_unlocked()
        if not 0.0 <= progress_delta <= 1.0:
            raise ValueError(f"progress_delta must be in [0, 1], got {progress_delta}")
        self._progress_delta = float(progress_delta)

    @property
    def inlier_factor(self) -> float:
        """Multiple of the robust scale below which a reading is an inlier."""
        return self._inlier_factor

    @inlier_factor.setter
    def inlier_factor(self, inlier_factor: float) -> None:
        self._check_unlocked()
        if not inlier_factor > 0.0:
            raise ValueError(f"inlier_factor must be positive, got {inlier_factor}")
        self._inlier_factor = float(inlier_factor)

    @property
    def preliminary_subset_size(self) -> int:
        """Readings drawn per subset; never below min_readings."""
        if self._preliminary_subset_size is None:
            return self.min_readings
        return max(self._preliminary_subset_size, self.min_readings)

    @preliminary_subset_size.setter
    def preliminary_subset_size(self, subset_size: Optional[int]) -> None:
        self._check_unlocked()
        if subset_size is not None and subset_size < self.min_readings:
            raise ValueError(
                f"preliminary_subset_size must be >= {self.min_readings}, "
                f"got {subset_size}"
            )
        self._preliminary_subset_size = None if subset_size is None else int(subset_size)

    @property
    def refine_result(self) -> bool:
        return self._refine_result

    @refine_result.setter
    def refine_result(self, refine: bool) -> None:
        self._check_unlocked()
        self._refine_result = bool(refine)

    @property
    def keep_covariance(self) -> bool:
        return self._keep_covariance

    @keep_covariance.setter
    def keep_covariance(self, keep: bool) -> None:
        self._check_unlocked()
        self._keep_covariance = bool(keep)

    @property
    def rng(self) -> np.random.Generator:
        return self._rng

    @rng.setter
    def rng(self, rng: Union[np.random.Generator, int, None]) -> None:
        self._check_unlocked()
        self._rng = np.random.default_rng(rng)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    _CONFIGURED_ATTRIBUTES = (
        "_position_estimation_enabled",
        "_transmitted_power_estimation_enabled",
        "_path_loss_estimation_enabled",
        "_stop_threshold",
        "_confidence",
        "_max_iterations",
        "_progress_delta",
        "_inlier_factor",
        "_preliminary_subset_size",
        "_refine_result",
        "_keep_covariance",
        "_initial_path_loss_exponent",
        "_initial_transmitted_power_dbm",
        "_initial_position",
        "_rng",
    )

    def configure(self, config: RobustEstimatorConfig) -> None:
        """
        Apply a configuration.

        Either every value is applied or, if one is rejected, the estimator
        is left unchanged. The random generator is reseeded only when the
        configuration carries a seed.

        Raises:
            LockedError: If an estimation is running.
            ValueError: If a value is invalid for this estimator.
        """
        self._check_unlocked()
        previous = {name: getattr(self, name) for name in self._CONFIGURED_ATTRIBUTES}
        try:
            self.position_estimation_enabled = config.position_estimation_enabled
            self.transmitted_power_estimation_enabled = (
                config.transmitted_power_estimation_enabled
            )
            self.path_loss_estimation_enabled = config.path_loss_estimation_enabled
            self.stop_threshold = config.stop_threshold
            self.confidence = config.confidence
            self.max_iterations = config.max_iterations
            self.progress_delta = config.progress_delta
            self.inlier_factor = config.inlier_factor
            self.preliminary_subset_size = config.preliminary_subset_size
            self.refine_result = config.refine_result
            self.keep_covariance = config.keep_covariance
            self.initial_path_loss_exponent = config.initial_path_loss_exponent
            self.initial_transmitted_power_dbm = config.initial_transmitted_power_dbm
            self.initial_position = config.initial_position
            if config.seed is not None:
                self.rng = config.seed
        except (ValueError, TypeError):
            for name, value in previous.items():
                setattr(self, name, value)
            raise

    @property
    def config(self) -> Optional[RobustEstimatorConfig]:
        """
        Snapshot of the current configuration (without seed).

        None while no parameter is enabled for estimation, since such a
        configuration cannot be applied.
        """
        if not self.parameterization.is_resolvable:
            return None
        with warnings.catch_warnings():
            # Unusual path-loss exponents were accepted by the setter already
            warnings.simplefilter("ignore", UserWarning)
            return RobustEstimatorConfig(
                stop_threshold=self._stop_threshold,
                confidence=self._confidence,
                max_iterations=self._max_iterations,
                progress_delta=self._progress_delta,
                inlier_factor=self._inlier_factor,
                preliminary_subset_size=self._preliminary_subset_size,
                position_estimation_enabled=self._position_estimation_enabled,
                transmitted_power_estimation_enabled=self._transmitted_power_estimation_enabled,
                path_loss_estimation_enabled=self._path_loss_estimation_enabled,
                refine_result=self._refine_result,
                keep_covariance=self._keep_covariance,
                initial_path_loss_exponent=self._initial_path_loss_exponent,
                initial_transmitted_power_dbm=self._initial_transmitted_power_dbm,
                initial_position=(
                    None if self._initial_position is None
                    else self._initial_position.tolist()
                ),
            )

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """True if ready and there are enough readings for one subset."""
        return (
            super().is_ready
            and len(self._readings) >= self.preliminary_subset_size
        )

    @property
    def inliers_data(self) -> Optional[InliersData]:
        """Inlier classification of the last estimation."""
        return self._inliers_data

    def _reset_results(self) -> None:
        super()._reset_results()
        self._inliers_data: Optional[InliersData] = None

    def _estimate(self) -> None:
        observations = RssiObservations.from_readings(self._readings)
        parameterization = self.parameterization

        def solve(indices: np.ndarray) -> RadioSourceSolution:
            return solve_preliminary(
                observations.subset(indices),
                parameterization,
                self._initial_position,
                self._initial_transmitted_power_dbm,
                self._initial_path_loss_exponent,
            )

        search = LMedSRobustEstimator(
            num_samples=len(observations),
            subset_size=self.preliminary_subset_size,
            solve=solve,
            residuals=observations.residuals,
            stop_threshold=self._stop_threshold,
            confidence=self._confidence,
            max_iterations=self._max_iterations,
            progress_delta=self._progress_delta,
            inlier_factor=self._inlier_factor,
            rng=self._rng,
            on_next_iteration=self._notify_next_iteration,
            on_progress_change=self._notify_progress_change,
        )
        best = search.estimate()
        self._inliers_data = search.inliers_data
        log.debug(
            "LMedS search finished after %d iterations: median residual %.3e, "
            "%d/%d inliers",
            search.iterations,
            search.best_median_residual,
            self._inliers_data.num_inliers,
            len(observations),
        )

        covariance = None
        if self._refine_result:
            try:
                refined = refine_solution(
                    observations.subset(self._inliers_data.inliers),
                    parameterization,
                    best,
                )
            except RefinementError as e:
                log.info("Refinement failed, keeping unrefined estimate: %s", e)
            else:
                best = refined.solution
                covariance = refined.covariance

        self._publish(best, covariance, self._keep_covariance)

    def _notify_next_iteration(self, iteration: int) -> None:
        if self._listener is not None:
            self._listener.on_estimate_next_iteration(self, iteration)

    def _notify_progress_change(self, progress: float) -> None:
        if self._listener is not None:
            self._listener.on_estimate_progress_change(self, progress)
