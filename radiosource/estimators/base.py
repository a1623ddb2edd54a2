"""
Base classes for radio source estimators.

This module defines the listener interface notified during estimation and
the abstract RadioSourceEstimator holding what every RSSI radio source
estimator shares: readings, estimation flags, initial values, locking and
the last estimation results.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from radiosource.estimators.parameterization import UnknownParameterization
from radiosource.estimators.rssi_model import RadioSourceSolution
from radiosource.estimators.refinement import split_covariance
from radiosource.exceptions import LockedError, NotReadyError
from radiosource.rf.measurement_models import (
    DEFAULT_PATH_LOSS_EXPONENT,
    dbm_to_power,
    power_to_dbm,
)
from radiosource.rf.types import EstimatedRadioSource, RssiReading


class RadioSourceEstimatorListener:
    """
    Listener notified of the progress of a radio source estimation.

    Callbacks run synchronously inside estimate(), while the estimator is
    locked. Override the ones of interest.
    """

    def on_estimate_start(self, estimator: "RadioSourceEstimator") -> None:
        """Called when an estimation starts."""

    def on_estimate_end(self, estimator: "RadioSourceEstimator") -> None:
        """Called when an estimation ends successfully."""

    def on_estimate_next_iteration(
        self, estimator: "RadioSourceEstimator", iteration: int
    ) -> None:
        """Called after each iteration of a robust estimation."""

    def on_estimate_progress_change(
        self, estimator: "RadioSourceEstimator", progress: float
    ) -> None:
        """Called when the progress of a robust estimation advances."""


class RadioSourceEstimator(ABC):
    """
    Abstract base class for RSSI radio source estimators.

    Estimates any combination of the position, transmitted power and
    path-loss exponent of a single radio source from located RSSI readings.
    Parameters that are not estimated are fixed to their initial values.

    Args:
        readings: Optional located RSSI readings of a single radio source.
        listener: Optional listener notified during estimation.
        initial_position: Optional initial position. Required when the
            position is not estimated.
        initial_transmitted_power_dbm: Optional initial power in dBm.
            Required when the power is not estimated.
        initial_path_loss_exponent: Initial path-loss exponent, used as
            fixed value when it is not estimated.
        position_estimation_enabled: Whether the position is estimated.
        transmitted_power_estimation_enabled: Whether the power is estimated.
        path_loss_estimation_enabled: Whether the path-loss exponent is
            estimated.
        dims: Spatial dimension. If None it is taken from the readings or
            the initial position, defaulting to 3.
    """

    DEFAULT_DIMENSIONS = 3

    def __init__(
        self,
        readings: Optional[Sequence[RssiReading]] = None,
        listener: Optional[RadioSourceEstimatorListener] = None,
        initial_position: Optional[np.ndarray] = None,
        initial_transmitted_power_dbm: Optional[float] = None,
        initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
        position_estimation_enabled: bool = True,
        transmitted_power_estimation_enabled: bool = True,
        path_loss_estimation_enabled: bool = False,
        dims: Optional[int] = None,
    ):
        if dims is not None and (int(dims) != dims or dims < 1):
            raise ValueError(f"dims must be a positive integer, got {dims}")

        self._locked = False
        self._dims = dims
        self._readings: Optional[Sequence[RssiReading]] = None
        self._listener = listener
        self._initial_position: Optional[np.ndarray] = None
        self._initial_transmitted_power_dbm: Optional[float] = None
        self._initial_path_loss_exponent = DEFAULT_PATH_LOSS_EXPONENT
        self._position_estimation_enabled = bool(position_estimation_enabled)
        self._transmitted_power_estimation_enabled = bool(
            transmitted_power_estimation_enabled
        )
        self._path_loss_estimation_enabled = bool(path_loss_estimation_enabled)

        self.initial_position = initial_position
        self.initial_transmitted_power_dbm = initial_transmitted_power_dbm
        self.initial_path_loss_exponent = initial_path_loss_exponent
        if readings is not None:
            self.readings = readings

        self._reset_results()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        """True while estimate() is running."""
        return self._locked

    def _check_unlocked(self) -> None:
        if self._locked:
            raise LockedError()

    # ------------------------------------------------------------------
    # Readings and listener
    # ------------------------------------------------------------------

    @property
    def number_of_dimensions(self) -> int:
        """Spatial dimension of positions."""
        if self._dims is not None:
            return self._dims
        if self._readings:
            return self._readings[0].dims
        if self._initial_position is not None:
            return self._initial_position.size
        return self.DEFAULT_DIMENSIONS

    @property
    def parameterization(self) -> UnknownParameterization:
        """Unknowns currently enabled."""
        return UnknownParameterization(
            dims=self.number_of_dimensions,
            position=self._position_estimation_enabled,
            transmitted_power=self._transmitted_power_estimation_enabled,
            path_loss=self._path_loss_estimation_enabled,
        )

    @property
    def min_readings(self) -> int:
        """Minimum number of readings required for the enabled unknowns."""
        return self.parameterization.min_readings

    def are_valid_readings(self, readings: Optional[Sequence[RssiReading]]) -> bool:
        """
        Check whether readings can be used by this estimator.

        Readings are valid when there are at least min_readings of them, all
        belong to the same radio source and all positions have the spatial
        dimension of this estimator.
        """
        if readings is None or len(readings) == 0:
            return False

        dims = self._dims if self._dims is not None else readings[0].dims
        if self._initial_position is not None and self._initial_position.size != dims:
            return False

        source = readings[0].source
        for reading in readings:
            if reading.dims != dims or reading.source != source:
                return False

        parameterization = UnknownParameterization(
            dims=dims,
            position=self._position_estimation_enabled,
            transmitted_power=self._transmitted_power_estimation_enabled,
            path_loss=self._path_loss_estimation_enabled,
        )
        return len(readings) >= parameterization.min_readings

    @property
    def readings(self) -> Optional[Sequence[RssiReading]]:
        return self._readings

    @readings.setter
    def readings(self, readings: Sequence[RssiReading]) -> None:
        self._check_unlocked()
        if not self.are_valid_readings(readings):
            raise ValueError(
                f"At least {self.min_readings} readings of a single radio source "
                "with consistent position dimensions are required"
            )
        self._readings = readings

    @property
    def listener(self) -> Optional[RadioSourceEstimatorListener]:
        return self._listener

    @listener.setter
    def listener(self, listener: Optional[RadioSourceEstimatorListener]) -> None:
        self._check_unlocked()
        self._listener = listener

    # ------------------------------------------------------------------
    # Estimation flags
    # ------------------------------------------------------------------

    @property
    def position_estimation_enabled(self) -> bool:
        return self._position_estimation_enabled

    @position_estimation_enabled.setter
    def position_estimation_enabled(self, enabled: bool) -> None:
        self._check_unlocked()
        self._position_estimation_enabled = bool(enabled)

    @property
    def transmitted_power_estimation_enabled(self) -> bool:
        return self._transmitted_power_estimation_enabled

    @transmitted_power_estimation_enabled.setter
    def transmitted_power_estimation_enabled(self, enabled: bool) -> None:
        self._check_unlocked()
        self._transmitted_power_estimation_enabled = bool(enabled)

    @property
    def path_loss_estimation_enabled(self) -> bool:
        return self._path_loss_estimation_enabled

    @path_loss_estimation_enabled.setter
    def path_loss_estimation_enabled(self, enabled: bool) -> None:
        self._check_unlocked()
        self._path_loss_estimation_enabled = bool(enabled)

    # ------------------------------------------------------------------
    # Initial values
    # ------------------------------------------------------------------

    @property
    def initial_position(self) -> Optional[np.ndarray]:
        return self._initial_position

    @initial_position.setter
    def initial_position(self, position: Optional[np.ndarray]) -> None:
        self._check_unlocked()
        if position is None:
            self._initial_position = None
            return

        position = np.array(position, dtype=float)
        if position.ndim != 1 or position.size == 0:
            raise ValueError(
                f"initial_position must be a 1D array, got shape {position.shape}"
            )
        if not np.all(np.isfinite(position)):
            raise ValueError("initial_position must be finite")
        if self._readings and position.size != self._readings[0].dims:
            raise ValueError(
                f"initial_position must have {self._readings[0].dims} coordinates, "
                f"got {position.size}"
            )
        if self._dims is not None and position.size != self._dims:
            raise ValueError(
                f"initial_position must have {self._dims} coordinates, got {position.size}"
            )
        self._initial_position = position

    @property
    def initial_transmitted_power_dbm(self) -> Optional[float]:
        return self._initial_transmitted_power_dbm

    @initial_transmitted_power_dbm.setter
    def initial_transmitted_power_dbm(self, power_dbm: Optional[float]) -> None:
        self._check_unlocked()
        if power_dbm is not None:
            if not np.isfinite(power_dbm):
                raise ValueError(f"initial_transmitted_power_dbm must be finite, got {power_dbm}")
            power_dbm = float(power_dbm)
        self._initial_transmitted_power_dbm = power_dbm

    @property
    def initial_transmitted_power(self) -> Optional[float]:
        """Initial transmitted power in mW."""
        if self._initial_transmitted_power_dbm is None:
            return None
        return dbm_to_power(self._initial_transmitted_power_dbm)

    @initial_transmitted_power.setter
    def initial_transmitted_power(self, power_mw: Optional[float]) -> None:
        self._check_unlocked()
        if power_mw is None:
            self._initial_transmitted_power_dbm = None
            return
        if not power_mw > 0.0:
            raise ValueError(f"initial_transmitted_power must be positive, got {power_mw}")
        self._initial_transmitted_power_dbm = power_to_dbm(power_mw)

    @property
    def initial_path_loss_exponent(self) -> float:
        return self._initial_path_loss_exponent

    @initial_path_loss_exponent.setter
    def initial_path_loss_exponent(self, path_loss_exponent: float) -> None:
        self._check_unlocked()
        if not (np.isfinite(path_loss_exponent) and path_loss_exponent > 0.0):
            raise ValueError(
                f"initial_path_loss_exponent must be positive, got {path_loss_exponent}"
            )
        self._initial_path_loss_exponent = float(path_loss_exponent)

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """
        True if estimate() can be called.

        Requires at least one enabled unknown, valid readings, an initial
        position when the position is not estimated and an initial power
        when the power is not estimated.
        """
        parameterization = self.parameterization
        if not parameterization.is_resolvable:
            return False
        if not self.are_valid_readings(self._readings):
            return False
        if not parameterization.position and self._initial_position is None:
            return False
        if (
            not parameterization.transmitted_power
            and self._initial_transmitted_power_dbm is None
        ):
            return False
        return True

    def estimate(self) -> EstimatedRadioSource:
        """
        Estimate the radio source from the current readings.

        Returns:
            Estimated radio source.

        Raises:
            LockedError: If an estimation is already running.
            NotReadyError: If the estimator is not ready.
            EstimationError: If the estimation fails.
        """
        if self._locked:
            raise LockedError()
        if not self.is_ready:
            raise NotReadyError()

        self._locked = True
        try:
            self._reset_results()
            if self._listener is not None:
                self._listener.on_estimate_start(self)

            self._estimate()

            if self._listener is not None:
                self._listener.on_estimate_end(self)
        finally:
            self._locked = False

        return self.estimated_radio_source

    @abstractmethod
    def _estimate(self) -> None:
        """Run the estimation and publish results. Called while locked."""
        pass

    def _reset_results(self) -> None:
        self._estimated_position: Optional[np.ndarray] = None
        self._estimated_transmitted_power_dbm = 0.0
        self._estimated_path_loss_exponent = self._initial_path_loss_exponent
        self._covariance: Optional[np.ndarray] = None
        self._estimated_position_covariance: Optional[np.ndarray] = None
        self._estimated_transmitted_power_variance: Optional[float] = None
        self._estimated_path_loss_exponent_variance: Optional[float] = None

    def _publish(
        self,
        solution: RadioSourceSolution,
        covariance: Optional[np.ndarray] = None,
        keep_covariance: bool = True,
    ) -> None:
        """Store a solution and, if available, its covariance blocks."""
        self._estimated_position = np.array(solution.position, dtype=float)
        self._estimated_transmitted_power_dbm = float(solution.transmitted_power_dbm)
        self._estimated_path_loss_exponent = float(solution.path_loss_exponent)

        if covariance is None:
            return
        (
            self._estimated_position_covariance,
            self._estimated_transmitted_power_variance,
            self._estimated_path_loss_exponent_variance,
        ) = split_covariance(covariance, self.parameterization)
        if keep_covariance:
            self._covariance = covariance

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def estimated_position(self) -> Optional[np.ndarray]:
        return self._estimated_position

    @property
    def estimated_transmitted_power_dbm(self) -> float:
        return self._estimated_transmitted_power_dbm

    @property
    def estimated_transmitted_power(self) -> float:
        """Estimated transmitted power in mW."""
        return dbm_to_power(self._estimated_transmitted_power_dbm)

    @property
    def estimated_path_loss_exponent(self) -> float:
        return self._estimated_path_loss_exponent

    @property
    def covariance(self) -> Optional[np.ndarray]:
        """Covariance of the estimated unknowns, laid out as
        [position, power (dBm), path-loss] restricted to enabled entries."""
        return self._covariance

    @property
    def estimated_position_covariance(self) -> Optional[np.ndarray]:
        return self._estimated_position_covariance

    @property
    def estimated_transmitted_power_variance(self) -> Optional[float]:
        """Variance of the estimated transmitted power in dB²."""
        return self._estimated_transmitted_power_variance

    @property
    def estimated_path_loss_exponent_variance(self) -> Optional[float]:
        return self._estimated_path_loss_exponent_variance

    @property
    def estimated_radio_source(self) -> Optional[EstimatedRadioSource]:
        """Last estimation as an EstimatedRadioSource, or None."""
        if self._estimated_position is None or not self._readings:
            return None

        power_std = self._estimated_transmitted_power_variance
        path_loss_std = self._estimated_path_loss_exponent_variance
        return EstimatedRadioSource(
            source=self._readings[0].source,
            position=self._estimated_position.copy(),
            transmitted_power_dbm=self._estimated_transmitted_power_dbm,
            path_loss_exponent=self._estimated_path_loss_exponent,
            position_covariance=self._estimated_position_covariance,
            transmitted_power_standard_deviation=(
                None if power_std is None else float(np.sqrt(power_std))
            ),
            path_loss_exponent_standard_deviation=(
                None if path_loss_std is None else float(np.sqrt(path_loss_std))
            ),
        )
