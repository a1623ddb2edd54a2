"""
RSSI measurement model restricted to the unknown radio source parameters.

Binds located RSSI observations, a parameterization and the fixed values of
the parameters that are not estimated into the h(x) / J(x) pair consumed by
the nonlinear least squares solver, and evaluates residuals of candidate
solutions in the dBm domain.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from radiosource.estimators.parameterization import UnknownParameterization
from radiosource.rf.measurement_models import (
    DEFAULT_PATH_LOSS_EXPONENT,
    received_power_dbm,
    received_power_dbm_jacobian,
)
from radiosource.rf.types import RssiReading

# Standard deviation (dB) assumed for readings without one
DEFAULT_POWER_STANDARD_DEVIATION = 1.0


@dataclass
class RadioSourceSolution:
    """Candidate radio source parameters.

    Attributes:
        position: Radio source position (D,).
        transmitted_power_dbm: Equivalent transmitted power in dBm.
        path_loss_exponent: Path-loss exponent.
    """

    position: np.ndarray
    transmitted_power_dbm: float
    path_loss_exponent: float


@dataclass
class RssiObservations:
    """Array view of a list of located RSSI readings.

    Attributes:
        positions: Receiver positions (m, D).
        rssi: Measured RSSI in dBm (m,).
        standard_deviations: RSSI standard deviations in dB (m,).
        frequency: Carrier frequency of the radio source in Hz.
    """

    positions: np.ndarray
    rssi: np.ndarray
    standard_deviations: np.ndarray
    frequency: float

    @classmethod
    def from_readings(
        cls,
        readings: Sequence[RssiReading],
        default_standard_deviation: float = DEFAULT_POWER_STANDARD_DEVIATION,
    ) -> "RssiObservations":
        """
        Build observations from readings of a single radio source.

        All readings are assumed to belong to the same radio source, so the
        frequency of the first reading is used.
        """
        if len(readings) == 0:
            raise ValueError("At least one reading is required")
        return cls(
            positions=np.array([reading.position for reading in readings], dtype=float),
            rssi=np.array([reading.rssi for reading in readings], dtype=float),
            standard_deviations=np.array(
                [
                    reading.rssi_standard_deviation
                    if reading.rssi_standard_deviation is not None
                    else default_standard_deviation
                    for reading in readings
                ],
                dtype=float,
            ),
            frequency=readings[0].source.frequency,
        )

    def __len__(self) -> int:
        return len(self.rssi)

    @property
    def dims(self) -> int:
        return self.positions.shape[1]

    def subset(self, indices: np.ndarray) -> "RssiObservations":
        """Observations restricted to the given indices or boolean mask."""
        return RssiObservations(
            positions=self.positions[indices],
            rssi=self.rssi[indices],
            standard_deviations=self.standard_deviations[indices],
            frequency=self.frequency,
        )

    def predict(self, solution: RadioSourceSolution) -> np.ndarray:
        """Expected RSSI (dBm) of every observation under a solution."""
        distances = np.linalg.norm(self.positions - solution.position, axis=1)
        return received_power_dbm(
            solution.transmitted_power_dbm,
            distances,
            self.frequency,
            solution.path_loss_exponent,
        )

    def residuals(self, solution: RadioSourceSolution) -> np.ndarray:
        """Residuals (measured - expected) in dBm.

        Raises:
            InvalidPropagationInputError: If the solution lies on a receiver.
        """
        return self.rssi - self.predict(solution)


class RssiModel:
    """
    Measurement model h(x) over the enabled unknowns of a radio source.

    Args:
        observations: Located RSSI observations.
        parameterization: Which parameters are unknown.
        position: Fixed position, used when position is not estimated.
        transmitted_power_dbm: Fixed power, used when not estimated.
        path_loss_exponent: Fixed exponent, used when not estimated.
    """

    def __init__(
        self,
        observations: RssiObservations,
        parameterization: UnknownParameterization,
        position: Optional[np.ndarray] = None,
        transmitted_power_dbm: float = 0.0,
        path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
    ):
        if observations.dims != parameterization.dims:
            raise ValueError(
                f"Observations are {observations.dims}D but parameterization "
                f"is {parameterization.dims}D"
            )
        self.observations = observations
        self.parameterization = parameterization
        self.position = (
            np.zeros(parameterization.dims) if position is None
            else np.asarray(position, dtype=float)
        )
        self.transmitted_power_dbm = transmitted_power_dbm
        self.path_loss_exponent = path_loss_exponent

    def solution(self, x: np.ndarray) -> RadioSourceSolution:
        """Convert a parameter vector into a full solution."""
        position, power, path_loss = self.parameterization.unpack(
            x, self.position, self.transmitted_power_dbm, self.path_loss_exponent
        )
        return RadioSourceSolution(position, power, path_loss)

    def pack(self, solution: RadioSourceSolution) -> np.ndarray:
        """Convert a full solution into a parameter vector."""
        return self.parameterization.pack(
            solution.position,
            solution.transmitted_power_dbm,
            solution.path_loss_exponent,
        )

    def h(self, x: np.ndarray) -> np.ndarray:
        return self.observations.predict(self.solution(x))

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        solution = self.solution(x)
        J = received_power_dbm_jacobian(
            solution.position,
            self.observations.positions,
            self.observations.frequency,
            solution.path_loss_exponent,
        )
        return J[:, self.parameterization.column_mask]

    @property
    def weights(self) -> np.ndarray:
        """Observation weights 1/σ²."""
        return 1.0 / self.observations.standard_deviations ** 2
