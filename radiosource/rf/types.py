"""Type definitions for located RSSI readings and estimated radio sources.

This module defines the data structures exchanged with radio source
estimators: the emitter identity, the located RSSI reading consumed by the
estimators and the estimated radio source they produce.
"""

from dataclasses import dataclass
from typing import Hashable, Optional

import numpy as np

from radiosource.rf.measurement_models import dbm_to_power

# Type alias for clarity and documentation
Position = np.ndarray  # Shape (D,), typically D=2 (x, y) or D=3 (x, y, z)


@dataclass(frozen=True)
class RadioSource:
    """
    Identity of a radio emitter (Wi-Fi access point, BLE beacon, ...).

    Attributes:
        identifier: Opaque hashable identifier (BSSID, beacon UUID, ...).
        frequency: Carrier frequency in Hz.

    Examples:
        >>> ap = RadioSource("00:11:22:33:44:55", 2.4e9)
        >>> ap.frequency
        2400000000.0
    """

    identifier: Hashable
    frequency: float

    def __post_init__(self) -> None:
        """Validate the carrier frequency."""
        if not np.isfinite(self.frequency) or self.frequency <= 0.0:
            raise ValueError(f"frequency must be positive, got {self.frequency}")


@dataclass
class RssiReading:
    """
    RSSI reading of a radio source taken at a known receiver position.

    Attributes:
        source: Radio source the reading belongs to.
        rssi: Received signal strength in dBm.
        position: Receiver position, shape (D,).
        rssi_standard_deviation: Optional standard deviation of the RSSI
            measurement in dB. Used to weight the reading during refinement.

    Examples:
        >>> ap = RadioSource("bssid", 2.4e9)
        >>> reading = RssiReading(ap, -62.5, np.array([1.0, 2.0, 0.5]))
        >>> reading.dims
        3
    """

    source: RadioSource
    rssi: float
    position: Position
    rssi_standard_deviation: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate reading consistency after initialization."""
        self.position = np.asarray(self.position, dtype=float)
        if self.position.ndim != 1 or self.position.size == 0:
            raise ValueError(
                f"position must be a 1D array (D,), got shape {self.position.shape}"
            )
        if not np.all(np.isfinite(self.position)):
            raise ValueError("position must be finite")
        if not np.isfinite(self.rssi):
            raise ValueError(f"rssi must be finite, got {self.rssi}")
        if self.rssi_standard_deviation is not None and not (
            self.rssi_standard_deviation > 0.0
        ):
            raise ValueError(
                "rssi_standard_deviation must be positive, "
                f"got {self.rssi_standard_deviation}"
            )

    @property
    def dims(self) -> int:
        """Spatial dimension of the receiver position."""
        return self.position.size


@dataclass(frozen=True)
class EstimatedRadioSource:
    """
    Radio source with its estimated position and transmission parameters.

    Attributes:
        source: Identity of the estimated radio source.
        position: Estimated position (D,).
        transmitted_power_dbm: Estimated transmitted power in dBm.
        path_loss_exponent: Estimated (or assumed) path-loss exponent.
        position_covariance: Position covariance (D, D), or None.
        transmitted_power_standard_deviation: Std of transmitted power in dB,
            or None if the power was not estimated or refined.
        path_loss_exponent_standard_deviation: Std of the path-loss
            exponent, or None if it was not estimated or refined.
    """

    source: RadioSource
    position: Position
    transmitted_power_dbm: float
    path_loss_exponent: float
    position_covariance: Optional[np.ndarray] = None
    transmitted_power_standard_deviation: Optional[float] = None
    path_loss_exponent_standard_deviation: Optional[float] = None

    @property
    def transmitted_power(self) -> float:
        """Estimated transmitted power in mW."""
        return dbm_to_power(self.transmitted_power_dbm)
