"""
Unknown parameterization of a radio source.

A radio source is described by its position (D coordinates), its
equivalent transmitted power (dBm) and the path-loss exponent of the
environment. Any subset of these can be estimated while the rest is kept
fixed to known values. The parameter vector used by the solvers is laid out
as:

    x = [position (D), transmitted power (dBm), path-loss exponent]

restricted to the enabled entries, in that order.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


def min_readings(
    position: bool,
    transmitted_power: bool,
    path_loss: bool,
    dims: int,
) -> int:
    """
    Minimum number of readings required to estimate the enabled unknowns.

    One reading more than unknowns is required because distance is a
    nonlinear function of the unknown position; the redundant reading
    disambiguates the solution.

    Args:
        position: Whether the position is estimated.
        transmitted_power: Whether the transmitted power is estimated.
        path_loss: Whether the path-loss exponent is estimated.
        dims: Spatial dimension D.

    Returns:
        unknown_dimension + 1.

    Example:
        >>> min_readings(True, True, False, dims=3)
        5
        >>> min_readings(False, True, True, dims=3)
        3
    """
    unknowns = (dims if position else 0) + int(transmitted_power) + int(path_loss)
    return unknowns + 1


@dataclass(frozen=True)
class UnknownParameterization:
    """
    Which radio source parameters are unknown and how they are laid out.

    Attributes:
        dims: Spatial dimension D of positions.
        position: Whether the position is estimated.
        transmitted_power: Whether the transmitted power is estimated.
        path_loss: Whether the path-loss exponent is estimated.
    """

    dims: int
    position: bool = True
    transmitted_power: bool = True
    path_loss: bool = False

    def __post_init__(self) -> None:
        if int(self.dims) != self.dims or self.dims < 1:
            raise ValueError(f"dims must be a positive integer, got {self.dims}")

    @property
    def unknown_dimension(self) -> int:
        """Total number of estimated scalars."""
        return (
            (self.dims if self.position else 0)
            + int(self.transmitted_power)
            + int(self.path_loss)
        )

    @property
    def min_readings(self) -> int:
        """Minimum number of readings, unknown_dimension + 1."""
        return min_readings(
            self.position, self.transmitted_power, self.path_loss, self.dims
        )

    @property
    def is_resolvable(self) -> bool:
        """True if at least one parameter is estimated."""
        return self.unknown_dimension > 0

    @property
    def column_mask(self) -> np.ndarray:
        """Boolean mask selecting enabled columns of the full (D + 2) layout."""
        return np.concatenate(
            [
                np.full(self.dims, self.position),
                [self.transmitted_power, self.path_loss],
            ]
        )

    @property
    def position_slice(self) -> Optional[slice]:
        """Slice of the position block in the parameter vector."""
        return slice(0, self.dims) if self.position else None

    @property
    def transmitted_power_index(self) -> Optional[int]:
        """Index of the transmitted power in the parameter vector."""
        if not self.transmitted_power:
            return None
        return self.dims if self.position else 0

    @property
    def path_loss_index(self) -> Optional[int]:
        """Index of the path-loss exponent in the parameter vector."""
        if not self.path_loss:
            return None
        return self.unknown_dimension - 1

    def pack(
        self,
        position: np.ndarray,
        transmitted_power_dbm: float,
        path_loss_exponent: float,
    ) -> np.ndarray:
        """Build the parameter vector of the enabled unknowns."""
        full = np.concatenate(
            [
                np.asarray(position, dtype=float).reshape(self.dims),
                [transmitted_power_dbm, path_loss_exponent],
            ]
        )
        return full[self.column_mask]

    def unpack(
        self,
        x: np.ndarray,
        position: np.ndarray,
        transmitted_power_dbm: float,
        path_loss_exponent: float,
    ) -> Tuple[np.ndarray, float, float]:
        """
        Merge a parameter vector with the fixed values of disabled unknowns.

        Args:
            x: Parameter vector of the enabled unknowns.
            position: Position used when position is not estimated.
            transmitted_power_dbm: Power used when power is not estimated.
            path_loss_exponent: Exponent used when it is not estimated.

        Returns:
            Tuple (position, transmitted_power_dbm, path_loss_exponent).
        """
        x = np.asarray(x, dtype=float)
        if x.shape != (self.unknown_dimension,):
            raise ValueError(
                f"x must have shape ({self.unknown_dimension},), got {x.shape}"
            )

        if self.position:
            position = x[self.position_slice].copy()
        else:
            position = np.asarray(position, dtype=float).reshape(self.dims)
        if self.transmitted_power:
            transmitted_power_dbm = float(x[self.transmitted_power_index])
        if self.path_loss:
            path_loss_exponent = float(x[self.path_loss_index])
        return position, float(transmitted_power_dbm), float(path_loss_exponent)
