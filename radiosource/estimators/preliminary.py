"""
Preliminary radio source solutions from small subsets of readings.

Each trial of the robust search solves the radio source parameters from a
minimal (or slightly over-determined) subset of readings:

- When the position is known, the logarithmic propagation model
      Pr_i = Pte + n * (kdB - 10*log10(d_i))
  is linear in (Pte, n) and is solved in closed form by linear least squares.
- When the position is unknown, an initial position is obtained from the
  provided guess, a linear trilateration of model-inverted distances, or
  the centroid of the receivers; the transmitted power is then solved in
  closed form at that position and Levenberg-Marquardt polishes all the
  enabled unknowns.

Any numerical failure raises PreliminarySolutionError so that the search can
discard the subset and draw another one.
"""

from typing import Optional

import numpy as np

from radiosource.estimators.nonlinear_least_squares import levenberg_marquardt
from radiosource.estimators.parameterization import UnknownParameterization
from radiosource.estimators.rssi_model import (
    RadioSourceSolution,
    RssiModel,
    RssiObservations,
)
from radiosource.exceptions import (
    InvalidPropagationInputError,
    PreliminarySolutionError,
)
from radiosource.rf.measurement_models import (
    DEFAULT_PATH_LOSS_EXPONENT,
    distance_from_rssi,
    path_loss_constant,
)


def trilaterate(positions: np.ndarray, distances: np.ndarray) -> np.ndarray:
    """
    Linear least-squares trilateration.

    Subtracting the first range equation ‖x - p_0‖² = d_0² from the others
    yields the linear system:
        2 (p_i - p_0)' x = d_0² - d_i² + ‖p_i‖² - ‖p_0‖²

    Args:
        positions: Anchor positions (m, D), m >= D + 1.
        distances: Ranges to each anchor (m,).

    Returns:
        Position estimate (D,).

    Raises:
        PreliminarySolutionError: If anchors are degenerate (collinear,
            coplanar in 3D or coincident).
    """
    positions = np.asarray(positions, dtype=float)
    distances = np.asarray(distances, dtype=float)
    p0 = positions[0]
    A = 2.0 * (positions[1:] - p0)
    b = (
        distances[0] ** 2
        - distances[1:] ** 2
        + np.sum(positions[1:] ** 2, axis=1)
        - np.sum(p0 ** 2)
    )
    solution, _, rank, _ = np.linalg.lstsq(A, b, rcond=None)
    if rank < positions.shape[1]:
        raise PreliminarySolutionError("Degenerate receiver geometry for trilateration")
    return solution


def solve_power_and_path_loss(
    observations: RssiObservations,
    position: np.ndarray,
    transmitted_power_dbm: Optional[float],
    path_loss_exponent: Optional[float],
) -> RadioSourceSolution:
    """
    Closed-form weighted LS for transmitted power and/or path-loss exponent.

    Pass None for each quantity that must be solved; the other one is kept
    fixed. With the position fixed the model is linear:
        Pr_i = Pte + n * g_i,   g_i = kdB - 10*log10(d_i)

    Raises:
        PreliminarySolutionError: If the linear system is rank deficient.
        InvalidPropagationInputError: If the position lies on a receiver.
    """
    if transmitted_power_dbm is not None and path_loss_exponent is not None:
        raise ValueError("At least one of power and path-loss must be solved")

    position = np.asarray(position, dtype=float)
    distances = np.linalg.norm(observations.positions - position, axis=1)
    if np.any(distances <= 0.0):
        raise InvalidPropagationInputError("Radio source lies on a receiver position")

    k_db = 10.0 * np.log10(path_loss_constant(observations.frequency))
    g = k_db - 10.0 * np.log10(distances)
    y = observations.rssi

    columns = []
    if transmitted_power_dbm is None:
        columns.append(np.ones_like(g))
    else:
        y = y - transmitted_power_dbm
    if path_loss_exponent is None:
        columns.append(g)
    else:
        y = y - path_loss_exponent * g

    A = np.column_stack(columns)
    sqrt_w = 1.0 / observations.standard_deviations
    solution, _, rank, _ = np.linalg.lstsq(A * sqrt_w[:, None], y * sqrt_w, rcond=None)
    if rank < A.shape[1]:
        raise PreliminarySolutionError("Power/path-loss system is rank deficient")

    index = 0
    if transmitted_power_dbm is None:
        transmitted_power_dbm = float(solution[index])
        index += 1
    if path_loss_exponent is None:
        path_loss_exponent = float(solution[index])

    return RadioSourceSolution(position, transmitted_power_dbm, path_loss_exponent)


def initial_solution(
    observations: RssiObservations,
    parameterization: UnknownParameterization,
    initial_position: Optional[np.ndarray] = None,
    initial_transmitted_power_dbm: Optional[float] = None,
    initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
) -> RadioSourceSolution:
    """
    Seed values for the radio source parameters.

    When the position is not estimated, the returned solution is already the
    least squares solution of the remaining (linear) unknowns.

    Args:
        observations: Observations to seed from.
        parameterization: Which parameters are unknown.
        initial_position: Known or guessed position. Required when position
            is not estimated.
        initial_transmitted_power_dbm: Known or guessed power in dBm.
            Required when power is not estimated.
        initial_path_loss_exponent: Known or guessed path-loss exponent.

    Returns:
        Seed solution.
    """
    if parameterization.position:
        if initial_position is not None:
            position = np.asarray(initial_position, dtype=float)
        elif initial_transmitted_power_dbm is not None:
            distances = distance_from_rssi(
                observations.rssi,
                initial_transmitted_power_dbm,
                observations.frequency,
                initial_path_loss_exponent,
            )
            try:
                position = trilaterate(observations.positions, distances)
            except PreliminarySolutionError:
                position = observations.positions.mean(axis=0)
        else:
            position = observations.positions.mean(axis=0)

        if parameterization.transmitted_power and initial_transmitted_power_dbm is None:
            return solve_power_and_path_loss(
                observations, position, None, initial_path_loss_exponent
            )
        return RadioSourceSolution(
            position, initial_transmitted_power_dbm, initial_path_loss_exponent
        )

    if initial_position is None:
        raise ValueError("initial_position is required when position is not estimated")
    if not parameterization.transmitted_power and initial_transmitted_power_dbm is None:
        raise ValueError(
            "initial_transmitted_power_dbm is required when power is not estimated"
        )

    return solve_power_and_path_loss(
        observations,
        initial_position,
        None if parameterization.transmitted_power else initial_transmitted_power_dbm,
        None if parameterization.path_loss else initial_path_loss_exponent,
    )


def solve_preliminary(
    observations: RssiObservations,
    parameterization: UnknownParameterization,
    initial_position: Optional[np.ndarray] = None,
    initial_transmitted_power_dbm: Optional[float] = None,
    initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT,
    max_iter: int = 100,
) -> RadioSourceSolution:
    """
    Solve one candidate radio source from a subset of observations.

    Args:
        observations: Subset of observations, at least min_readings long.
        parameterization: Which parameters are unknown.
        initial_position: Optional position guess (required if position is
            not estimated).
        initial_transmitted_power_dbm: Optional power guess in dBm
            (required if power is not estimated).
        initial_path_loss_exponent: Path-loss exponent guess or fixed value.
        max_iter: Maximum Levenberg-Marquardt iterations.

    Returns:
        Candidate solution.

    Raises:
        PreliminarySolutionError: If no candidate can be obtained from the
            subset (degenerate geometry, no convergence, invalid values).
    """
    if len(observations) < parameterization.min_readings:
        raise PreliminarySolutionError(
            f"At least {parameterization.min_readings} readings are required, "
            f"got {len(observations)}"
        )

    try:
        seed = initial_solution(
            observations,
            parameterization,
            initial_position,
            initial_transmitted_power_dbm,
            initial_path_loss_exponent,
        )
        if not parameterization.position:
            return seed

        model = RssiModel(
            observations,
            parameterization,
            seed.position,
            seed.transmitted_power_dbm,
            seed.path_loss_exponent,
        )
        result = levenberg_marquardt(
            model.h,
            model.jacobian,
            observations.rssi,
            model.pack(seed),
            weights=model.weights,
            max_iter=max_iter,
            return_covariance=False,
        )
    except (InvalidPropagationInputError, FloatingPointError, np.linalg.LinAlgError) as e:
        raise PreliminarySolutionError(str(e)) from e

    if not result.converged:
        raise PreliminarySolutionError(
            f"Solver did not converge after {result.iterations} iterations"
        )
    if result.rank < parameterization.unknown_dimension:
        raise PreliminarySolutionError("Degenerate receiver geometry")
    if not np.all(np.isfinite(result.x)):
        raise PreliminarySolutionError("Solver produced non-finite parameters")

    return model.solution(result.x)
