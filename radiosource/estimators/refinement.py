"""
Refinement of a radio source candidate over its inlier readings.

The best LMedS candidate is polished by weighted Levenberg-Marquardt over
the inliers only, weighting each reading by 1/σ² (reading standard
deviation, or 1 dB when unknown). The parameter covariance at the solution
is:

    P = s² (J'WJ)⁻¹,   s² = max(χ² / (m - k), 1)

so that reported uncertainty never drops below the one implied by the
reading standard deviations.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from radiosource.estimators.nonlinear_least_squares import levenberg_marquardt
from radiosource.estimators.parameterization import UnknownParameterization
from radiosource.estimators.rssi_model import (
    RadioSourceSolution,
    RssiModel,
    RssiObservations,
)
from radiosource.exceptions import InvalidPropagationInputError, RefinementError

DEFAULT_VARIANCE_FLOOR = 1.0


@dataclass
class RefinementResult:
    """Refined solution and its uncertainty.

    Attributes:
        solution: Refined radio source parameters.
        covariance: Covariance (k × k) of the enabled unknowns.
        chi_square: Weighted sum of squared residuals at the solution.
        iterations: Levenberg-Marquardt iterations performed.
    """

    solution: RadioSourceSolution
    covariance: np.ndarray
    chi_square: float
    iterations: int


def refine_solution(
    observations: RssiObservations,
    parameterization: UnknownParameterization,
    initial: RadioSourceSolution,
    max_iter: int = 100,
    variance_floor: Optional[float] = DEFAULT_VARIANCE_FLOOR,
) -> RefinementResult:
    """
    Weighted nonlinear least squares over the given observations.

    Args:
        observations: Inlier observations.
        parameterization: Which parameters are unknown.
        initial: Initial solution. Its values are also used for the
            parameters that are not estimated.
        max_iter: Maximum Levenberg-Marquardt iterations.
        variance_floor: Lower bound of the residual variance scaling the
            covariance. None disables the bound.

    Returns:
        RefinementResult.

    Raises:
        RefinementError: If there are too few observations, the solver does
            not converge or the information matrix is singular.
    """
    if len(observations) < parameterization.min_readings:
        raise RefinementError(
            f"Refinement needs at least {parameterization.min_readings} inliers, "
            f"got {len(observations)}"
        )

    model = RssiModel(
        observations,
        parameterization,
        initial.position,
        initial.transmitted_power_dbm,
        initial.path_loss_exponent,
    )
    try:
        result = levenberg_marquardt(
            model.h,
            model.jacobian,
            observations.rssi,
            model.pack(initial),
            weights=model.weights,
            max_iter=max_iter,
            return_covariance=True,
            variance_floor=variance_floor,
        )
    except (InvalidPropagationInputError, FloatingPointError, np.linalg.LinAlgError) as e:
        raise RefinementError(str(e)) from e

    if not result.converged:
        raise RefinementError(
            f"Refinement did not converge after {result.iterations} iterations"
        )
    if result.covariance is None:
        raise RefinementError("Information matrix is singular")

    return RefinementResult(
        solution=model.solution(result.x),
        covariance=result.covariance,
        chi_square=result.chi_square,
        iterations=result.iterations,
    )


def split_covariance(
    covariance: np.ndarray,
    parameterization: UnknownParameterization,
) -> Tuple[Optional[np.ndarray], Optional[float], Optional[float]]:
    """
    Extract per-quantity blocks of a parameter covariance.

    Returns:
        Tuple (position covariance (D, D), transmitted power variance,
        path-loss exponent variance); entries of parameters that are not
        estimated are None.
    """
    position_covariance = None
    if parameterization.position:
        block = parameterization.position_slice
        position_covariance = covariance[block, block].copy()

    power_variance = None
    if parameterization.transmitted_power:
        index = parameterization.transmitted_power_index
        power_variance = float(covariance[index, index])

    path_loss_variance = None
    if parameterization.path_loss:
        index = parameterization.path_loss_index
        path_loss_variance = float(covariance[index, index])

    return position_covariance, power_variance, path_loss_variance
