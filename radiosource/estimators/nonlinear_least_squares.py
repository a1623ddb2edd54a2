"""
Weighted nonlinear least squares using Levenberg-Marquardt.

This module implements the damped Gauss-Newton iteration used both to solve
preliminary radio source candidates from small subsets of readings and to
refine the best candidate over all inlier readings.

Mathematical Formulation:
    Given observations y, per-observation weights w and a measurement
    model h(x), we seek:
        x̂ = argmin ½ Σ w_i (y_i - h_i(x))²

    Levenberg-Marquardt update:
        (J'WJ + μI) Δx = J'W r
    where r = y - h(x), J = ∂h/∂x and μ is an adaptive damping parameter.

    Covariance at the solution:
        P = s² (J'WJ)⁻¹
    where s² is the reduced chi-square Σ w_i r_i² / (m - n), optionally
    floored so that reported uncertainty never falls below the one implied
    by the weights.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


@dataclass
class NonlinearLSResult:
    """Outcome of a weighted nonlinear least squares solve.

    Attributes:
        x: Estimated parameter vector.
        covariance: Covariance matrix (n × n), or None if not requested or
            if the information matrix J'WJ is singular.
        iterations: Number of iterations performed.
        residuals: Final residuals r = y - h(x̂).
        cost: Final cost value ½ Σ w r².
        chi_square: Final weighted sum of squared residuals Σ w r².
        converged: Whether the solver converged within tolerance.
        rank: Rank of the Jacobian at the solution.
    """

    x: np.ndarray
    covariance: Optional[np.ndarray]
    iterations: int
    residuals: np.ndarray
    cost: float
    chi_square: float
    converged: bool
    rank: int


def levenberg_marquardt(
    h: Callable[[np.ndarray], np.ndarray],
    jacobian: Callable[[np.ndarray], np.ndarray],
    y: np.ndarray,
    x0: np.ndarray,
    weights: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-10,
    gtol: float = 1e-12,
    mu0: float = 1e-3,
    return_covariance: bool = True,
    variance_floor: Optional[float] = None,
) -> NonlinearLSResult:
    """
    Levenberg-Marquardt solver for weighted nonlinear least squares.

    Solves: x̂ = argmin ½ Σ w_i (y_i - h_i(x))²

    The damping μ is adapted from the gain ratio ρ between the actual and
    the predicted cost decrease. Steps with ρ > 0 are accepted and μ shrinks
    towards a Gauss-Newton step; rejected steps grow μ towards a short
    gradient step until the cost decreases or μ exceeds 1e12.

    Args:
        h: Measurement model h: R^n → R^m.
        jacobian: Jacobian J = ∂h/∂x (m × n).
        y: Observations (m,).
        x0: Initial parameters (n,).
        weights: Optional per-observation weights (m,), typically 1/σ².
            Unit weights if None.
        max_iter: Maximum number of outer iterations.
        tol: Relative tolerance on ‖Δx‖.
        gtol: Tolerance on the gradient ‖J'Wr‖∞.
        mu0: Initial damping.
        return_covariance: Whether to compute the covariance at x̂.
        variance_floor: If given, the residual variance scaling the
            covariance is max(reduced chi-square, variance_floor).

    Returns:
        NonlinearLSResult with the estimate, covariance and diagnostics.

    Raises:
        ValueError: If inputs have inconsistent shapes or invalid weights.
        FloatingPointError: If the model produces non-finite values.

    Example:
        >>> # Transmitted power (dBm) and path-loss exponent from RSSI at
        >>> # known distances, unit reference distance
        >>> d = np.array([1.0, 2.0, 5.0, 10.0, 20.0])
        >>> def h(x):
        ...     return x[0] - 10.0 * x[1] * np.log10(d)
        >>> def jac(x):
        ...     return np.column_stack([np.ones_like(d), -10.0 * np.log10(d)])
        >>> y = h(np.array([-20.0, 2.5]))
        >>> result = levenberg_marquardt(h, jac, y, x0=np.array([0.0, 2.0]))
        >>> result.converged
        True
    """
    y = np.asarray(y, dtype=float)
    x = np.array(x0, dtype=float)

    if y.ndim != 1:
        raise ValueError(f"y must be 1D array, got shape {y.shape}")
    if x.ndim != 1:
        raise ValueError(f"x0 must be 1D array, got shape {x.shape}")

    m = len(y)
    n = len(x)

    if weights is None:
        w = np.ones(m)
    else:
        w = np.asarray(weights, dtype=float)
        if w.ndim != 1 or len(w) != m:
            raise ValueError(f"weights must be 1D array of length {m}")
        if np.any(w < 0) or not np.all(np.isfinite(w)):
            raise ValueError("weights must be finite and non-negative")

    def evaluate(x_eval: np.ndarray):
        hx = np.asarray(h(x_eval), dtype=float)
        if hx.shape != (m,):
            raise ValueError(f"h(x) returned shape {hx.shape}, expected ({m},)")
        r_eval = y - hx
        if not np.all(np.isfinite(r_eval)):
            raise FloatingPointError("Measurement model produced non-finite values")
        return r_eval, 0.5 * np.sum(w * r_eval ** 2)

    mu = mu0
    nu = 2.0

    r, cost = evaluate(x)
    converged = False
    iteration = 0
    identity = np.eye(n)

    for iteration in range(max_iter):
        J = np.asarray(jacobian(x), dtype=float)
        if J.shape != (m, n):
            raise ValueError(f"Jacobian shape {J.shape}, expected ({m}, {n})")

        information = (J.T * w) @ J
        gradient = (J.T * w) @ r

        if np.max(np.abs(gradient)) < gtol:
            converged = True
            break

        step_accepted = False
        while True:
            damped = information + mu * identity
            try:
                step = np.linalg.solve(damped, gradient)
            except np.linalg.LinAlgError:
                step = np.linalg.lstsq(damped, gradient, rcond=None)[0]

            r_trial, cost_trial = evaluate(x + step)

            predicted = 0.5 * step @ (mu * step + gradient)
            rho = (cost - cost_trial) / predicted if predicted > 0.0 else 0.0

            if rho > 0.0:
                x, r, cost = x + step, r_trial, cost_trial
                mu *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                nu = 2.0
                step_accepted = True
                break

            mu *= nu
            nu *= 2.0
            if mu > 1e12:
                break

        step_norm = np.linalg.norm(step)
        if step_norm < tol * (np.linalg.norm(x) + tol):
            converged = True
            break
        if not step_accepted:
            # No decrease for any damping: stationary point
            converged = step_norm < np.sqrt(tol) * (np.linalg.norm(x) + 1.0)
            break

    J = np.asarray(jacobian(x), dtype=float)
    rank = int(np.linalg.matrix_rank(J)) if J.size else 0
    chi_square = float(np.sum(w * r ** 2))

    covariance = None
    if return_covariance and rank == n:
        s2 = chi_square / (m - n) if m > n else 1.0
        if variance_floor is not None:
            s2 = max(s2, variance_floor)
        try:
            covariance = s2 * np.linalg.inv((J.T * w) @ J)
        except np.linalg.LinAlgError:
            covariance = None

    return NonlinearLSResult(
        x=x,
        covariance=covariance,
        iterations=iteration + 1,
        residuals=r,
        cost=0.5 * chi_square,
        chi_square=chi_square,
        converged=converged,
        rank=rank,
    )
