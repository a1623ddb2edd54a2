"""
Least Median of Squares (LMedS) robust search.

LMedS draws random subsets of observations, solves a candidate from each
subset and scores the candidate by the median of its squared residuals over
*all* observations. Since the median ignores up to half of the observations,
the best-scoring candidate is unaffected by outliers as long as they are a
minority.

Robust scale (Rousseeuw & Leroy, 1987):
    s = 1/Φ⁻¹(0.75) · (1 + 5/(n - p)) · √median(r²)
where 1/Φ⁻¹(0.75) ≈ 1.4826 makes s a consistent estimate of the standard
deviation for Gaussian residuals, n is the number of observations and p the
subset size.

Number of trials needed to draw at least one outlier-free subset with a
given confidence:
    N = log(1 - confidence) / log(1 - w^p)
where w is the current inlier ratio, capped at the 50% breakdown point of
LMedS since a poor candidate inflates its own scale and inlier ratio.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

import numpy as np
from scipy.stats import norm

from radiosource.config import (
    DEFAULT_CONFIDENCE,
    DEFAULT_INLIER_FACTOR,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PROGRESS_DELTA,
    DEFAULT_STOP_THRESHOLD,
)
from radiosource.exceptions import (
    EstimationError,
    InvalidPropagationInputError,
    PreliminarySolutionError,
)

log = logging.getLogger(__name__)

# Consistency constant of the median absolute residual for Gaussian noise
LMEDS_NORM_CONSTANT = 1.0 / norm.ppf(0.75)

# Largest outlier fraction LMedS tolerates
LMEDS_BREAKDOWN_POINT = 0.5

Candidate = TypeVar("Candidate")


@dataclass(frozen=True)
class InliersData:
    """
    Inlier classification of the best LMedS candidate.

    Attributes:
        inliers: Boolean membership per observation (n,).
        residuals: Residual of every observation under the best candidate.
        num_inliers: Number of inliers.
        best_median_residual: Median of squared residuals of the candidate.
        scale: Robust standard deviation estimated from the median.
        threshold: Residual magnitude separating inliers from outliers.
    """

    inliers: np.ndarray
    residuals: np.ndarray
    num_inliers: int
    best_median_residual: float
    scale: float
    threshold: float

    @property
    def inlier_ratio(self) -> float:
        """Fraction of observations classified as inliers."""
        return self.num_inliers / len(self.inliers)


def _read_only(values: np.ndarray) -> np.ndarray:
    values = np.array(values)
    values.setflags(write=False)
    return values


def classify_inliers(
    residuals: np.ndarray,
    best_median_residual: float,
    subset_size: int,
    stop_threshold: float = DEFAULT_STOP_THRESHOLD,
    inlier_factor: float = DEFAULT_INLIER_FACTOR,
) -> InliersData:
    """
    Classify observations as inliers from the LMedS robust scale.

    The threshold is floored at √stop_threshold, the residual level at which
    the search considers a fit exact.

    Args:
        residuals: Residuals of all observations (n,).
        best_median_residual: Median of squared residuals.
        subset_size: Number of observations per subset (p).
        stop_threshold: Stop threshold of the search.
        inlier_factor: Multiple of the robust scale accepted as inlier.

    Returns:
        Immutable InliersData.
    """
    residuals = np.asarray(residuals, dtype=float)
    n = len(residuals)

    scale = (
        LMEDS_NORM_CONSTANT
        * (1.0 + 5.0 / max(n - subset_size, 1))
        * math.sqrt(best_median_residual)
    )
    threshold = max(inlier_factor * scale, math.sqrt(stop_threshold))
    inliers = residuals ** 2 <= threshold ** 2

    return InliersData(
        inliers=_read_only(inliers),
        residuals=_read_only(residuals),
        num_inliers=int(np.count_nonzero(inliers)),
        best_median_residual=float(best_median_residual),
        scale=float(scale),
        threshold=float(threshold),
    )


def required_iterations(
    inlier_ratio: float,
    subset_size: int,
    confidence: float,
    max_iterations: int,
) -> int:
    """
    Number of trials needed to draw an outlier-free subset.

    Returns:
        ⌈log(1 - confidence) / log(1 - w^p)⌉ clamped to [1, max_iterations].

    Example:
        >>> required_iterations(0.8, 5, 0.99, 5000)
        12
    """
    if inlier_ratio <= 0.0:
        return max_iterations
    clean_subset_probability = inlier_ratio ** subset_size
    if clean_subset_probability >= 1.0:
        return 1

    denominator = math.log1p(-clean_subset_probability)
    if denominator == 0.0:
        return max_iterations
    iterations = math.ceil(math.log(1.0 - confidence) / denominator)
    return int(min(max(iterations, 1), max_iterations))


class LMedSRobustEstimator(Generic[Candidate]):
    """
    Generic LMedS search loop.

    The search is independent of what is being estimated; it only needs a
    function solving a candidate from subset indices and a function
    computing the residual of every observation under a candidate.

    Args:
        num_samples: Total number of observations (n).
        subset_size: Observations drawn per trial (p).
        solve: Callable mapping subset indices to a candidate. Raises
            PreliminarySolutionError when the subset is degenerate.
        residuals: Callable mapping a candidate to residuals (n,).
        stop_threshold: Median squared residual at which the search stops.
        confidence: Probability of drawing at least one clean subset.
        max_iterations: Maximum number of trials.
        progress_delta: Minimum progress increment between progress
            notifications. Zero notifies every change.
        inlier_factor: Multiple of the robust scale accepted as inlier.
        rng: numpy Generator, seed or None.
        on_next_iteration: Optional callback(iteration) after each trial.
        on_progress_change: Optional callback(progress) with progress in
            [0, 1].
    """

    def __init__(
        self,
        num_samples: int,
        subset_size: int,
        solve: Callable[[np.ndarray], Candidate],
        residuals: Callable[[Candidate], np.ndarray],
        stop_threshold: float = DEFAULT_STOP_THRESHOLD,
        confidence: float = DEFAULT_CONFIDENCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        inlier_factor: float = DEFAULT_INLIER_FACTOR,
        rng: Union[np.random.Generator, int, None] = None,
        on_next_iteration: Optional[Callable[[int], None]] = None,
        on_progress_change: Optional[Callable[[float], None]] = None,
    ):
        if subset_size < 1:
            raise ValueError(f"subset_size must be >= 1, got {subset_size}")
        if num_samples < subset_size:
            raise ValueError(
                f"num_samples ({num_samples}) must be >= subset_size ({subset_size})"
            )
        if not stop_threshold > 0.0:
            raise ValueError(f"stop_threshold must be positive, got {stop_threshold}")
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        if not 0.0 <= progress_delta <= 1.0:
            raise ValueError(f"progress_delta must be in [0, 1], got {progress_delta}")
        if not inlier_factor > 0.0:
            raise ValueError(f"inlier_factor must be positive, got {inlier_factor}")

        self.num_samples = num_samples
        self.subset_size = subset_size
        self.solve = solve
        self.residuals = residuals
        self.stop_threshold = stop_threshold
        self.confidence = confidence
        self.max_iterations = max_iterations
        self.progress_delta = progress_delta
        self.inlier_factor = inlier_factor
        self.rng = np.random.default_rng(rng)
        self.on_next_iteration = on_next_iteration
        self.on_progress_change = on_progress_change

        self.best_candidate: Optional[Candidate] = None
        self.best_median_residual = math.inf
        self.inliers_data: Optional[InliersData] = None
        self.iterations = 0

    def estimate(self) -> Candidate:
        """
        Run the search.

        Returns:
            Candidate with the lowest median squared residual.

        Raises:
            EstimationError: If no trial produced a valid candidate.
        """
        self.best_candidate = None
        self.best_median_residual = math.inf
        self.inliers_data = None
        self.iterations = 0

        required = self.max_iterations
        last_progress = 0.0

        while self.iterations < required:
            indices = self.rng.choice(
                self.num_samples, size=self.subset_size, replace=False
            )
            self.iterations += 1

            try:
                candidate = self.solve(indices)
                residuals = np.asarray(self.residuals(candidate), dtype=float)
            except (PreliminarySolutionError, InvalidPropagationInputError) as e:
                log.debug("Iteration %d: discarded subset (%s)", self.iterations, e)
            else:
                median_residual = float(np.median(residuals ** 2))
                if np.isfinite(median_residual) and median_residual < self.best_median_residual:
                    self.best_candidate = candidate
                    self.best_median_residual = median_residual
                    self.inliers_data = classify_inliers(
                        residuals,
                        median_residual,
                        self.subset_size,
                        self.stop_threshold,
                        self.inlier_factor,
                    )
                    required = required_iterations(
                        min(self.inliers_data.inlier_ratio, LMEDS_BREAKDOWN_POINT),
                        self.subset_size,
                        self.confidence,
                        self.max_iterations,
                    )
                    log.debug(
                        "Iteration %d: median residual %.3e, %d inliers, "
                        "%d iterations required",
                        self.iterations,
                        median_residual,
                        self.inliers_data.num_inliers,
                        required,
                    )

            if self.on_next_iteration is not None:
                self.on_next_iteration(self.iterations)

            progress = min(self.iterations / required, 1.0)
            if (
                self.on_progress_change is not None
                and progress > last_progress
                and progress - last_progress >= self.progress_delta
            ):
                last_progress = progress
                self.on_progress_change(progress)

            if self.best_median_residual <= self.stop_threshold:
                break

        if self.best_candidate is None:
            raise EstimationError(
                f"No valid candidate found after {self.iterations} iterations"
            )
        return self.best_candidate
