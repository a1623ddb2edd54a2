"""
Configuration of robust radio source estimators.

A RobustEstimatorConfig gathers every tunable of the LMedS radio source
estimator so that it can be stored in JSON files next to survey datasets
and applied in one call with estimator.configure(config).

Example config.json:
    {
        "stop_threshold": 1e-4,
        "confidence": 0.99,
        "max_iterations": 5000,
        "path_loss_estimation_enabled": true,
        "seed": 42
    }
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from radiosource.rf.measurement_models import DEFAULT_PATH_LOSS_EXPONENT

# Robust search defaults
DEFAULT_STOP_THRESHOLD = 1e-4
DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05
DEFAULT_INLIER_FACTOR = 2.5

# Path-loss exponents observed in practice (free space to obstructed indoor)
TYPICAL_PATH_LOSS_RANGE = (1.0, 6.0)


@dataclass(frozen=True)
class RobustEstimatorConfig:
    """
    Tunables of a robust RSSI radio source estimator.

    Attributes:
        stop_threshold: Median squared residual (dB²) at which the search
            stops early. Must be positive.
        confidence: Probability of drawing at least one outlier-free subset,
            in (0, 1).
        max_iterations: Maximum number of random subsets (>= 1).
        progress_delta: Minimum progress increment between progress
            notifications, in [0, 1].
        inlier_factor: Multiple of the robust scale below which a reading
            is an inlier. Must be positive.
        preliminary_subset_size: Readings per subset. None uses the minimum
            number of readings of the enabled unknowns.
        position_estimation_enabled: Whether the position is estimated.
        transmitted_power_estimation_enabled: Whether the power is estimated.
        path_loss_estimation_enabled: Whether the path-loss exponent is
            estimated.
        refine_result: Whether to refine the best candidate over inliers.
        keep_covariance: Whether to keep the full covariance matrix.
        initial_path_loss_exponent: Initial (or fixed) path-loss exponent.
        initial_transmitted_power_dbm: Optional initial (or fixed) power.
        initial_position: Optional initial (or fixed) position.
        seed: Optional seed of the random subset generator.
    """

    stop_threshold: float = DEFAULT_STOP_THRESHOLD
    confidence: float = DEFAULT_CONFIDENCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    progress_delta: float = DEFAULT_PROGRESS_DELTA
    inlier_factor: float = DEFAULT_INLIER_FACTOR
    preliminary_subset_size: Optional[int] = None
    position_estimation_enabled: bool = True
    transmitted_power_estimation_enabled: bool = True
    path_loss_estimation_enabled: bool = False
    refine_result: bool = True
    keep_covariance: bool = True
    initial_path_loss_exponent: float = DEFAULT_PATH_LOSS_EXPONENT
    initial_transmitted_power_dbm: Optional[float] = None
    initial_position: Optional[List[float]] = None
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.stop_threshold > 0.0:
            raise ValueError(f"stop_threshold must be positive, got {self.stop_threshold}")
        if not 0.0 < self.confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {self.confidence}")
        if not isinstance(self.max_iterations, (int, np.integer)):
            raise TypeError(
                f"max_iterations must be an integer, got {type(self.max_iterations)}"
            )
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not 0.0 <= self.progress_delta <= 1.0:
            raise ValueError(
                f"progress_delta must be in [0, 1], got {self.progress_delta}"
            )
        if not self.inlier_factor > 0.0:
            raise ValueError(f"inlier_factor must be positive, got {self.inlier_factor}")
        if self.preliminary_subset_size is not None and self.preliminary_subset_size < 1:
            raise ValueError(
                "preliminary_subset_size must be positive, "
                f"got {self.preliminary_subset_size}"
            )
        if not (
            self.position_estimation_enabled
            or self.transmitted_power_estimation_enabled
            or self.path_loss_estimation_enabled
        ):
            raise ValueError("At least one parameter must be estimated")
        if not self.initial_path_loss_exponent > 0.0:
            raise ValueError(
                "initial_path_loss_exponent must be positive, "
                f"got {self.initial_path_loss_exponent}"
            )
        if self.initial_position is not None:
            position = np.asarray(self.initial_position, dtype=float)
            if position.ndim != 1 or not np.all(np.isfinite(position)):
                raise ValueError("initial_position must be a finite 1D sequence")
            # Normalized to plain floats for JSON
            object.__setattr__(self, "initial_position", position.tolist())

        low, high = TYPICAL_PATH_LOSS_RANGE
        if not low <= self.initial_path_loss_exponent <= high:
            import warnings
            warnings.warn(
                f"Path-loss exponent {self.initial_path_loss_exponent} is unusual. "
                f"Typical values are within [{low}, {high}].",
                UserWarning
            )

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary of the configuration, suitable for JSON."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RobustEstimatorConfig":
        """
        Build a configuration from a dictionary.

        Raises:
            ValueError: If the dictionary contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RobustEstimatorConfig":
        """Load a configuration from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def save_json(self, path: Union[str, Path]) -> None:
        """Save the configuration as a JSON file."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
