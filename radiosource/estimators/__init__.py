"""
Radio source estimation algorithms.

This module provides the numerical building blocks and the estimators that
locate a radio source and characterize its transmission from located RSSI
readings.

Available estimators:
    - RssiRadioSourceEstimator: weighted nonlinear LS over all readings
    - LMedSRobustRssiRadioSourceEstimator: LMedS robust search, inlier
      classification and refinement over inliers

Building blocks:
    - Levenberg-Marquardt weighted nonlinear least squares
    - Unknown parameterization (position, power, path-loss exponent)
    - Preliminary subset solver, generic LMedS search loop, refiner
"""

from radiosource.estimators.base import (
    RadioSourceEstimator,
    RadioSourceEstimatorListener,
)
from radiosource.estimators.lmeds import (
    LMEDS_BREAKDOWN_POINT,
    LMEDS_NORM_CONSTANT,
    InliersData,
    LMedSRobustEstimator,
    classify_inliers,
    required_iterations,
)
from radiosource.estimators.nonlinear_least_squares import (
    NonlinearLSResult,
    levenberg_marquardt,
)
from radiosource.estimators.parameterization import (
    UnknownParameterization,
    min_readings,
)
from radiosource.estimators.preliminary import solve_preliminary
from radiosource.estimators.refinement import RefinementResult, refine_solution
from radiosource.estimators.robust_rssi_estimator import (
    LMedSRobustRssiRadioSourceEstimator,
)
from radiosource.estimators.rssi_estimator import RssiRadioSourceEstimator
from radiosource.estimators.rssi_model import (
    RadioSourceSolution,
    RssiModel,
    RssiObservations,
)

__all__ = [
    # Nonlinear LS
    "levenberg_marquardt",
    "NonlinearLSResult",
    # Parameterization and model
    "min_readings",
    "UnknownParameterization",
    "RadioSourceSolution",
    "RssiObservations",
    "RssiModel",
    # Robust search
    "LMEDS_BREAKDOWN_POINT",
    "LMEDS_NORM_CONSTANT",
    "InliersData",
    "LMedSRobustEstimator",
    "classify_inliers",
    "required_iterations",
    "solve_preliminary",
    "RefinementResult",
    "refine_solution",
    # Estimators
    "RadioSourceEstimator",
    "RadioSourceEstimatorListener",
    "RssiRadioSourceEstimator",
    "LMedSRobustRssiRadioSourceEstimator",
]
