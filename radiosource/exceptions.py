"""Error taxonomy for radio source estimation."""


class RadioSourceEstimatorError(Exception):
    """Base class for all radio source estimator errors."""


class LockedError(RadioSourceEstimatorError):
    """Raised when an estimator is modified while an estimation is running."""

    def __init__(self, message: str = "Estimator is locked during estimation"):
        super().__init__(message)


class NotReadyError(RadioSourceEstimatorError):
    """Raised when estimate() is called on an estimator that is not ready."""

    def __init__(self, message: str = "Estimator is not ready"):
        super().__init__(message)


class EstimationError(RadioSourceEstimatorError):
    """Raised when no usable radio source estimate could be computed."""


class PreliminarySolutionError(EstimationError):
    """Raised when a subset of readings cannot produce a candidate solution.

    The robust search recovers from this error by drawing another subset.
    """


class RefinementError(EstimationError):
    """Raised when refinement over the inliers fails.

    Robust estimators recover from this error by keeping the unrefined
    candidate.
    """


class InvalidPropagationInputError(ValueError):
    """Raised when the propagation model receives a non-physical input
    (non-positive distance, frequency or linear power)."""
