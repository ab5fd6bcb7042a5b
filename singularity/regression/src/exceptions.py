"""
Exception hierarchy for training and optimization errors.

Soft non-convergence is never reported through these classes; it is visible
through return values and optimizer state. Exceptions are reserved for
programmer errors and for numerics that cannot be trusted.
"""


class LearningException(Exception):
    """Common base class for all learning errors."""


class RegressionException(LearningException):
    """Raised for regression training and testing errors."""


class OptimizationError(LearningException):
    """
    Fatal curvature or consistency violation inside the optimizer.

    Raised when the objective's gradient does not agree with its value
    function (e.g. ``s^T y > 0`` while maximizing), so that continuing would
    corrupt the correction history.
    """
