from .config import OptimizerConfig
from .exceptions import LearningException, OptimizationError, RegressionException
from .lbfgs import CorrectionHistory, OptimizerState, QuasiNewtonOptimizer
from .line_search import LineSearch
from .listener import LearningListener, LoggingListener, TraceListener
from .objective import ArrayObjective, Objective, safe_delta
from .poisson_regression import PoissonObjective, PoissonRegression
from .training_set import TrainingSample, TrainingSet

__all__ = [
    "OptimizerConfig",
    "LearningException",
    "OptimizationError",
    "RegressionException",
    "CorrectionHistory",
    "OptimizerState",
    "QuasiNewtonOptimizer",
    "LineSearch",
    "LearningListener",
    "LoggingListener",
    "TraceListener",
    "ArrayObjective",
    "Objective",
    "safe_delta",
    "PoissonObjective",
    "PoissonRegression",
    "TrainingSample",
    "TrainingSet",
]
