from .src import (
    ArrayObjective,
    LineSearch,
    OptimizationError,
    OptimizerConfig,
    OptimizerState,
    PoissonRegression,
    QuasiNewtonOptimizer,
    RegressionException,
    TrainingSet,
)

__all__ = [
    "ArrayObjective",
    "LineSearch",
    "OptimizationError",
    "OptimizerConfig",
    "OptimizerState",
    "PoissonRegression",
    "QuasiNewtonOptimizer",
    "RegressionException",
    "TrainingSet",
]
