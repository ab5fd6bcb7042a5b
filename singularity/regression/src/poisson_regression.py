# /singularity/regression/src/poisson_regression.py
"""
Poisson regression trained by L-BFGS maximization of the log-likelihood.

Model: E[y | x] = exp(beta . x). The penalized log-likelihood

    L(beta) = sum_i w_i (y_i mu_i - exp(mu_i)) - (reg / 2) ||beta||^2,  mu_i = beta . x_i

is strictly concave for reg > 0 (or full-rank features), so the quasi-Newton
curvature condition s^T y < 0 holds along every accepted step.
"""

import logging
import warnings
from typing import Any, Optional

import numpy as np

from .config import OptimizerConfig
from .exceptions import OptimizationError, RegressionException
from .lbfgs import QuasiNewtonOptimizer
from .listener import LearningListener
from .metrics import accuracy
from .objective import as_vector, check_same_shape
from .training_set import TrainingSet

logger = logging.getLogger(__name__)


class PoissonObjective:
    """
    Penalized Poisson log-likelihood over a fixed training set.

    Value and gradient are cached per parameter vector; ``set_parameters``
    invalidates the cache.
    """

    def __init__(self, samples: TrainingSet, regularization: float = 0.01, beta0=None):
        if len(samples) == 0:
            raise ValueError("training set is empty")
        if regularization < 0:
            raise ValueError(f"regularization must be non-negative, got {regularization}")
        self.X = samples.features()
        self.y = samples.labels()
        self.w = samples.weights()
        self.regularization = float(regularization)
        if beta0 is None:
            self.beta = np.zeros(self.X.shape[1])
        else:
            self.beta = as_vector(beta0, "beta0")
            check_same_shape(self.beta, self.X[0], "beta0 vs features")
        self._mu: Optional[np.ndarray] = None
        self._rate: Optional[np.ndarray] = None

    def get_parameters(self) -> np.ndarray:
        return self.beta

    def set_parameters(self, beta: np.ndarray) -> None:
        beta = as_vector(beta, "beta")
        check_same_shape(beta, self.beta, "set_parameters")
        self.beta = beta
        self._mu = None
        self._rate = None

    def _linear(self):
        if self._mu is None:
            self._mu = self.X @ self.beta
            # exp overflows to inf for large mu; the line search backs off
            with np.errstate(over="ignore"):
                self._rate = np.exp(self._mu)
        return self._mu, self._rate

    def get_value(self) -> float:
        mu, rate = self._linear()
        with np.errstate(over="ignore", invalid="ignore"):
            loglik = float(np.sum(self.w * (self.y * mu - rate)))
        return loglik - 0.5 * self.regularization * float(self.beta @ self.beta)

    def get_gradient(self) -> np.ndarray:
        mu, rate = self._linear()
        with np.errstate(over="ignore", invalid="ignore"):
            grad = self.X.T @ (self.w * (self.y - rate))
        return grad - self.regularization * self.beta


class PoissonRegression:
    """
    Poisson regression learner.

    Args:
        iterations: Outer optimizer iterations per ``train`` call
        regularization: L2 damping factor
        config: Optimizer configuration; defaults to ``OptimizerConfig()``
    """

    def __init__(
        self,
        iterations: int = 100,
        regularization: float = 0.01,
        config: Optional[OptimizerConfig] = None,
    ):
        self.iterations = int(iterations)
        self.regularization = float(regularization)
        self.config = config if config is not None else OptimizerConfig()
        self.listener: Optional[LearningListener] = None
        self.betas: Optional[np.ndarray] = None
        self.optimizer: Optional[QuasiNewtonOptimizer] = None

    def set_learning_listener(self, listener: Optional[LearningListener]) -> None:
        self.listener = listener

    def name(self) -> str:
        return "PoissonRegression"

    @property
    def parameters(self) -> Optional[np.ndarray]:
        return None if self.betas is None else self.betas.copy()

    def train(self, samples: TrainingSet) -> bool:
        """
        Fit the weights to ``samples`` starting from beta = 0.

        Returns:
            True if the optimizer converged. A non-converged run still keeps
            the best weights found and emits a RuntimeWarning.

        Raises:
            RegressionException: empty training set, or the optimizer detected
                inconsistent curvature.
        """
        if len(samples) == 0:
            raise RegressionException("Cannot train Poisson regression on an empty training set")

        if self.listener is not None:
            self.listener.training_start(self)

        objective = PoissonObjective(samples, self.regularization)
        self.optimizer = QuasiNewtonOptimizer(
            objective, self.config, listener=self.listener, algorithm=self
        )
        try:
            converged = self.optimizer.optimize(self.iterations)
        except OptimizationError as e:
            self.betas = None
            raise RegressionException(f"Error optimizing Poisson log-likelihood: {e}") from e
        self.betas = objective.get_parameters().copy()

        if not converged:
            warnings.warn(
                f"PoissonRegression stopped without converging "
                f"(state={self.optimizer.state.value}, iterations={self.optimizer.iterations})",
                RuntimeWarning,
            )
        logger.info("Trained %r", self)

        if self.listener is not None:
            self.listener.training_end(self, samples)
        return converged

    def test(self, x) -> float:
        """Predicted mean exp(beta . x) for one feature vector."""
        if self.betas is None:
            raise RegressionException("Unable to test using Poisson regression: model is not trained")
        x = as_vector(x, "x")
        if x.shape != self.betas.shape:
            raise RegressionException(
                f"Unable to test using Poisson regression: expected {self.betas.size} features, got {x.size}"
            )
        return float(np.exp(self.betas @ x))

    def predict(self, X) -> np.ndarray:
        if self.betas is None:
            raise RegressionException("Unable to test using Poisson regression: model is not trained")
        X = np.atleast_2d(np.asarray(X, dtype=float))
        if X.shape[1] != self.betas.size:
            raise RegressionException(
                f"Unable to test using Poisson regression: expected {self.betas.size} features, got {X.shape[1]}"
            )
        return np.exp(X @ self.betas)

    def accuracy(self, samples: TrainingSet) -> float:
        """``1 - mean|prediction - label|`` over ``samples``."""
        if len(samples) == 0:
            return 0.0
        return accuracy(self.predict(samples.features()), samples.labels())

    def get_metrics_dict(self) -> Any:
        return self.optimizer.get_metrics_dict() if self.optimizer is not None else {}

    def __repr__(self) -> str:
        betas = [] if self.betas is None else self.betas.tolist()
        return "PoissonRegression(Beta=[" + ", ".join(repr(b) for b in betas) + "])"
