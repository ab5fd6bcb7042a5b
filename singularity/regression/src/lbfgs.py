# /singularity/regression/src/lbfgs.py
# Limited-memory BFGS maximizer: bounded correction history, two-loop recursion
# and the outer iteration driving the line search.
import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import OptimizerConfig
from .exceptions import OptimizationError
from .line_search import LineSearch
from .listener import LearningListener
from .objective import Objective, as_vector, check_same_shape, safe_delta

logger = logging.getLogger(__name__)

Observer = Union[LearningListener, Callable[[int, int], None]]


class CorrectionHistory:
    """
    The m most recent (s, y, rho) correction triples, oldest first.

    s = theta_k - theta_{k-1}, y = g_k - g_{k-1}, rho = 1 / (s^T y).
    Pushing onto a full history evicts the oldest triple.
    """

    def __init__(self, m: int = 7):
        if m < 1:
            raise ValueError(f"history size must be positive, got {m}")
        self.m = m
        self.S: deque = deque(maxlen=m)
        self.Y: deque = deque(maxlen=m)
        self.rho: deque = deque(maxlen=m)

    def __len__(self) -> int:
        return len(self.S)

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray, float]]:
        return iter(zip(self.S, self.Y, self.rho))

    def clear(self) -> None:
        self.S.clear()
        self.Y.clear()
        self.rho.clear()

    def push(self, s: np.ndarray, y: np.ndarray, rho: float) -> None:
        check_same_shape(s, y, "correction pair")
        if self.S:
            check_same_shape(s, self.S[-1], "correction pair vs history")
        self.S.append(s.copy())
        self.Y.append(y.copy())
        self.rho.append(float(rho))

    def pairs(self) -> List[Tuple[np.ndarray, np.ndarray, float]]:
        """Snapshot of the retained triples, oldest first."""
        return [(s.copy(), y.copy(), r) for s, y, r in self]

    def two_loop(self, gradient: np.ndarray, gamma: float) -> np.ndarray:
        """
        Return H g, with H the inverse-Hessian estimate built from the history.

        Args:
            gradient: Gradient at the current parameters
            gamma: Scaling of the initial inverse Hessian (gamma * I)

        Returns:
            New vector; ``gradient`` is not modified
        """
        q = np.array(gradient, dtype=float)
        if self.S:
            check_same_shape(q, self.S[-1], "two-loop gradient")

        alpha = [0.0] * len(self)
        for i in range(len(self) - 1, -1, -1):
            alpha[i] = self.rho[i] * float(self.S[i] @ q)
            q -= alpha[i] * self.Y[i]

        q *= gamma

        for i in range(len(self)):
            beta = self.rho[i] * float(self.Y[i] @ q)
            q += (alpha[i] - beta) * self.S[i]
        return q


class OptimizerState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    STALLED = "stalled"
    EXHAUSTED_BUDGET = "exhausted_budget"


class QuasiNewtonOptimizer:
    """
    L-BFGS maximizer of a smooth objective.

    Each outer iteration forms a direction from the correction history,
    hands it to the line search, and checks for convergence. Soft failures
    (no improving step, budget exhausted) end the run normally and leave the
    objective at the best parameters found; inconsistent curvature raises
    :class:`OptimizationError`.

    Attributes:
        objective: Objective being maximized
        config: Convergence configuration
        history: Bounded correction history
        state: Current :class:`OptimizerState`
        iterations: Outer iterations performed since the last ``initialize()``
        algorithm: Passed to listener callbacks in place of the optimizer;
            trainers set it to themselves
    """

    def __init__(
        self,
        objective: Objective,
        config: Optional[OptimizerConfig] = None,
        listener: Optional[Observer] = None,
        line_search: Optional[LineSearch] = None,
        algorithm: Any = None,
    ):
        self.objective = objective
        self.config = config if config is not None else OptimizerConfig()
        self.listener = listener
        self.algorithm = algorithm if algorithm is not None else self
        self.line_search = (
            line_search if line_search is not None else LineSearch(objective, self.config)
        )
        self.history = CorrectionHistory(self.config.history_size)
        self.state = OptimizerState.UNINITIALIZED
        self.iterations = 0

        self._params: Optional[np.ndarray] = None
        self._grad: Optional[np.ndarray] = None
        self._old_params: Optional[np.ndarray] = None
        self._old_grad: Optional[np.ndarray] = None
        self._records: List[Dict[str, Any]] = []

    @property
    def converged(self) -> bool:
        return self.state is OptimizerState.CONVERGED

    @property
    def terminal(self) -> bool:
        return self.state in (
            OptimizerState.CONVERGED,
            OptimizerState.STALLED,
            OptimizerState.EXHAUSTED_BUDGET,
        )

    # ---- snapshots -------------------------------------------------
    def _snapshot(self) -> Tuple[np.ndarray, np.ndarray]:
        params = as_vector(self.objective.get_parameters(), "parameters")
        grad = as_vector(self.objective.get_gradient(), "gradient")
        check_same_shape(grad, params, "gradient vs parameters")
        return params, grad

    # ---- public API ------------------------------------------------
    def initialize(self) -> bool:
        """
        Reset history and take a first step along the normalized gradient.

        Returns:
            True if the first step was accepted. False moves the optimizer to
            STALLED: the gradient is zero or no improving step exists.
        """
        self.history.clear()
        self.iterations = 0
        self._records = []

        params, grad = self._snapshot()
        self._old_params, self._old_grad = params, grad
        self._params, self._grad = None, None

        if not np.any(grad):
            logger.info("Zero gradient at start; already at a stationary point")
            self.state = OptimizerState.STALLED
            return False

        direction = grad / np.linalg.norm(grad)
        if not self.line_search.search(direction):
            logger.info("No improving step along the initial gradient")
            self.state = OptimizerState.STALLED
            return False

        self._params, self._grad = self._snapshot()
        self.state = OptimizerState.INITIALIZED
        return True

    def optimize(self, max_iterations: Optional[int] = None) -> bool:
        """
        Run up to ``max_iterations`` outer iterations.

        Args:
            max_iterations: Per-call loop budget; defaults to
                ``config.max_iterations``.

        Returns:
            True if the run converged. Stalled and budget-exhausted runs
            return False; the objective keeps the best parameters found.

        Raises:
            OptimizationError: curvature condition violated.
        """
        total = self.config.max_iterations if max_iterations is None else int(max_iterations)
        if total < 0:
            raise ValueError(f"max_iterations must be non-negative, got {total}")

        if self.state is OptimizerState.CONVERGED and np.array_equal(
            self.objective.get_parameters(), self._params
        ):
            return True
        if self.state in (
            OptimizerState.UNINITIALIZED,
            OptimizerState.STALLED,
            OptimizerState.CONVERGED,
        ):
            if not self.initialize():
                return False

        if self.iterations > self.config.max_iterations:
            self.state = OptimizerState.EXHAUSTED_BUDGET
            logger.info("Iteration budget of %d already exhausted", self.config.max_iterations)
            return False

        self.state = OptimizerState.ITERATING
        for iteration in range(total):
            self._notify(iteration, total)
            if self._step():
                return self.converged
        self.state = OptimizerState.EXHAUSTED_BUDGET
        logger.info("Per-call budget of %d iterations used up", total)
        return False

    # ---- iteration -------------------------------------------------
    def _step(self) -> bool:
        """One outer iteration. Returns True once a terminal state is reached."""
        cfg = self.config
        params, grad = self._params, self._grad
        if self._stationary(grad):
            self.state = OptimizerState.CONVERGED
            logger.info("Converged on gradient norm after %d iterations", self.iterations)
            return True
        value = float(self.objective.get_value())

        s = safe_delta(params, self._old_params)
        y = safe_delta(grad, self._old_grad)

        sy = float(s @ y)
        if sy > 0.0:
            raise OptimizationError(f"sy = {sy} > 0")
        if sy == 0.0:
            raise OptimizationError("sy = 0: no curvature information along the last step")

        gamma = sy / float(y @ y)
        if gamma > 0.0:
            raise OptimizationError(f"gamma = {gamma} > 0")

        self.history.push(s, y, 1.0 / sy)
        direction = -self.history.two_loop(grad, gamma)
        if not np.any(direction):
            self.state = OptimizerState.STALLED
            self._record(value, value, grad, sy, gamma)
            logger.info("Zero search direction at iteration %d; stopping", self.iterations)
            return True

        self._old_params, self._old_grad = params, grad

        if not self.line_search.search(direction):
            self.state = OptimizerState.STALLED
            self._record(value, value, grad, sy, gamma)
            logger.info("Line search failed at iteration %d; stopping", self.iterations)
            return True

        self.iterations += 1
        self._params, self._grad = self._snapshot()
        new_value = float(self.objective.get_value())
        self._record(value, new_value, self._grad, sy, gamma)

        if 2.0 * abs(new_value - value) <= cfg.tolerance * (
            abs(new_value) + abs(value) + cfg.epsilon
        ):
            self.state = OptimizerState.CONVERGED
            logger.info("Converged on value change after %d iterations", self.iterations)
            return True

        if self._stationary(self._grad):
            self.state = OptimizerState.CONVERGED
            logger.info("Converged on gradient norm after %d iterations", self.iterations)
            return True

        if self.iterations > cfg.max_iterations:
            self.state = OptimizerState.EXHAUSTED_BUDGET
            logger.info("Iteration budget of %d exhausted", cfg.max_iterations)
            return True
        return False

    def _stationary(self, grad: np.ndarray) -> bool:
        grad_norm = float(np.linalg.norm(grad))
        return grad_norm < self.config.gradient_tolerance or grad_norm == 0.0

    def _notify(self, iteration: int, total: int) -> None:
        if self.listener is None:
            return
        if hasattr(self.listener, "training_iteration"):
            self.listener.training_iteration(self.algorithm, iteration, total)
        else:
            self.listener(iteration, total)

    # ---- metrics ---------------------------------------------------
    def _record(self, value: float, new_value: float, grad: np.ndarray, sy: float, gamma: float):
        self._records.append(
            {
                "iteration": len(self._records),
                "value": value,
                "new_value": new_value,
                "grad_norm": float(np.linalg.norm(grad)),
                "step": self.line_search.last_step,
                "sy": sy,
                "gamma": gamma,
                "history_size": len(self.history),
                "line_search_evaluations": self.line_search.evaluations,
            }
        )

    def metrics_frame(self) -> pd.DataFrame:
        """One row per outer iteration since the last ``initialize()``."""
        columns = [
            "iteration",
            "value",
            "new_value",
            "grad_norm",
            "step",
            "sy",
            "gamma",
            "history_size",
            "line_search_evaluations",
        ]
        return pd.DataFrame.from_records(self._records, columns=columns)

    def get_metrics_dict(self) -> Dict[str, Any]:
        """Summary of the current run."""
        value = float(self.objective.get_value())
        grad = self._grad if self._grad is not None else self._old_grad
        return {
            "state": self.state.value,
            "converged": self.converged,
            "iterations": self.iterations,
            "value": value,
            "grad_norm": float(np.linalg.norm(grad)) if grad is not None else None,
            "history_size": len(self.history),
        }
