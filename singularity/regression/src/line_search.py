# /singularity/regression/src/line_search.py
"""
Backtracking line search with a sufficient-increase (Wolfe) condition.

Given an ascent direction d at the objective's current parameters, finds a
step length lambda such that f(theta + lambda d) >= f(theta) + ALF lambda g.d.
Rejected trials backtrack using quadratic (first) and cubic (later)
interpolation of f along d. On success the objective is left at the new point;
on failure it is restored to a copy of the pre-search parameters.
"""

import logging
import math
from typing import Optional

import numpy as np

from .config import OptimizerConfig
from .exceptions import OptimizationError
from .objective import Objective, as_vector, check_same_shape

logger = logging.getLogger(__name__)


class LineSearch:
    """Safeguarded backtracking search along a single direction."""

    def __init__(self, objective: Objective, config: Optional[OptimizerConfig] = None):
        self.objective = objective
        self.config = config if config is not None else OptimizerConfig()

        # Diagnostics for the most recent call
        self.last_step: float = 0.0
        self.last_value: float = float("nan")
        self.evaluations: int = 0

    def search(self, direction: np.ndarray) -> bool:
        """
        Take a sufficiently increasing step along ``direction``.

        Args:
            direction: Search direction. Rescaled in place to ``max_step`` when
                its norm exceeds it (if it is a float ndarray).

        Returns:
            True if a step was accepted and applied to the objective, False if
            the parameters were left (restored) at their pre-search value.

        Raises:
            ValueError: direction has the wrong shape or zero magnitude.
            OptimizationError: an accepted step decreased the objective.
        """
        cfg = self.config
        self.last_step = 0.0
        self.last_value = float("nan")
        self.evaluations = 0

        old_params = as_vector(self.objective.get_parameters(), "parameters")
        gradient = as_vector(self.objective.get_gradient(), "gradient")
        if not isinstance(direction, np.ndarray) or direction.dtype != np.float64:
            direction = np.asarray(direction, dtype=float)
        check_same_shape(direction.reshape(-1), old_params, "line search direction")
        check_same_shape(gradient, old_params, "line search gradient")
        d = direction.reshape(-1)

        norm = float(np.linalg.norm(d))
        if norm == 0.0:
            raise ValueError("line search direction has zero magnitude")
        if norm > cfg.max_step:
            d *= cfg.max_step / norm

        slope = float(gradient @ d)
        if not slope > 0.0:
            logger.debug("Rejecting non-ascent direction (slope=%g)", slope)
            return False

        # Smallest lambda for which some coordinate still moves by more than
        # relative_tolerance of its magnitude.
        test = float(np.max(np.abs(d) / np.maximum(np.abs(old_params), 1.0)))
        min_lambda = cfg.relative_tolerance / test

        orig_value = float(self.objective.get_value())
        prev_value = orig_value
        lam = 1.0
        prev_lam = 0.0

        for iteration in range(cfg.max_line_search_iterations):
            trial = old_params + lam * d
            self.objective.set_parameters(trial)

            if lam < min_lambda or self._converged(old_params, trial):
                logger.debug(
                    "Line search stagnated at lambda=%g after %d evaluations",
                    lam,
                    self.evaluations,
                )
                self._restore(old_params)
                return False

            value = float(self.objective.get_value())
            self.evaluations += 1

            if not math.isfinite(value):
                # Jumped into unstable territory; scale down the jump.
                next_lam = 0.5 * lam
            elif value >= orig_value + cfg.alf * lam * slope:
                if value < orig_value:
                    raise OptimizationError(
                        f"Function did not increase: f={value} < {orig_value}=f_old"
                    )
                self.last_step = lam
                self.last_value = value
                logger.debug(
                    "Accepted lambda=%g (f: %g -> %g, %d evaluations)",
                    lam,
                    orig_value,
                    value,
                    self.evaluations,
                )
                return True
            elif not math.isfinite(prev_value):
                next_lam = 0.5 * lam
            elif iteration == 0:
                next_lam = self._quadratic_step(value - orig_value, slope)
            else:
                next_lam = self._cubic_step(
                    value - orig_value, prev_value - orig_value, lam, prev_lam, slope
                )
            next_lam = min(next_lam, 0.5 * lam)

            prev_lam = lam
            prev_value = value
            lam = max(next_lam, 0.1 * lam)

        logger.debug("Line search exhausted %d iterations", cfg.max_line_search_iterations)
        self._restore(old_params)
        return False

    def _converged(self, old_params: np.ndarray, params: np.ndarray) -> bool:
        """True if no coordinate moved by more than ``absolute_tolerance``."""
        return bool(np.all(np.abs(params - old_params) <= self.config.absolute_tolerance))

    def _restore(self, old_params: np.ndarray) -> None:
        self.objective.set_parameters(old_params.copy())

    @staticmethod
    def _quadratic_step(delta_f: float, slope: float) -> float:
        # Maximizer of the parabola through f(0), f'(0) and f(1).
        return -slope / (2.0 * (delta_f - slope))

    @staticmethod
    def _cubic_step(
        delta_f: float, prev_delta_f: float, lam: float, prev_lam: float, slope: float
    ) -> float:
        """
        Maximizer of the cubic through f(0), f'(0) and the two latest trials.

        The model is f(0) + slope*t + b*t^2 + a*t^3.
        """
        rhs1 = delta_f - lam * slope
        rhs2 = prev_delta_f - prev_lam * slope
        a = (rhs1 / (lam * lam) - rhs2 / (prev_lam * prev_lam)) / (lam - prev_lam)
        b = (-prev_lam * rhs1 / (lam * lam) + lam * rhs2 / (prev_lam * prev_lam)) / (
            lam - prev_lam
        )

        if a == 0.0:
            if b >= 0.0:
                return 0.5 * lam
            return -slope / (2.0 * b)

        disc = b * b - 3.0 * a * slope
        if disc < 0.0:
            return 0.5 * lam
        # Root of 3a t^2 + 2b t + slope with negative curvature, written to
        # avoid cancellation.
        if b >= 0.0:
            return (-b - math.sqrt(disc)) / (3.0 * a)
        return slope / (math.sqrt(disc) - b)
