# /singularity/regression/src/objective.py
"""
Differentiable objective interface consumed by the optimizer.

The optimizer maximizes. It reads and writes the parameter vector only through
``get_parameters``/``set_parameters`` and treats every returned array as a
snapshot it may copy.
"""

from typing import Callable, Protocol

import numpy as np


class Objective(Protocol):
    def get_parameters(self) -> np.ndarray: ...
    def set_parameters(self, theta: np.ndarray) -> None: ...
    def get_value(self) -> float:
        """Objective at the current parameters; may be +/-inf or nan."""
    def get_gradient(self) -> np.ndarray: ...


def as_vector(values, name: str = "vector") -> np.ndarray:
    """Return ``values`` as a fresh 1-D float array."""
    arr = np.array(values, dtype=float).reshape(-1)
    if arr.size == 0:
        raise ValueError(f"{name} must not be empty")
    return arr


def check_same_shape(a: np.ndarray, b: np.ndarray, what: str) -> None:
    if a.shape != b.shape:
        raise ValueError(f"{what}: shape mismatch {a.shape} vs {b.shape}")


def safe_delta(new: np.ndarray, old: np.ndarray) -> np.ndarray:
    """
    Element-wise ``new - old`` that maps inf - inf (same sign) to 0.0.

    Args:
        new: Current vector
        old: Previous vector of the same shape

    Returns:
        Difference vector without the nan that same-signed infinities produce
    """
    check_same_shape(new, old, "safe_delta")
    with np.errstate(invalid="ignore"):
        delta = new - old
    same_inf = np.isinf(new) & np.isinf(old) & (np.sign(new) == np.sign(old))
    delta[same_inf] = 0.0
    return delta


class ArrayObjective:
    """
    Objective built from two plain callables over an owned parameter vector.

    Example:
        >>> obj = ArrayObjective(lambda t: -t @ t, lambda t: -2 * t, [1.0, 2.0])
    """

    def __init__(
        self,
        value_fn: Callable[[np.ndarray], float],
        gradient_fn: Callable[[np.ndarray], np.ndarray],
        theta0,
    ):
        self.value_fn = value_fn
        self.gradient_fn = gradient_fn
        self.theta = as_vector(theta0, "theta0")
        self.value_calls = 0
        self.gradient_calls = 0

    def get_parameters(self) -> np.ndarray:
        return self.theta

    def set_parameters(self, theta: np.ndarray) -> None:
        theta = as_vector(theta, "theta")
        check_same_shape(theta, self.theta, "set_parameters")
        self.theta = theta

    def get_value(self) -> float:
        self.value_calls += 1
        return float(self.value_fn(self.theta))

    def get_gradient(self) -> np.ndarray:
        self.gradient_calls += 1
        grad = np.asarray(self.gradient_fn(self.theta), dtype=float).reshape(-1)
        check_same_shape(grad, self.theta, "get_gradient")
        return grad
