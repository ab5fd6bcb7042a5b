"""Utility metrics for regression predictions."""

from typing import Any

import numpy as np


def mean_absolute_error(pred: Any, y: Any) -> float:
    pred = np.asarray(pred, dtype=float).reshape(-1)
    y = np.asarray(y, dtype=float).reshape(-1)
    if pred.shape != y.shape:
        raise ValueError(f"shape mismatch {pred.shape} vs {y.shape}")
    if pred.size == 0:
        return 0.0
    return float(np.mean(np.abs(pred - y)))


def accuracy(pred: Any, y: Any) -> float:
    """``1 - mean|pred - y|``; 0.0 for an empty set.

    Can be negative when predictions are off by more than one on average.
    """
    if np.asarray(y).size == 0:
        return 0.0
    return 1.0 - mean_absolute_error(pred, y)
