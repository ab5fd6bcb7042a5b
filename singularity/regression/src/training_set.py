# /singularity/regression/src/training_set.py
"""
Containers for labelled training samples.

A sample holds a feature vector x, a real-valued label y and an optional
weight w used by weighted objectives.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Union

import numpy as np


@dataclass
class TrainingSample:
    features: np.ndarray
    label: float
    weight: float = 1.0

    def __post_init__(self):
        self.features = np.asarray(self.features, dtype=float).reshape(-1)
        self.label = float(self.label)
        self.weight = float(self.weight)


class TrainingSet:
    """Ordered list of training samples sharing one feature dimension."""

    def __init__(self, samples: Optional[Iterable[TrainingSample]] = None):
        self.samples: List[TrainingSample] = []
        for sample in samples or []:
            self.add(sample)

    @classmethod
    def from_arrays(cls, X, y, weights=None) -> "TrainingSet":
        X = np.atleast_2d(np.asarray(X, dtype=float))
        y = np.asarray(y, dtype=float).reshape(-1)
        if X.shape[0] != y.shape[0]:
            raise ValueError(f"X has {X.shape[0]} rows but y has {y.shape[0]} labels")
        w = np.ones_like(y) if weights is None else np.asarray(weights, dtype=float).reshape(-1)
        if w.shape != y.shape:
            raise ValueError(f"weights must have {y.shape[0]} entries, got {w.shape[0]}")
        return cls(TrainingSample(x, label, weight) for x, label, weight in zip(X, y, w))

    def add(self, sample: Union[TrainingSample, Iterable[float]], label: Optional[float] = None) -> None:
        """Add a sample, or build one from ``(features, label)``."""
        if not isinstance(sample, TrainingSample):
            if label is None:
                raise ValueError("label is required when adding raw features")
            sample = TrainingSample(sample, label)
        if self.samples and sample.features.shape != self.samples[0].features.shape:
            raise ValueError(
                f"feature vector of size {sample.features.size} does not match "
                f"training set size {self.feature_vector_size}"
            )
        self.samples.append(sample)

    def extend(self, other: "TrainingSet") -> None:
        for sample in other:
            self.add(sample)

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[TrainingSample]:
        return iter(self.samples)

    def __getitem__(self, index: int) -> TrainingSample:
        return self.samples[index]

    @property
    def feature_vector_size(self) -> int:
        if not self.samples:
            return 0
        return int(self.samples[0].features.size)

    def reduce_to(self, size: int) -> None:
        """Keep only the ``size`` most recent samples."""
        if size < 0:
            raise ValueError(f"size must be non-negative, got {size}")
        if len(self.samples) > size:
            del self.samples[: len(self.samples) - size]

    def features(self) -> np.ndarray:
        if not self.samples:
            return np.empty((0, 0))
        return np.vstack([s.features for s in self.samples])

    def labels(self) -> np.ndarray:
        return np.array([s.label for s in self.samples], dtype=float)

    def weights(self) -> np.ndarray:
        return np.array([s.weight for s in self.samples], dtype=float)
