"""
Progress callbacks for training runs.

A listener is notified synchronously when training starts, once per outer
optimizer iteration, and when training ends. The optimizer also accepts a bare
``(iteration, total)`` callable in place of a listener.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import pandas as pd


class LearningListener(Protocol):
    def training_start(self, algorithm: Any) -> None: ...
    def training_iteration(self, algorithm: Any, iteration: int, total: int) -> None:
        """``total`` is 0 when the number of iterations is unknown."""
    def training_end(self, algorithm: Any, samples: Any) -> None: ...


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``H:MM:SS.mmm``."""
    millis_total = int(round(seconds * 1000))
    millis = millis_total % 1000
    secs_total = millis_total // 1000
    hours, rem = divmod(secs_total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}.{millis:03d}"


class LoggingListener:
    """Reports training progress through :mod:`logging`."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.level = level
        self._start: Optional[float] = None

    def training_start(self, algorithm: Any) -> None:
        self._start = time.perf_counter()
        self.logger.log(self.level, "Starting training: %s", _name_of(algorithm))

    def training_iteration(self, algorithm: Any, iteration: int, total: int) -> None:
        self.logger.debug("Training progress: iteration %d/%d", iteration + 1, total)

    def training_end(self, algorithm: Any, samples: Any) -> None:
        elapsed = time.perf_counter() - self._start if self._start is not None else 0.0
        self.logger.log(
            self.level,
            "Training complete: %s trained in %s",
            _name_of(algorithm),
            format_elapsed(elapsed),
        )


class TraceListener:
    """Collects every notification; handy in tests and notebooks."""

    def __init__(self):
        self.started = 0
        self.ended = 0
        self._records: List[Dict[str, Any]] = []

    def training_start(self, algorithm: Any) -> None:
        self.started += 1

    def training_iteration(self, algorithm: Any, iteration: int, total: int) -> None:
        self._records.append({"iteration": iteration, "total": total})

    def training_end(self, algorithm: Any, samples: Any) -> None:
        self.ended += 1

    @property
    def iterations(self) -> List[int]:
        return [r["iteration"] for r in self._records]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self._records, columns=["iteration", "total"])


def _name_of(algorithm: Any) -> str:
    name = getattr(algorithm, "name", None)
    if callable(name):
        return name()
    return type(algorithm).__name__
