# /singularity/regression/src/config.py
"""
Convergence configuration for the quasi-Newton optimizer and its line search.

One immutable instance is created per training run. Callers may override any
subset of the defaults, either directly, from a dict, or from a YAML file.
"""

import math
from dataclasses import dataclass, asdict, fields, replace as dc_replace
from typing import Any, Dict

import yaml


@dataclass(frozen=True)
class OptimizerConfig:
    """Termination and step-size settings for one optimization run."""

    # Outer loop
    max_iterations: int = 100  # lifetime budget of outer iterations
    tolerance: float = 1e-4  # relative change in objective value
    epsilon: float = 1e-5  # guards the relative value check near zero
    gradient_tolerance: float = 1e-3  # gradient norm considered stationary
    history_size: int = 7  # number of (s, y, rho) corrections kept (m)

    # Line search
    max_line_search_iterations: int = 100
    relative_tolerance: float = 1e-7  # |delta(x)/x| below which a step is useless
    absolute_tolerance: float = 1e-4  # |delta(x)| below which a step is useless
    max_step: float = 100.0  # cap on the norm of a search direction
    alf: float = 1e-4  # sufficient-increase (Wolfe) constant

    def __post_init__(self):
        for name in ("max_iterations", "max_line_search_iterations", "history_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        for name in (
            "tolerance",
            "epsilon",
            "gradient_tolerance",
            "relative_tolerance",
            "absolute_tolerance",
            "max_step",
            "alf",
        ):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")

        if self.alf >= 1.0:
            raise ValueError(f"alf must be below 1.0, got {self.alf}")

    def replace(self, **overrides) -> "OptimizerConfig":
        """Return a copy with the given fields overridden."""
        return dc_replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OptimizerConfig":
        """Create config from dictionary, ignoring unknown keys."""
        types = {f.name: type(f.default) for f in fields(cls)}
        filtered = {}
        for k, v in d.items():
            if k not in types:
                continue
            # YAML 1.1 reads "1e-4" as a string
            if isinstance(v, str):
                try:
                    v = types[k](float(v)) if types[k] is int else types[k](v)
                except ValueError as e:
                    raise ValueError(f"{k} must be numeric, got {v!r}") from e
            elif types[k] is float and isinstance(v, int) and not isinstance(v, bool):
                v = float(v)
            filtered[k] = v
        return cls(**filtered)

    @classmethod
    def from_yaml(cls, path) -> "OptimizerConfig":
        """
        Load config from a YAML file.

        The file may either hold the fields at top level or nest them under an
        ``optimizer`` key.

        Args:
            path: Path to the YAML file

        Returns:
            OptimizerConfig with the file's overrides applied
        """
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Expected a mapping in {path}, got {type(raw).__name__}")

        if isinstance(raw.get("optimizer"), dict):
            raw = raw["optimizer"]

        return cls.from_dict(raw)
