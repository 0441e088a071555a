"""
Calibration Targets
===================
Observed series with uncertainty that the model must reproduce.

A target is a set of aligned (time, value, se) points. Times are model
cycles counted from 1, so the model value matched against time ``t`` is
element ``t - 1`` of the corresponding output series.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = ["target", "time", "value", "se"]


@dataclass(eq=False)
class Target:
    """A single named target series."""

    name: str
    time: np.ndarray
    value: np.ndarray
    se: np.ndarray
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None
    weight: float = 1.0

    def __post_init__(self) -> None:
        time = np.asarray(self.time, dtype=float)
        if not np.all(np.isfinite(time)) or np.any(time != np.round(time)):
            raise ValueError(f"Target {self.name}: times must be whole cycles")
        self.time = time.astype(int)
        self.value = np.asarray(self.value, dtype=float)
        self.se = np.asarray(self.se, dtype=float)
        n = self.time.shape[0]
        if n == 0:
            raise ValueError(f"Target {self.name} has no points")
        if self.value.shape != (n,) or self.se.shape != (n,):
            raise ValueError(f"Target {self.name}: time, value and se must have equal length")
        if np.any(self.time < 1):
            raise ValueError(f"Target {self.name}: times start at cycle 1")
        if not np.all(np.isfinite(self.se)) or np.any(self.se <= 0):
            raise ValueError(f"Target {self.name}: standard errors must be positive")
        if not np.all(np.isfinite(self.value)):
            raise ValueError(f"Target {self.name}: values must be finite")
        if not np.isfinite(self.weight) or self.weight < 0:
            raise ValueError(f"Target {self.name}: weight must be finite and non-negative")
        if self.lower is None:
            self.lower = self.value - 1.96 * self.se
        if self.upper is None:
            self.upper = self.value + 1.96 * self.se
        self.lower = np.asarray(self.lower, dtype=float)
        self.upper = np.asarray(self.upper, dtype=float)

    def __len__(self) -> int:
        return self.time.shape[0]

    def model_values(self, series: np.ndarray) -> np.ndarray:
        """Model output aligned to the target time points."""
        series = np.asarray(series, dtype=float)
        if self.time.max() > series.shape[0]:
            raise ValueError(
                f"Output for {self.name} has {series.shape[0]} cycles, "
                f"target needs {int(self.time.max())}"
            )
        return series[self.time - 1]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "target": self.name,
            "time": self.time,
            "value": self.value,
            "se": self.se,
            "lower": self.lower,
            "upper": self.upper,
            "weight": self.weight,
        })


@dataclass
class TargetSet:
    """Collection of targets keyed by output-series name."""

    targets: Dict[str, Target] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.targets:
            raise ValueError("At least one target is required")
        for key, target in self.targets.items():
            if key != target.name:
                raise ValueError(f"Target key {key} does not match name {target.name}")

    def __iter__(self) -> Iterator[Target]:
        return iter(self.targets.values())

    def __len__(self) -> int:
        return len(self.targets)

    def __getitem__(self, name: str) -> Target:
        return self.targets[name]

    @property
    def names(self):
        return list(self.targets)

    def get_weights(self) -> Dict[str, float]:
        return {name: t.weight for name, t in self.targets.items()}

    def with_weights(self, weights: Mapping[str, float]) -> "TargetSet":
        unknown = set(weights) - set(self.targets)
        if unknown:
            raise ValueError(f"Weights given for unknown targets: {sorted(unknown)}")
        updated = {}
        for name, t in self.targets.items():
            updated[name] = Target(
                name=name,
                time=t.time,
                value=t.value,
                se=t.se,
                lower=t.lower,
                upper=t.upper,
                weight=float(weights.get(name, t.weight)),
            )
        return TargetSet(updated)

    def to_frame(self) -> pd.DataFrame:
        return pd.concat([t.to_frame() for t in self], ignore_index=True)

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> "TargetSet":
        missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
        if missing:
            raise ValueError(f"Target table is missing columns: {missing}")
        targets = {}
        for name, subset in frame.groupby("target", sort=False):
            subset = subset.sort_values("time")
            weights = subset["weight"].unique() if "weight" in subset else np.array([1.0])
            if len(weights) != 1:
                raise ValueError(f"Target {name} has more than one weight")
            targets[str(name)] = Target(
                name=str(name),
                time=subset["time"].to_numpy(),
                value=subset["value"].to_numpy(),
                se=subset["se"].to_numpy(),
                lower=subset["lower"].to_numpy() if "lower" in subset else None,
                upper=subset["upper"].to_numpy() if "upper" in subset else None,
                weight=float(weights[0]),
            )
        return cls(targets)


def load_targets(path: str | Path) -> TargetSet:
    return TargetSet.from_frame(pd.read_csv(path))


def save_targets(targets: TargetSet, path: str | Path) -> None:
    targets.to_frame().to_csv(path, index=False)


def synthetic_targets(
    simulate: Callable[[Dict[str, float]], Dict[str, np.ndarray]],
    true_params: Dict[str, float],
    rng: np.random.Generator,
    times: Optional[Sequence[int]] = None,
    relative_se: float = 0.05,
    min_se: float = 0.005,
) -> TargetSet:
    """
    Generate noisy targets from a known parameter set.

    Each point is the model value plus Gaussian noise with standard error
    ``max(relative_se * value, min_se)``. Used when no observed data are
    supplied, mirroring the tutorials' simulated survival data.
    """
    if relative_se < 0 or min_se <= 0:
        raise ValueError("relative_se must be non-negative and min_se positive")
    outputs = simulate(dict(true_params))
    targets = {}
    for name, series in outputs.items():
        series = np.asarray(series, dtype=float)
        t = np.arange(1, series.shape[0] + 1) if times is None else np.asarray(times, dtype=int)
        truth = series[t - 1]
        se = np.maximum(relative_se * np.abs(truth), min_se)
        value = truth + rng.normal(0.0, se)
        targets[name] = Target(name=name, time=t, value=value, se=se)
    return TargetSet(targets)
