"""
Prior Distributions
===================
Bounded prior distributions for calibrated parameters.

Every marginal lives on its declared ``[lower, upper]`` box, so the joint
prior density is zero outside the bounds. Prior draws use a Latin-hypercube
design pushed through each marginal's inverse CDF.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from scipy.stats import qmc


@dataclass(frozen=True)
class ParameterPrior:
    """Prior distribution for a single parameter."""

    name: str
    lower: float
    upper: float
    distribution: str = "uniform"  # "uniform", "beta", "loguniform", "truncnorm"
    params: Tuple[float, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.lower < self.upper:
            raise ValueError(f"{self.name}: lower bound must be below upper bound")
        if self.distribution == "loguniform" and self.lower <= 0:
            raise ValueError(f"{self.name}: loguniform prior needs a positive lower bound")
        # Build once to surface bad distribution names or params early.
        self.frozen()

    def frozen(self):
        """scipy frozen distribution supported on [lower, upper]."""
        width = self.upper - self.lower
        if self.distribution == "uniform":
            return stats.uniform(loc=self.lower, scale=width)
        elif self.distribution == "beta":
            alpha, beta = self._shape_params("alpha, beta")
            if alpha <= 0 or beta <= 0:
                raise ValueError(f"{self.name}: beta shape parameters must be positive")
            return stats.beta(alpha, beta, loc=self.lower, scale=width)
        elif self.distribution == "loguniform":
            return stats.loguniform(self.lower, self.upper)
        elif self.distribution == "truncnorm":
            mean, std = self._shape_params("mean, sd")
            if std <= 0:
                raise ValueError(f"{self.name}: truncnorm sd must be positive")
            a = (self.lower - mean) / std
            b = (self.upper - mean) / std
            return stats.truncnorm(a, b, loc=mean, scale=std)
        else:
            raise ValueError(f"Unknown distribution: {self.distribution}")

    def _shape_params(self, expected: str) -> Tuple[float, float]:
        if len(self.params) != 2:
            raise ValueError(
                f"{self.name}: {self.distribution} prior needs params ({expected}), got {tuple(self.params)}"
            )
        return float(self.params[0]), float(self.params[1])

    def ppf(self, u: np.ndarray) -> np.ndarray:
        return self.frozen().ppf(u)

    def log_prob(self, values: np.ndarray) -> np.ndarray:
        """Log density of values, -inf outside the bounds."""
        values = np.asarray(values, dtype=float)
        inside = (values >= self.lower) & (values <= self.upper)
        out = np.full(values.shape, -np.inf)
        if np.any(inside):
            out[inside] = self.frozen().logpdf(values[inside])
        return out


class ParameterSpace:
    """Ordered, immutable set of bounded parameter priors."""

    def __init__(self, priors: Sequence[ParameterPrior]):
        if len(priors) == 0:
            raise ValueError("At least one parameter prior is required")
        names = [p.name for p in priors]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate parameter names: {names}")
        self._priors: Tuple[ParameterPrior, ...] = tuple(priors)
        self._lower = np.array([p.lower for p in priors], dtype=float)
        self._upper = np.array([p.upper for p in priors], dtype=float)
        self._lower.flags.writeable = False
        self._upper.flags.writeable = False

    @property
    def priors(self) -> Tuple[ParameterPrior, ...]:
        return self._priors

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._priors]

    @property
    def lower(self) -> np.ndarray:
        return self._lower

    @property
    def upper(self) -> np.ndarray:
        return self._upper

    @property
    def dim(self) -> int:
        return len(self._priors)

    def __repr__(self) -> str:
        bounds = ", ".join(f"{p.name}=[{p.lower}, {p.upper}]" for p in self._priors)
        return f"ParameterSpace({bounds})"

    def _as_matrix(self, X) -> np.ndarray:
        X = np.atleast_2d(np.asarray(X, dtype=float))
        if X.shape[1] != self.dim:
            raise ValueError(f"Expected {self.dim} parameters, got {X.shape[1]}")
        return X

    def sample(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Latin-hypercube draw of n parameter vectors, shape (n, dim)."""
        if n < 1:
            raise ValueError("n must be at least 1")
        unit = qmc.LatinHypercube(d=self.dim, seed=rng).random(n)
        columns = [prior.ppf(unit[:, j]) for j, prior in enumerate(self._priors)]
        return np.column_stack(columns)

    def sample_uniform(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Independent uniform draws inside the bounds box."""
        if n < 1:
            raise ValueError("n must be at least 1")
        return rng.uniform(self._lower, self._upper, size=(n, self.dim))

    def in_bounds(self, X) -> np.ndarray:
        X = self._as_matrix(X)
        return np.all((X >= self._lower) & (X <= self._upper), axis=1)

    def log_prob(self, X) -> np.ndarray:
        """Joint log prior density per row (sum of marginal log densities)."""
        X = self._as_matrix(X)
        log_prob = np.zeros(X.shape[0])
        for j, prior in enumerate(self._priors):
            log_prob += prior.log_prob(X[:, j])
        return log_prob

    def prob(self, X) -> np.ndarray:
        return np.exp(self.log_prob(X))

    def to_dict(self, x) -> Dict[str, float]:
        x = np.asarray(x, dtype=float).ravel()
        if x.shape[0] != self.dim:
            raise ValueError(f"Expected {self.dim} parameters, got {x.shape[0]}")
        return {name: float(value) for name, value in zip(self.names, x)}

    def to_array(self, params: Mapping[str, float]) -> np.ndarray:
        unknown = set(params) - set(self.names)
        if unknown:
            raise ValueError(f"Unknown parameters: {sorted(unknown)}")
        return np.array([float(params[name]) for name in self.names])

    def to_frame(self, X) -> pd.DataFrame:
        return pd.DataFrame(self._as_matrix(X), columns=self.names)


def define_parameter_priors(
    lower: float = 0.04,
    upper: float = 0.16,
) -> ParameterSpace:
    """Uniform priors of the three-state tutorial model."""
    return ParameterSpace([
        ParameterPrior(
            name="p_mets",
            lower=lower,
            upper=upper,
            description="Monthly probability of progressing from NED to metastasis",
        ),
        ParameterPrior(
            name="p_die_mets",
            lower=lower,
            upper=upper,
            description="Monthly probability of dying from metastatic disease",
        ),
    ])
