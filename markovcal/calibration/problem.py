from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from markovcal.calibration.likelihood import GaussianLikelihood
from markovcal.calibration.priors import ParameterSpace


@dataclass(frozen=True)
class CalibrationProblem:
    """Prior sampler, prior density and likelihood shared by every strategy."""

    space: ParameterSpace
    likelihood_fn: GaussianLikelihood

    def __post_init__(self) -> None:
        if self.likelihood_fn.space.names != self.space.names:
            raise ValueError("Likelihood and prior use different parameter spaces")

    @property
    def names(self):
        return self.space.names

    def sample_prior(self, n: int, rng: np.random.Generator) -> np.ndarray:
        return self.space.sample(n, rng)

    def log_prior(self, X) -> np.ndarray:
        return self.space.log_prob(X)

    def prior(self, X) -> np.ndarray:
        return np.exp(self.log_prior(X))

    def log_likelihood(self, X) -> np.ndarray:
        return self.likelihood_fn.log_likelihood(X)

    def likelihood(self, X) -> np.ndarray:
        return np.exp(self.log_likelihood(X))

    def log_posterior(self, X) -> np.ndarray:
        """Unnormalized log posterior; the simulator only runs inside the prior support."""
        log_prior = self.log_prior(X)
        out = np.full(log_prior.shape, -np.inf)
        feasible = np.isfinite(log_prior)
        if np.any(feasible):
            X = np.atleast_2d(np.asarray(X, dtype=float))
            out[feasible] = log_prior[feasible] + self.log_likelihood(X[feasible])
        return out
