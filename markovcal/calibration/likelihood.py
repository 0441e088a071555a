"""
Gaussian Likelihood
===================
Goodness-of-fit of simulated outputs against calibration targets.

Each target point contributes a normal log density of the observed value
around the model value with the point's standard error. Targets combine as
a weighted sum of their log-likelihoods.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Literal, Mapping

import numpy as np
from scipy import stats

from markovcal.calibration.priors import ParameterSpace
from markovcal.calibration.targets import TargetSet

Simulator = Callable[[Dict[str, float]], Mapping[str, np.ndarray]]


class GaussianLikelihood:
    """Log-likelihood of a parameter vector given targets with known se."""

    def __init__(
        self,
        simulate: Simulator,
        targets: TargetSet,
        space: ParameterSpace,
        failure_scope: Literal["sample", "batch"] = "sample",
    ):
        if failure_scope not in ("sample", "batch"):
            raise ValueError(f"Unknown failure scope: {failure_scope}")
        self.simulate = simulate
        self.targets = targets
        self.space = space
        self.failure_scope = failure_scope

    def target_log_likelihoods(self, params: Dict[str, float]) -> Dict[str, float]:
        """Per-target log-likelihood. Propagates simulator errors."""
        outputs = self.simulate(params)
        result = {}
        for target in self.targets:
            if target.name not in outputs:
                raise KeyError(f"Simulator output has no series named {target.name}")
            predicted = target.model_values(outputs[target.name])
            if not np.all(np.isfinite(predicted)):
                raise ValueError(f"Non-finite model output for {target.name}")
            result[target.name] = float(
                np.sum(stats.norm.logpdf(target.value, loc=predicted, scale=target.se))
            )
        return result

    def score(self, x) -> float:
        """Weighted log-likelihood of one vector; -inf when infeasible."""
        x = np.asarray(x, dtype=float)
        if not self.space.in_bounds(x)[0]:
            return -np.inf
        params = self.space.to_dict(x)
        try:
            per_target = self.target_log_likelihoods(params)
        except Exception as exc:
            logging.debug("Model evaluation failed for %s: %s", params, exc)
            return -np.inf
        weights = self.targets.get_weights()
        total = sum(weights[name] * value for name, value in per_target.items())
        return float(total) if np.isfinite(total) else -np.inf

    def log_likelihood(self, X) -> np.ndarray:
        X = np.atleast_2d(np.asarray(X, dtype=float))
        values = np.array([self.score(x) for x in X])
        if self.failure_scope == "batch" and np.any(np.isneginf(values)):
            logging.warning(
                "%d of %d samples failed; batch failure scope sets the whole batch to -inf",
                int(np.isneginf(values).sum()),
                values.shape[0],
            )
            values[:] = -np.inf
        return values

    def likelihood(self, X) -> np.ndarray:
        return np.exp(self.log_likelihood(X))
