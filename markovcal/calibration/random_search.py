"""
Random Search
=============
Uninformed calibration by scoring a Latin-hypercube sample of the prior.

Every draw is evaluated once and the sample is ranked by log-likelihood.
Ties keep the original sample order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from markovcal.calibration.errors import CalibrationError
from markovcal.calibration.problem import CalibrationProblem


class RandomSearchConfig(BaseModel):
    """Configuration for random search."""

    n_samples: int = Field(1000, ge=1)
    top_k: int = Field(10, ge=1)


@dataclass
class RandomSearchResult:
    """Scored prior sample."""

    names: List[str]
    samples: np.ndarray
    log_likelihood: np.ndarray

    @property
    def order(self) -> np.ndarray:
        # Stable sort keeps the original order among equal scores.
        return np.argsort(-self.log_likelihood, kind="stable")

    @property
    def n_failed(self) -> int:
        return int(np.sum(~np.isfinite(self.log_likelihood)))

    def ranked(self) -> pd.DataFrame:
        order = self.order
        frame = pd.DataFrame(self.samples[order], columns=self.names)
        frame.insert(0, "sample", order)
        frame.insert(0, "rank", np.arange(1, len(order) + 1))
        frame["log_likelihood"] = self.log_likelihood[order]
        return frame

    def top(self, k: int) -> pd.DataFrame:
        """Best k samples with a finite score."""
        ranked = self.ranked()
        ranked = ranked[np.isfinite(ranked["log_likelihood"])]
        return ranked.head(k).reset_index(drop=True)

    def best(self) -> Dict[str, float]:
        if self.n_failed == len(self.log_likelihood):
            raise CalibrationError("Random search found no sample with a finite likelihood")
        idx = int(self.order[0])
        return {name: float(v) for name, v in zip(self.names, self.samples[idx])}


def run_random_search(
    problem: CalibrationProblem,
    cfg: RandomSearchConfig,
    rng: np.random.Generator,
) -> RandomSearchResult:
    """
    Score ``cfg.n_samples`` Latin-hypercube prior draws.

    Args:
        problem: Prior sampler and likelihood
        cfg: Random search configuration
        rng: Random number generator

    Returns:
        RandomSearchResult holding every sample with its log-likelihood
    """
    samples = problem.sample_prior(cfg.n_samples, rng)
    log_likelihood = problem.log_likelihood(samples)
    result = RandomSearchResult(
        names=problem.names,
        samples=samples,
        log_likelihood=log_likelihood,
    )
    if result.n_failed:
        logging.warning("Random search: %d of %d samples failed", result.n_failed, cfg.n_samples)
    logging.info(
        "Random search: %d samples, best log-likelihood %.3f",
        cfg.n_samples,
        float(np.max(log_likelihood)),
    )
    return result
