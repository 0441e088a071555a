"""
Incremental Mixture Importance Sampling
=======================================
Bayesian calibration with IMIS (Raftery & Bao, 2010).

IMIS works by:
1. Sampling a large initial pool from the prior
2. Weighting every sample by prior x likelihood / proposal density
3. Adding a Gaussian mixture component around the highest-weight sample
4. Repeating until the importance weights are spread over enough samples
5. Resampling the pool proportionally to the final weights

All densities are handled on the log scale, so tiny likelihoods do not
underflow to zero weights.

References:
- Raftery, A. E., & Bao, L. (2010). Estimating and projecting trends in
  HIV/AIDS generalized epidemics using Incremental Mixture Importance Sampling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field
from scipy import stats
from scipy.special import logsumexp

from markovcal.calibration.errors import CalibrationError
from markovcal.calibration.nelder_mead import NelderMeadConfig, optimize_from
from markovcal.calibration.problem import CalibrationProblem

# Expected fraction of distinct points in a resample of size b_re at which
# the weights count as spread out.
UNIQUE_POINT_FRACTION = 1.0 - np.exp(-1.0)
INITIAL_POOL_FACTOR = 10


class ImisConfig(BaseModel):
    """Configuration for IMIS."""

    b: int = Field(1000, ge=1)  # Samples added per iteration
    b_re: int = Field(10000, ge=1)  # Size of the posterior resample
    number_k: int = Field(10, ge=1)  # Maximum number of iterations
    d: int = Field(0, ge=0)  # Optimizer-seeded components in the first iteration
    optimizer_max_iter: int = Field(500, ge=1)


class ImisState(str, Enum):
    INITIAL = "initial"
    EXPAND = "expand"
    RESAMPLE = "resample"
    CONVERGED = "converged"
    FAILED = "failed"


@dataclass
class ImisResult:
    """Weighted and resampled posterior from IMIS."""

    names: List[str]
    samples: np.ndarray
    log_prior: np.ndarray
    log_likelihood: np.ndarray
    weights: np.ndarray
    resample_index: np.ndarray
    centers: np.ndarray
    covariances: List[np.ndarray]
    diagnostics: pd.DataFrame
    converged: bool
    n_iterations: int
    states: List[ImisState] = field(default_factory=list)

    @property
    def state(self) -> ImisState:
        """CONVERGED, or RESAMPLE when the iteration budget ran out first."""
        return ImisState.CONVERGED if self.converged else ImisState.RESAMPLE

    @property
    def resample(self) -> np.ndarray:
        return self.samples[self.resample_index]

    @property
    def log_posterior(self) -> np.ndarray:
        out = self.log_prior + self.log_likelihood
        out[~np.isfinite(out)] = -np.inf
        return out

    def posterior_mean(self) -> Dict[str, float]:
        """Importance-weighted posterior mean."""
        mean = self.weights @ self.samples
        return dict(zip(self.names, map(float, mean)))

    def posterior_std(self) -> Dict[str, float]:
        mean = self.weights @ self.samples
        var = self.weights @ (self.samples - mean) ** 2
        return dict(zip(self.names, map(float, np.sqrt(var))))

    def credible_interval(self, name: str, level: float = 0.95) -> Tuple[float, float]:
        """Equal-tailed interval from the resampled draws."""
        column = self.resample[:, self.names.index(name)]
        alpha = (1.0 - level) / 2.0
        lower, upper = np.quantile(column, [alpha, 1.0 - alpha])
        return float(lower), float(upper)

    def map_estimate(self) -> Dict[str, float]:
        """Resampled draw with the highest posterior density."""
        candidates = np.unique(self.resample_index)
        best = candidates[np.argmax(self.log_posterior[candidates])]
        return dict(zip(self.names, map(float, self.samples[best])))

    def summary(self, level: float = 0.95) -> pd.DataFrame:
        mean = self.posterior_mean()
        std = self.posterior_std()
        map_est = self.map_estimate()
        rows = []
        for name in self.names:
            lower, upper = self.credible_interval(name, level)
            rows.append({
                "parameter": name,
                "mean": mean[name],
                "std": std[name],
                "map": map_est[name],
                "median": float(np.median(self.resample[:, self.names.index(name)])),
                "lower": lower,
                "upper": upper,
            })
        return pd.DataFrame(rows)

    def samples_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.samples, columns=self.names)
        frame["log_prior"] = self.log_prior
        frame["log_likelihood"] = self.log_likelihood
        frame["weight"] = self.weights
        return frame


def weighted_covariance(
    X: np.ndarray,
    weights: np.ndarray,
    center: np.ndarray,
) -> np.ndarray:
    """Unbiased weighted covariance of X around a fixed center."""
    wt = weights / weights.sum()
    diff = X - center
    cov = (diff * wt[:, None]).T @ diff
    denom = 1.0 - np.sum(wt ** 2)
    if denom > 0:
        cov = cov / denom
    return cov


def _weight_diagnostics(log_weights: np.ndarray, b_re: int) -> Dict[str, float]:
    n = log_weights.shape[0]
    log_total = logsumexp(log_weights)
    w = np.exp(log_weights - log_total)
    positive = w[w > 0]
    return {
        "log_marginal_likelihood": float(log_total - np.log(n)),
        # sum(1 - (1 - w)^b_re) without cancellation for tiny weights
        "expected_unique_points": float(np.sum(-np.expm1(b_re * np.log1p(-np.minimum(w, 1.0 - 1e-16))))),
        "max_weight": float(w.max()),
        "ess": float(1.0 / np.sum(w ** 2)),
        "entropy": float(-np.sum(positive * np.log(positive)) / np.log(n)) if n > 1 else 0.0,
        "var_weights": float(np.var(w * n, ddof=1)) if n > 1 else 0.0,
    }


class _Mixture:
    """Gaussian components of the IMIS proposal, with cached densities."""

    def __init__(self) -> None:
        self.centers: List[np.ndarray] = []
        self.covariances: List[np.ndarray] = []
        self.log_density: List[np.ndarray] = []

    def __len__(self) -> int:
        return len(self.centers)

    def add(self, center: np.ndarray, cov: np.ndarray, X_all: np.ndarray) -> None:
        self.centers.append(center)
        self.covariances.append(cov)
        self.log_density.append(self._logpdf(X_all, center, cov))

    def extend(self, X_new: np.ndarray) -> None:
        """Evaluate every component on newly drawn samples."""
        for j, (center, cov) in enumerate(zip(self.centers, self.covariances)):
            self.log_density[j] = np.concatenate(
                [self.log_density[j], self._logpdf(X_new, center, cov)]
            )

    def log_envelope(self, log_prior: np.ndarray, prior_weight: float) -> np.ndarray:
        terms = [np.log(prior_weight) + log_prior] + self.log_density
        return logsumexp(np.vstack(terms), axis=0) - np.log(prior_weight + len(self))

    @staticmethod
    def _logpdf(X: np.ndarray, center: np.ndarray, cov: np.ndarray) -> np.ndarray:
        return np.atleast_1d(
            stats.multivariate_normal.logpdf(X, mean=center, cov=cov, allow_singular=True)
        )


def _evaluate(problem: CalibrationProblem, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Log prior and log-likelihood; the simulator never sees out-of-bounds samples."""
    log_prior = problem.log_prior(X)
    log_like = np.full(X.shape[0], -np.inf)
    inside = np.isfinite(log_prior)
    if np.any(inside):
        log_like[inside] = problem.log_likelihood(X[inside])
    return log_prior, log_like


def _importance_log_weights(
    log_prior: np.ndarray,
    log_like: np.ndarray,
    mixture: _Mixture,
    prior_weight: float,
) -> np.ndarray:
    log_weights = np.full(log_prior.shape, -np.inf)
    feasible = np.isfinite(log_prior) & np.isfinite(log_like)
    if len(mixture) == 0:
        log_weights[feasible] = log_like[feasible]
    else:
        log_env = mixture.log_envelope(log_prior, prior_weight)
        log_weights[feasible] = log_prior[feasible] + log_like[feasible] - log_env[feasible]
    return log_weights


def _new_component(
    X_all: np.ndarray,
    weights: np.ndarray,
    center: np.ndarray,
    scale: np.ndarray,
    b: int,
) -> np.ndarray:
    """Covariance from the b nearest samples to the center."""
    distance = np.sum((X_all - center) ** 2 / scale, axis=1)
    nearest = np.argsort(distance, kind="stable")[:b]
    return weighted_covariance(
        X_all[nearest],
        weights[nearest] + 1.0 / X_all.shape[0],
        center,
    )


def _optimizer_centers(
    problem: CalibrationProblem,
    X_all: np.ndarray,
    weights: np.ndarray,
    scale: np.ndarray,
    cfg: ImisConfig,
) -> List[np.ndarray]:
    """Local posterior modes started from high-weight, mutually distant samples."""
    nm_cfg = NelderMeadConfig(max_iter=cfg.optimizer_max_iter)
    available = weights > 0
    centers = []
    for _ in range(cfg.d):
        if not np.any(available):
            break
        start_idx = int(np.argmax(np.where(available, weights, -1.0)))
        run = optimize_from(problem, X_all[start_idx], nm_cfg, objective="log_posterior")
        center = run.x if np.isfinite(run.log_likelihood) else X_all[start_idx]
        centers.append(center)
        # Exclude the neighbourhood of this mode from later starts.
        distance = np.sum((X_all - center) ** 2 / scale, axis=1)
        nearest = np.argsort(distance, kind="stable")[: cfg.b]
        available[nearest] = False
    return centers


def run_imis(
    problem: CalibrationProblem,
    cfg: ImisConfig,
    rng: np.random.Generator,
) -> ImisResult:
    """
    Run IMIS and resample the weighted pool.

    Args:
        problem: Prior sampler, prior density and likelihood
        cfg: IMIS configuration
        rng: Random number generator

    Returns:
        ImisResult; ``converged`` is False when ``number_k`` iterations
        ran without the weights spreading out.

    Raises:
        CalibrationError: when every importance weight is zero
    """
    states = [ImisState.INITIAL]
    n_initial = INITIAL_POOL_FACTOR * cfg.b
    prior_weight = n_initial / cfg.b
    threshold = UNIQUE_POINT_FRACTION * cfg.b_re

    X_all = problem.sample_prior(n_initial, rng)
    X_new = X_all
    # Mahalanobis scale: diagonal of the prior sample covariance.
    scale = np.atleast_1d(np.var(X_all, axis=0, ddof=1))
    scale = np.where(scale > 0, scale, 1.0)

    log_prior = np.empty(0)
    log_like = np.empty(0)
    mixture = _Mixture()
    diagnostics = []
    converged = False
    weights = np.empty(0)
    iteration = 0

    for iteration in range(1, cfg.number_k + 1):
        states.append(ImisState.EXPAND)
        new_prior, new_like = _evaluate(problem, X_new)
        log_prior = np.concatenate([log_prior, new_prior])
        log_like = np.concatenate([log_like, new_like])

        log_weights = _importance_log_weights(log_prior, log_like, mixture, prior_weight)
        if not np.any(np.isfinite(log_weights)):
            states.append(ImisState.FAILED)
            raise CalibrationError(
                f"IMIS iteration {iteration}: every importance weight is zero "
                f"({X_all.shape[0]} samples, none with positive prior x likelihood)",
                state=ImisState.FAILED.value,
                iteration=iteration,
            )
        weights = np.exp(log_weights - logsumexp(log_weights))

        stats_k = _weight_diagnostics(log_weights, cfg.b_re)
        stats_k["iteration"] = iteration
        stats_k["n_samples"] = X_all.shape[0]
        diagnostics.append(stats_k)
        logging.info(
            "IMIS stage %d: log marginal likelihood %.3f, unique points %.1f, max weight %.4f, ESS %.1f",
            iteration,
            stats_k["log_marginal_likelihood"],
            stats_k["expected_unique_points"],
            stats_k["max_weight"],
            stats_k["ess"],
        )

        if stats_k["expected_unique_points"] > threshold:
            converged = True
            break
        if iteration == cfg.number_k:
            break

        if iteration == 1 and cfg.d > 0:
            centers = _optimizer_centers(problem, X_all, weights, scale, cfg)
        else:
            centers = [X_all[int(np.argmax(weights))].copy()]

        draws = []
        for center in centers:
            cov = _new_component(X_all, weights, center, scale, cfg.b)
            mixture.add(center, cov, X_all)
            draws.append(rng.multivariate_normal(center, cov, size=cfg.b, method="eigh"))
        X_new = np.vstack(draws)
        mixture.extend(X_new)
        X_all = np.vstack([X_all, X_new])

    states.append(ImisState.RESAMPLE)
    nonzero = np.flatnonzero(weights > 0)
    probs = weights[nonzero] / weights[nonzero].sum()
    resample_index = rng.choice(nonzero, size=cfg.b_re, replace=True, p=probs)

    if converged:
        states.append(ImisState.CONVERGED)
        logging.info("IMIS converged after %d iterations", iteration)
    else:
        logging.warning(
            "IMIS stopped after %d iterations without reaching %.1f expected unique points",
            iteration,
            threshold,
        )

    return ImisResult(
        names=problem.names,
        samples=X_all,
        log_prior=log_prior,
        log_likelihood=log_like,
        weights=weights,
        resample_index=resample_index,
        centers=np.array(mixture.centers).reshape(-1, problem.space.dim),
        covariances=list(mixture.covariances),
        diagnostics=pd.DataFrame(diagnostics),
        converged=converged,
        n_iterations=iteration,
        states=states,
    )
