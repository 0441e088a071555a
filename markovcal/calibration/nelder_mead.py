"""
Nelder-Mead Calibration
=======================
Directed search: derivative-free simplex maximization of the
log-likelihood from several independent starting points.

Restarts do not share state, so the best run does not depend on the order
of the starting points. A run that reaches the iteration cap keeps the
point the simplex is holding and is flagged as not converged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field
from scipy import optimize

from markovcal.calibration.errors import CalibrationError
from markovcal.calibration.problem import CalibrationProblem


class NelderMeadConfig(BaseModel):
    """Configuration for multi-start Nelder-Mead."""

    n_starts: int = Field(100, ge=1)
    max_iter: int = Field(1000, ge=1)
    xatol: float = Field(1e-6, gt=0)
    fatol: float = Field(1e-6, gt=0)
    top_k: int = Field(10, ge=1)


@dataclass
class OptimizationRun:
    """Outcome of a single restart."""

    start: np.ndarray
    x: np.ndarray
    log_likelihood: float
    n_iter: int
    n_eval: int
    converged: bool
    message: str


@dataclass
class NelderMeadResult:
    names: List[str]
    runs: List[OptimizationRun]

    @property
    def values(self) -> np.ndarray:
        return np.array([run.log_likelihood for run in self.runs])

    @property
    def order(self) -> np.ndarray:
        return np.argsort(-self.values, kind="stable")

    @property
    def n_converged(self) -> int:
        return sum(run.converged for run in self.runs)

    def ranked(self) -> pd.DataFrame:
        rows = []
        for rank, idx in enumerate(self.order, start=1):
            run = self.runs[idx]
            row = {"rank": rank, "start_index": int(idx)}
            row.update({f"start_{n}": float(v) for n, v in zip(self.names, run.start)})
            row.update({n: float(v) for n, v in zip(self.names, run.x)})
            row.update({
                "log_likelihood": run.log_likelihood,
                "n_iter": run.n_iter,
                "n_eval": run.n_eval,
                "converged": run.converged,
            })
            rows.append(row)
        return pd.DataFrame(rows)

    def top(self, k: int) -> pd.DataFrame:
        ranked = self.ranked()
        ranked = ranked[np.isfinite(ranked["log_likelihood"])]
        return ranked.head(k).reset_index(drop=True)

    def best(self) -> Dict[str, float]:
        if not np.any(np.isfinite(self.values)):
            raise CalibrationError("No Nelder-Mead run reached a finite likelihood")
        run = self.runs[int(self.order[0])]
        return {name: float(v) for name, v in zip(self.names, run.x)}


def optimize_from(
    problem: CalibrationProblem,
    start: np.ndarray,
    cfg: NelderMeadConfig,
    objective: str = "log_likelihood",
) -> OptimizationRun:
    """Maximize the log-likelihood (or log posterior) from one start."""
    space = problem.space
    score = problem.log_likelihood if objective == "log_likelihood" else problem.log_posterior

    def negative(x: np.ndarray) -> float:
        value = float(score(x)[0])
        return -value if np.isfinite(value) else np.inf

    res = optimize.minimize(
        negative,
        np.asarray(start, dtype=float),
        method="Nelder-Mead",
        bounds=list(zip(space.lower, space.upper)),
        options={"maxiter": cfg.max_iter, "xatol": cfg.xatol, "fatol": cfg.fatol},
    )
    x = np.clip(res.x, space.lower, space.upper)
    value = float(score(x)[0])
    return OptimizationRun(
        start=np.asarray(start, dtype=float),
        x=x,
        log_likelihood=value,
        n_iter=int(res.nit),
        n_eval=int(res.nfev),
        converged=bool(res.success),
        message=str(res.message),
    )


def run_nelder_mead(
    problem: CalibrationProblem,
    cfg: NelderMeadConfig,
    rng: np.random.Generator,
    starts: Optional[np.ndarray] = None,
) -> NelderMeadResult:
    """
    Run Nelder-Mead from ``cfg.n_starts`` uniform starting points.

    Args:
        problem: Prior bounds and likelihood
        cfg: Optimizer configuration
        rng: Random number generator for the starting points
        starts: Explicit starting points, shape (n, dim); overrides sampling

    Returns:
        NelderMeadResult with one OptimizationRun per start
    """
    if starts is None:
        starts = problem.space.sample_uniform(cfg.n_starts, rng)
    starts = np.atleast_2d(np.asarray(starts, dtype=float))
    outside = ~problem.space.in_bounds(starts)
    if np.any(outside):
        raise ValueError(f"{int(outside.sum())} starting points lie outside the bounds")

    runs = []
    for i, start in enumerate(starts):
        run = optimize_from(problem, start, cfg)
        if not run.converged:
            logging.info("Nelder-Mead start %d stopped early: %s", i, run.message)
        runs.append(run)

    result = NelderMeadResult(names=problem.names, runs=runs)
    logging.info(
        "Nelder-Mead: %d/%d runs converged, best log-likelihood %.3f",
        result.n_converged,
        len(runs),
        float(np.max(result.values)),
    )
    return result
