"""
Validation Module
=================
Posterior predictive checks of a calibrated model against its targets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd

from markovcal.calibration.likelihood import Simulator
from markovcal.calibration.priors import ParameterSpace
from markovcal.calibration.targets import TargetSet


@dataclass
class ValidationResult:
    """Agreement between one target and the posterior predictive band."""

    target_name: str
    n_points: int
    n_in_interval: int
    coverage: float
    mean_abs_z_score: float
    max_abs_z_score: float


def posterior_predictive(
    draws: np.ndarray,
    simulate: Simulator,
    targets: TargetSet,
    space: ParameterSpace,
    rng: np.random.Generator,
    n_draws: int = 500,
    level: float = 0.95,
) -> pd.DataFrame:
    """
    Model outputs for posterior draws, summarized at every target time.

    Draws whose simulation fails are skipped and counted in the log.
    """
    draws = np.atleast_2d(draws)
    if draws.shape[0] > n_draws:
        draws = draws[rng.choice(draws.shape[0], size=n_draws, replace=False)]

    predicted: Dict[str, List[np.ndarray]] = {t.name: [] for t in targets}
    n_failed = 0
    for x in draws:
        try:
            outputs = simulate(space.to_dict(x))
            values = {t.name: t.model_values(outputs[t.name]) for t in targets}
        except Exception as exc:
            logging.debug("Posterior predictive simulation failed: %s", exc)
            n_failed += 1
            continue
        for name, series in values.items():
            predicted[name].append(series)
    if n_failed:
        logging.warning("Posterior predictive: %d of %d simulations failed", n_failed, draws.shape[0])
    if n_failed == draws.shape[0]:
        raise ValueError("Every posterior predictive simulation failed")

    alpha = (1.0 - level) / 2.0
    frames = []
    for target in targets:
        matrix = np.vstack(predicted[target.name])
        frames.append(pd.DataFrame({
            "target": target.name,
            "time": target.time,
            "observed": target.value,
            "se": target.se,
            "predicted_mean": matrix.mean(axis=0),
            "predicted_lower": np.quantile(matrix, alpha, axis=0),
            "predicted_upper": np.quantile(matrix, 1.0 - alpha, axis=0),
        }))
    return pd.concat(frames, ignore_index=True)


def validate_against_targets(predictive: pd.DataFrame) -> List[ValidationResult]:
    """Coverage and z-scores of observed points against the predictive band."""
    results = []
    for name, subset in predictive.groupby("target", sort=False):
        inside = (subset["observed"] >= subset["predicted_lower"]) & (
            subset["observed"] <= subset["predicted_upper"]
        )
        z = np.abs(subset["observed"] - subset["predicted_mean"]) / subset["se"]
        results.append(ValidationResult(
            target_name=str(name),
            n_points=len(subset),
            n_in_interval=int(inside.sum()),
            coverage=float(inside.mean()),
            mean_abs_z_score=float(z.mean()),
            max_abs_z_score=float(z.max()),
        ))
    return results


def compute_coverage(validation_results: List[ValidationResult]) -> Dict[str, float]:
    """
    Pool coverage over all targets.

    Coverage = fraction of observed points inside the predictive band.
    """
    if len(validation_results) == 0:
        return {"coverage": 0.0, "mean_abs_z_score": 0.0, "n_points": 0}

    n_points = sum(r.n_points for r in validation_results)
    n_inside = sum(r.n_in_interval for r in validation_results)
    mean_z = sum(r.mean_abs_z_score * r.n_points for r in validation_results) / n_points
    return {
        "coverage": n_inside / n_points,
        "mean_abs_z_score": float(mean_z),
        "n_points": n_points,
        "n_targets": len(validation_results),
    }
