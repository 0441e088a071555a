from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

from markovcal.calibration.imis import ImisResult, run_imis
from markovcal.calibration.likelihood import GaussianLikelihood, Simulator
from markovcal.calibration.nelder_mead import NelderMeadResult, run_nelder_mead
from markovcal.calibration.problem import CalibrationProblem
from markovcal.calibration.random_search import RandomSearchResult, run_random_search
from markovcal.calibration.targets import TargetSet, load_targets, save_targets, synthetic_targets
from markovcal.calibration.validation import (
    compute_coverage,
    posterior_predictive,
    validate_against_targets,
)
from markovcal.config import CalibrationConfig
from markovcal.io.metadata import build_run_metadata
from markovcal.io.plots import (
    plot_imis_diagnostics,
    plot_posterior,
    plot_random_search,
    plot_target_fit,
)
from markovcal.model.markov_crs import MarkovCRSModel
from markovcal.rng import RNGManager


@dataclass
class CalibrationOutputs:
    targets: TargetSet
    random_search: Optional[RandomSearchResult] = None
    nelder_mead: Optional[NelderMeadResult] = None
    imis: Optional[ImisResult] = None
    predictive: Optional[pd.DataFrame] = None
    summary: Dict[str, object] = field(default_factory=dict)


def build_targets(cfg: CalibrationConfig, simulate: Simulator, rng_manager: RNGManager) -> TargetSet:
    if cfg.targets.path:
        targets = load_targets(cfg.targets.path)
    else:
        synthetic = cfg.targets.synthetic
        targets = synthetic_targets(
            simulate,
            synthetic.true_params,
            rng_manager.stream("targets"),
            times=synthetic.times,
            relative_se=synthetic.relative_se,
            min_se=synthetic.min_se,
        )
    if cfg.targets.weights:
        targets = targets.with_weights(cfg.targets.weights)
    return targets


def build_problem(cfg: CalibrationConfig, simulate: Simulator, targets: TargetSet) -> CalibrationProblem:
    space = cfg.parameter_space()
    likelihood = GaussianLikelihood(simulate, targets, space, cfg.likelihood.failure_scope)
    return CalibrationProblem(space, likelihood)


def run_calibration(
    cfg: CalibrationConfig,
    out_dir: str | Path,
    simulate: Optional[Simulator] = None,
) -> CalibrationOutputs:
    """Run the configured calibration strategies and write outputs to disk."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    if simulate is None:
        simulate = MarkovCRSModel(n_cycles=cfg.model.n_cycles).simulate
    rng_manager = RNGManager(cfg.run.seed)

    metadata = build_run_metadata(cfg)
    with (out_dir / "run_metadata.json").open("w") as f:
        json.dump(metadata, f, indent=2)

    targets = build_targets(cfg, simulate, rng_manager)
    save_targets(targets, out_dir / "targets.csv")
    problem = build_problem(cfg, simulate, targets)
    outputs = CalibrationOutputs(targets=targets)
    summary: Dict[str, object] = {"seed": cfg.run.seed, "methods": list(cfg.run.methods)}
    fits: Dict[str, Dict[str, np.ndarray]] = {}

    if "random_search" in cfg.run.methods:
        logging.info("Running random search with %d samples", cfg.random_search.n_samples)
        result = run_random_search(problem, cfg.random_search, rng_manager.stream("random_search"))
        result.ranked().to_csv(out_dir / "random_search.csv", index=False)
        best = result.best()
        summary["random_search"] = {
            "best": best,
            "log_likelihood": float(result.ranked()["log_likelihood"].iloc[0]),
            "n_failed": result.n_failed,
            "top": result.top(cfg.random_search.top_k).to_dict(orient="records"),
        }
        fits["random search"] = simulate(best)
        outputs.random_search = result

    if "nelder_mead" in cfg.run.methods:
        logging.info("Running Nelder-Mead from %d starts", cfg.nelder_mead.n_starts)
        result = run_nelder_mead(problem, cfg.nelder_mead, rng_manager.stream("nelder_mead"))
        result.ranked().to_csv(out_dir / "nelder_mead.csv", index=False)
        best = result.best()
        summary["nelder_mead"] = {
            "best": best,
            "log_likelihood": float(np.max(result.values)),
            "n_converged": result.n_converged,
            "top": result.top(cfg.nelder_mead.top_k).to_dict(orient="records"),
        }
        fits["Nelder-Mead"] = simulate(best)
        outputs.nelder_mead = result

    if "imis" in cfg.run.methods:
        logging.info("Running IMIS with B=%d, B.re=%d", cfg.imis.b, cfg.imis.b_re)
        imis_rng = rng_manager.stream("imis")
        result = run_imis(problem, cfg.imis, imis_rng)
        if cfg.output.save_samples:
            result.samples_frame().to_csv(out_dir / "imis_samples.csv", index=False)
            problem.space.to_frame(result.resample).to_csv(out_dir / "imis_resample.csv", index=False)
        result.diagnostics.to_csv(out_dir / "imis_diagnostics.csv", index=False)
        posterior = result.summary(cfg.validation.level)
        posterior.to_csv(out_dir / "imis_posterior_summary.csv", index=False)

        predictive = posterior_predictive(
            result.resample,
            simulate,
            targets,
            problem.space,
            rng_manager.stream("validation"),
            n_draws=cfg.validation.n_draws,
            level=cfg.validation.level,
        )
        predictive.to_csv(out_dir / "posterior_predictive.csv", index=False)
        coverage = compute_coverage(validate_against_targets(predictive))

        summary["imis"] = {
            "converged": result.converged,
            "state": result.state.value,
            "n_iterations": result.n_iterations,
            "n_samples": int(result.samples.shape[0]),
            "posterior_mean": result.posterior_mean(),
            "map": result.map_estimate(),
            "coverage": coverage,
        }
        fits["IMIS MAP"] = simulate(result.map_estimate())
        outputs.imis = result
        outputs.predictive = predictive

    if cfg.output.save_plots:
        plots_dir = out_dir / "plots"
        plots_dir.mkdir(exist_ok=True)
        plot_target_fit(targets, fits, plots_dir, outputs.predictive)
        if outputs.random_search is not None:
            plot_random_search(
                outputs.random_search.ranked(),
                problem.names,
                plots_dir,
                cfg.random_search.top_k,
            )
        if outputs.imis is not None:
            prior_draws = problem.sample_prior(outputs.imis.resample.shape[0], rng_manager.stream("validation"))
            plot_posterior(outputs.imis.resample, prior_draws, problem.names, plots_dir)
            plot_imis_diagnostics(outputs.imis.diagnostics, cfg.imis.b_re, plots_dir)

    with (out_dir / "summary.json").open("w") as f:
        json.dump(summary, f, indent=2, default=float)

    outputs.summary = summary
    return outputs
