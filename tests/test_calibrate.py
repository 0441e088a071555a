import json
from pathlib import Path

import numpy as np

from markovcal.calibrate import run_calibration
from markovcal.config import CalibrationConfig


def _quick_config(seed: int = 99) -> CalibrationConfig:
    cfg = CalibrationConfig()
    cfg.run.seed = seed
    cfg.random_search.n_samples = 1000
    cfg.nelder_mead.n_starts = 3
    cfg.nelder_mead.max_iter = 300
    cfg.imis.b = 100
    cfg.imis.b_re = 1000
    cfg.imis.number_k = 4
    cfg.validation.n_draws = 50
    cfg.output.save_plots = False
    return cfg


def test_end_to_end_best_fits_in_bounds(tmp_path: Path):
    cfg = _quick_config()
    outputs = run_calibration(cfg, tmp_path)
    space = cfg.parameter_space()

    assert outputs.targets["surv"].time.tolist() == list(range(1, 61))
    for best in (outputs.random_search.best(), outputs.nelder_mead.best(), outputs.imis.map_estimate()):
        assert sorted(best) == ["p_die_mets", "p_mets"]
        assert space.in_bounds(space.to_array(best))[0]
    mean = space.to_array(outputs.imis.posterior_mean())
    assert space.in_bounds(mean)[0]

    for name in [
        "run_metadata.json",
        "targets.csv",
        "random_search.csv",
        "nelder_mead.csv",
        "imis_samples.csv",
        "imis_resample.csv",
        "imis_diagnostics.csv",
        "posterior_predictive.csv",
        "summary.json",
    ]:
        assert (tmp_path / name).exists(), name
    summary = json.loads((tmp_path / "summary.json").read_text())
    assert summary["imis"]["state"] in ("converged", "resample")
    meta = json.loads((tmp_path / "run_metadata.json").read_text())
    assert meta["seed"] == str(cfg.run.seed)
    assert meta["parameters"] == "p_mets,p_die_mets"
    assert meta["failure_scope"] == "sample"


def test_reproducibility(tmp_path: Path):
    cfg = _quick_config(seed=5)
    cfg.run.methods = ["random_search", "imis"]
    first = run_calibration(cfg, tmp_path / "run1")
    second = run_calibration(cfg, tmp_path / "run2")
    assert first.random_search.ranked().equals(second.random_search.ranked())
    assert np.array_equal(first.imis.resample, second.imis.resample)
    assert first.nelder_mead is None


def test_plots_are_written(tmp_path: Path):
    cfg = _quick_config()
    cfg.random_search.n_samples = 100
    cfg.run.methods = ["random_search", "imis"]
    cfg.output.save_plots = True
    run_calibration(cfg, tmp_path)
    plots = tmp_path / "plots"
    assert (plots / "fit_surv.png").exists()
    assert (plots / "random_search.png").exists()
    assert (plots / "posterior_marginals.png").exists()
    assert (plots / "imis_diagnostics.png").exists()
