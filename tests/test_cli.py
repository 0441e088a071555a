from pathlib import Path

import pandas as pd

from markovcal.cli import main

CONFIG_DIR = Path(__file__).parent.parent / "configs"


def test_targets_command(tmp_path: Path):
    out = tmp_path / "targets.csv"
    assert main(["targets", "--config", str(CONFIG_DIR / "crs_quick.yaml"), "--out", str(out)]) == 0
    frame = pd.read_csv(out)
    assert set(frame["target"]) == {"surv"}
    assert len(frame) == 60


def test_run_and_aggregate(tmp_path: Path):
    config = str(CONFIG_DIR / "crs_quick.yaml")
    for seed in (1, 2):
        code = main([
            "run",
            "--config", config,
            "--seed", str(seed),
            "--methods", "random_search", "nelder_mead",
            "--no-plots",
            "--out", str(tmp_path / f"run_{seed}"),
        ])
        assert code == 0
        assert (tmp_path / f"run_{seed}" / "config_resolved.yaml").exists()

    assert main(["aggregate", "--runs", str(tmp_path / "run_*"), "--out", str(tmp_path / "agg")]) == 0
    best = pd.read_csv(tmp_path / "agg" / "best_fits.csv")
    assert len(best) == 4
    summary = pd.read_csv(tmp_path / "agg" / "best_fit_summary.csv")
    assert set(summary["method"]) == {"random_search", "nelder_mead"}
    assert (summary["n_runs"] == 2).all()


def test_invalid_config_returns_error(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("imis:\n  b_re: -1\n")
    assert main(["run", "--config", str(bad), "--out", str(tmp_path / "out")]) == 1


def test_bad_prior_returns_error(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        "parameters:\n"
        "  - name: p_mets\n"
        "    lower: 0.04\n"
        "    upper: 0.16\n"
        "    distribution: beta\n"
    )
    assert main(["run", "--config", str(bad), "--out", str(tmp_path / "out")]) == 1
