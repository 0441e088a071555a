from __future__ import annotations

import argparse
import json
import logging
from glob import glob
from pathlib import Path
from typing import List, Optional

from markovcal.analysis.aggregate import aggregate_best_fits
from markovcal.calibrate import build_targets, run_calibration
from markovcal.calibration.errors import CalibrationError
from markovcal.calibration.targets import save_targets
from markovcal.config import ConfigError, dump_config, load_config
from markovcal.io.logging import setup_logging
from markovcal.model.markov_crs import MarkovCRSModel
from markovcal.rng import RNGManager

METHOD_CHOICES = ["random_search", "nelder_mead", "imis"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="markovcal", description="Three-state Markov model calibration")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a calibration")
    run.add_argument("--config", required=True, help="Path to config YAML")
    run.add_argument("--seed", type=int, default=None)
    run.add_argument("--methods", nargs="+", choices=METHOD_CHOICES, default=None)
    run.add_argument("--no-plots", action="store_true")
    run.add_argument("--out", required=True, help="Output directory")

    sweep = sub.add_parser("sweep", help="Run a calibration for several seeds")
    sweep.add_argument("--config", required=True)
    sweep.add_argument("--seeds", nargs="+", type=int, required=True)
    sweep.add_argument("--out", required=True)

    targets = sub.add_parser("targets", help="Write the configured targets to CSV")
    targets.add_argument("--config", required=True)
    targets.add_argument("--out", required=True, help="Output CSV path")

    aggregate = sub.add_parser("aggregate", help="Aggregate best fits from existing runs")
    aggregate.add_argument("--runs", nargs="+", required=True, help="Run directories or glob patterns")
    aggregate.add_argument("--out", required=False, help="Output directory for aggregate CSVs")

    return parser.parse_args(argv)


def override_config(cfg, args: argparse.Namespace) -> None:
    if args.seed is not None:
        cfg.run.seed = args.seed
    if args.methods is not None:
        cfg.run.methods = args.methods
    if args.no_plots:
        cfg.output.save_plots = False


def run_single(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    override_config(cfg, args)
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    dump_config(cfg, out_dir / "config_resolved.yaml")
    run_calibration(cfg, out_dir)


def run_sweep(args: argparse.Namespace) -> None:
    base_out = Path(args.out)
    base_out.mkdir(parents=True, exist_ok=True)
    summaries = []
    param_names = None
    for seed in args.seeds:
        cfg = load_config(args.config)
        cfg.run.seed = seed
        param_names = [p.name for p in cfg.parameters]
        run_name = f"{Path(args.config).stem}_seed_{seed}"
        out_dir = base_out / run_name
        out_dir.mkdir(parents=True, exist_ok=True)
        dump_config(cfg, out_dir / "config_resolved.yaml")
        logging.info("Running %s", run_name)
        outputs = run_calibration(cfg, out_dir)
        summaries.append((run_name, outputs.summary))

    if summaries:
        combined, agg = aggregate_best_fits(summaries, param_names)
        combined.to_csv(base_out / "best_fits.csv", index=False)
        agg.to_csv(base_out / "best_fit_summary.csv", index=False)


def run_targets(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    simulate = MarkovCRSModel(n_cycles=cfg.model.n_cycles).simulate
    targets = build_targets(cfg, simulate, RNGManager(cfg.run.seed))
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    save_targets(targets, out_path)
    logging.info("Wrote %d targets to %s", len(targets), out_path)


def run_aggregate(args: argparse.Namespace) -> None:
    run_dirs = []
    for pattern in args.runs:
        matched = glob(pattern)
        if matched:
            run_dirs.extend([Path(p) for p in matched])
        else:
            run_dirs.append(Path(pattern))

    summaries = []
    param_names = None
    for run_dir in run_dirs:
        summary_path = run_dir / "summary.json"
        if not summary_path.exists():
            logging.warning("Skipping %s (no summary.json)", run_dir)
            continue
        config_path = run_dir / "config_resolved.yaml"
        if param_names is None and config_path.exists():
            param_names = [p.name for p in load_config(config_path).parameters]
        summaries.append((run_dir.name, json.loads(summary_path.read_text())))

    if not summaries:
        logging.error("No runs found to aggregate.")
        return
    if param_names is None:
        logging.error("No config_resolved.yaml found; cannot determine parameter names.")
        return

    combined, agg = aggregate_best_fits(summaries, param_names)
    out_dir = Path(args.out) if args.out else run_dirs[0].parent
    out_dir.mkdir(parents=True, exist_ok=True)
    combined.to_csv(out_dir / "best_fits.csv", index=False)
    agg.to_csv(out_dir / "best_fit_summary.csv", index=False)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        if args.command == "run":
            run_single(args)
        elif args.command == "sweep":
            run_sweep(args)
        elif args.command == "targets":
            run_targets(args)
        elif args.command == "aggregate":
            run_aggregate(args)
    except (ConfigError, CalibrationError) as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
