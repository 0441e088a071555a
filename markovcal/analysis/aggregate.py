from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

import numpy as np
import pandas as pd

METHODS = ("random_search", "nelder_mead", "imis")


def best_fit_rows(run_name: str, summary: Dict[str, object]) -> List[Dict[str, object]]:
    """One row per calibration method found in a run summary."""
    rows = []
    for method in METHODS:
        if method not in summary:
            continue
        entry = summary[method]
        estimate = entry["map"] if method == "imis" else entry["best"]
        row = {"run": run_name, "method": method}
        row.update({name: float(value) for name, value in estimate.items()})
        if method == "imis":
            row.update({f"{name}_posterior_mean": float(v) for name, v in entry["posterior_mean"].items()})
            row["converged"] = bool(entry["converged"])
        else:
            row["log_likelihood"] = float(entry["log_likelihood"])
        rows.append(row)
    return rows


def aggregate_best_fits(
    runs: Iterable[Tuple[str, Dict[str, object]]],
    param_names: List[str],
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Collect best-fit parameters across runs and summarize them per method.

    Returns the per-run table and a per-method table of mean, std and a
    normal 95% interval half-width for each parameter.
    """
    rows = []
    for run_name, summary in runs:
        rows.extend(best_fit_rows(run_name, summary))
    if not rows:
        raise ValueError("No calibration results to aggregate")

    combined = pd.DataFrame(rows)
    grouped = combined.groupby("method")
    agg = grouped[param_names].agg(["mean", "std"]).reset_index()
    agg.columns = ["_".join(col).rstrip("_") for col in agg.columns]

    counts = grouped["run"].nunique().reindex(agg["method"]).to_numpy()
    for name in param_names:
        std_col = f"{name}_std"
        agg[f"{name}_ci95"] = 1.96 * agg[std_col].fillna(0) / np.maximum(np.sqrt(counts), 1)
    agg.insert(1, "n_runs", counts)
    return combined, agg
