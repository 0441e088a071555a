from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from markovcal.calibration.targets import TargetSet


def plot_target_fit(
    targets: TargetSet,
    fits: Dict[str, Dict[str, np.ndarray]],
    out_dir: str | Path,
    predictive: Optional[pd.DataFrame] = None,
) -> None:
    """Targets with error bars against best-fit model outputs."""
    out_dir = Path(out_dir)
    for target in targets:
        fig, ax = plt.subplots(figsize=(8, 4))
        if predictive is not None:
            band = predictive[predictive["target"] == target.name]
            ax.fill_between(
                band["time"],
                band["predicted_lower"],
                band["predicted_upper"],
                color="tab:gray",
                alpha=0.3,
                label="posterior 95% band",
            )
        ax.errorbar(
            target.time,
            target.value,
            yerr=1.96 * target.se,
            fmt="o",
            ms=3,
            color="black",
            alpha=0.6,
            label="target",
        )
        for label, outputs in fits.items():
            series = target.model_values(outputs[target.name])
            ax.plot(target.time, series, label=label)
        ax.set_title(f"Model Fit: {target.name}")
        ax.set_xlabel("Cycle")
        ax.set_ylabel(target.name)
        ax.legend(loc="upper right", fontsize=8)
        fig.tight_layout()
        fig.savefig(out_dir / f"fit_{target.name}.png", dpi=150)
        plt.close(fig)


def plot_random_search(ranked: pd.DataFrame, names, out_dir: str | Path, top_k: int = 10) -> None:
    """Scatter of sampled parameters coloured by log-likelihood."""
    out_dir = Path(out_dir)
    finite = ranked[np.isfinite(ranked["log_likelihood"])]
    x_name, y_name = names[0], names[1] if len(names) > 1 else names[0]
    fig, ax = plt.subplots(figsize=(6, 5))
    points = ax.scatter(finite[x_name], finite[y_name], c=finite["log_likelihood"], s=8, cmap="viridis")
    best = finite.head(top_k)
    ax.scatter(best[x_name], best[y_name], marker="x", color="red", label=f"top {top_k}")
    fig.colorbar(points, ax=ax, label="log-likelihood")
    ax.set_title("Random Search")
    ax.set_xlabel(x_name)
    ax.set_ylabel(y_name)
    ax.legend(loc="upper right", fontsize=8)
    fig.tight_layout()
    fig.savefig(out_dir / "random_search.png", dpi=150)
    plt.close(fig)


def plot_posterior(
    resample: np.ndarray,
    prior_samples: np.ndarray,
    names,
    out_dir: str | Path,
) -> None:
    """Marginal prior and posterior histograms per parameter."""
    out_dir = Path(out_dir)
    fig, axes = plt.subplots(1, len(names), figsize=(4 * len(names), 4), squeeze=False)
    for j, name in enumerate(names):
        ax = axes[0, j]
        ax.hist(prior_samples[:, j], bins=30, density=True, alpha=0.4, label="prior")
        ax.hist(resample[:, j], bins=30, density=True, alpha=0.6, label="posterior")
        ax.set_xlabel(name)
        ax.set_ylabel("Density")
        ax.legend(loc="upper right", fontsize=8)
    fig.suptitle("IMIS Posterior Marginals")
    fig.tight_layout()
    fig.savefig(out_dir / "posterior_marginals.png", dpi=150)
    plt.close(fig)


def plot_imis_diagnostics(diagnostics: pd.DataFrame, b_re: int, out_dir: str | Path) -> None:
    out_dir = Path(out_dir)
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(diagnostics["iteration"], diagnostics["expected_unique_points"], marker="o", label="unique points")
    ax.plot(diagnostics["iteration"], diagnostics["ess"], marker="s", label="ESS")
    ax.axhline((1.0 - np.exp(-1.0)) * b_re, color="gray", linestyle="--", label="stopping threshold")
    ax.set_title("IMIS Diagnostics")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Count")
    ax.legend(loc="upper left", fontsize=8)
    fig.tight_layout()
    fig.savefig(out_dir / "imis_diagnostics.png", dpi=150)
    plt.close(fig)
