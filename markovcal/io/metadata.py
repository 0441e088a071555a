from __future__ import annotations

import subprocess
import sys
from importlib import metadata
from typing import Dict

from markovcal.config import CalibrationConfig

TRACKED_PACKAGES = ("markovcal", "numpy", "scipy", "pandas", "pydantic")


def _pkg_version(name: str) -> str:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return "unknown"


def _git_commit() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def build_run_metadata(cfg: CalibrationConfig) -> Dict[str, str]:
    """Versions and settings needed to reproduce a calibration run."""
    meta = {"python_version": sys.version.split()[0]}
    meta.update({f"{name}_version": _pkg_version(name) for name in TRACKED_PACKAGES})
    meta.update({
        "git_commit": _git_commit(),
        "seed": str(cfg.run.seed),
        "methods": ",".join(cfg.run.methods),
        "parameters": ",".join(p.name for p in cfg.parameters),
        "failure_scope": cfg.likelihood.failure_scope,
    })
    return meta
