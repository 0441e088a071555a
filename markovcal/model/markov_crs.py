"""
Three-State Markov Cohort Model
===============================
Cancer relative survival toy model used by the calibration tutorials.

A cohort starts free of disease (NED), progresses to metastatic disease
(Mets) and dies from metastatic disease (Death). Death is absorbing.
The model output is overall survival, 1 - P(Death), at every cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

import numpy as np

STATES = ("NED", "Mets", "Death")
PARAMETER_NAMES = ("p_mets", "p_die_mets")


@dataclass(frozen=True)
class MarkovCRSModel:
    """Deterministic cohort trace over ``n_cycles`` monthly cycles."""

    n_cycles: int = 60

    def __post_init__(self) -> None:
        if self.n_cycles < 1:
            raise ValueError("n_cycles must be positive")

    def transition_matrix(self, params: Mapping[str, float]) -> np.ndarray:
        missing = [name for name in PARAMETER_NAMES if name not in params]
        if missing:
            raise ValueError(f"Missing model parameters: {missing}")
        p_mets = float(params["p_mets"])
        p_die_mets = float(params["p_die_mets"])
        for name, value in (("p_mets", p_mets), ("p_die_mets", p_die_mets)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name}={value} is not a probability")

        matrix = np.zeros((len(STATES), len(STATES)))
        matrix[0, 0] = 1.0 - p_mets
        matrix[0, 1] = p_mets
        matrix[1, 1] = 1.0 - p_die_mets
        matrix[1, 2] = p_die_mets
        matrix[2, 2] = 1.0
        return matrix

    def trace(self, params: Mapping[str, float]) -> np.ndarray:
        """State occupancy for cycles 0..n_cycles, shape (n_cycles + 1, 3)."""
        matrix = self.transition_matrix(params)
        trace = np.zeros((self.n_cycles + 1, len(STATES)))
        trace[0] = (1.0, 0.0, 0.0)
        for t in range(self.n_cycles):
            trace[t + 1] = trace[t] @ matrix
        return trace

    def simulate(self, params: Mapping[str, float]) -> Dict[str, np.ndarray]:
        trace = self.trace(params)
        return {"surv": 1.0 - trace[1:, 2]}

    __call__ = simulate
