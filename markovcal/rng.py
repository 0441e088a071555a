from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import numpy as np

STREAMS = {
    "targets": 0,
    "random_search": 1,
    "nelder_mead": 2,
    "imis": 3,
    "validation": 4,
}


@dataclass
class RNGManager:
    seed: int
    _streams: Dict[str, np.random.Generator] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.numpy = np.random.default_rng(self.seed)

    def stream(self, name: str) -> np.random.Generator:
        """Independent generator per strategy so results do not depend on run order."""
        if name not in STREAMS:
            raise ValueError(f"Unknown random stream: {name}")
        if name not in self._streams:
            seq = np.random.SeedSequence(self.seed, spawn_key=(STREAMS[name],))
            self._streams[name] = np.random.default_rng(seq)
        return self._streams[name]
