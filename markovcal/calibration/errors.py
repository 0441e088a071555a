from __future__ import annotations

from typing import Optional


class CalibrationError(Exception):
    """Raised when a calibration strategy cannot produce a valid result."""

    def __init__(self, message: str, state: Optional[str] = None, iteration: Optional[int] = None):
        super().__init__(message)
        self.state = state
        self.iteration = iteration
