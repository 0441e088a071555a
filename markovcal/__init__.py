"""Calibration of a three-state Markov survival model by random search, Nelder-Mead and IMIS."""

__version__ = "0.1.0"
