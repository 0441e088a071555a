from .markov_crs import PARAMETER_NAMES, STATES, MarkovCRSModel

__all__ = [
    "MarkovCRSModel",
    "PARAMETER_NAMES",
    "STATES",
]
