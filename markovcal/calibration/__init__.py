"""
Calibration Framework
=====================
Frequentist and Bayesian calibration of a simulation model against
observed targets with known uncertainty.

Key components:
1. Priors: bounded parameter distributions and Latin-hypercube sampling
2. Targets: observed series with standard errors
3. Likelihood: Gaussian goodness-of-fit of model output to targets
4. Random search, Nelder-Mead and IMIS search strategies
5. Validation: posterior predictive coverage of the targets

References:
- Raftery, A. E., & Bao, L. (2010). Incremental Mixture Importance Sampling
- Nelder, J. A., & Mead, R. (1965). A simplex method for function minimization
- Alarid-Escudero, F., et al. (2018). Calibration of health decision models
"""

from markovcal.calibration.errors import CalibrationError

from markovcal.calibration.priors import (
    ParameterPrior,
    ParameterSpace,
    define_parameter_priors,
)

from markovcal.calibration.targets import (
    Target,
    TargetSet,
    load_targets,
    save_targets,
    synthetic_targets,
)

from markovcal.calibration.likelihood import GaussianLikelihood
from markovcal.calibration.problem import CalibrationProblem

from markovcal.calibration.random_search import (
    RandomSearchConfig,
    RandomSearchResult,
    run_random_search,
)

from markovcal.calibration.nelder_mead import (
    NelderMeadConfig,
    NelderMeadResult,
    OptimizationRun,
    run_nelder_mead,
)

from markovcal.calibration.imis import (
    ImisConfig,
    ImisResult,
    ImisState,
    run_imis,
)

from markovcal.calibration.validation import (
    ValidationResult,
    compute_coverage,
    posterior_predictive,
    validate_against_targets,
)

__all__ = [
    "CalibrationError",
    "ParameterPrior",
    "ParameterSpace",
    "define_parameter_priors",
    "Target",
    "TargetSet",
    "load_targets",
    "save_targets",
    "synthetic_targets",
    "GaussianLikelihood",
    "CalibrationProblem",
    "RandomSearchConfig",
    "RandomSearchResult",
    "run_random_search",
    "NelderMeadConfig",
    "NelderMeadResult",
    "OptimizationRun",
    "run_nelder_mead",
    "ImisConfig",
    "ImisResult",
    "ImisState",
    "run_imis",
    "ValidationResult",
    "compute_coverage",
    "posterior_predictive",
    "validate_against_targets",
]
