from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from markovcal.calibration.imis import ImisConfig
from markovcal.calibration.nelder_mead import NelderMeadConfig
from markovcal.calibration.priors import ParameterPrior, ParameterSpace
from markovcal.calibration.random_search import RandomSearchConfig

Method = Literal["random_search", "nelder_mead", "imis"]


class RunConfig(BaseModel):
    seed: int = 42
    methods: List[Method] = ["random_search", "nelder_mead", "imis"]


class ModelConfig(BaseModel):
    n_cycles: int = Field(60, ge=1)


class ParameterConfig(BaseModel):
    name: str
    lower: float
    upper: float
    distribution: Literal["uniform", "beta", "loguniform", "truncnorm"] = "uniform"
    params: Tuple[float, ...] = ()
    description: str = ""

    @model_validator(mode="after")
    def check_prior(self) -> "ParameterConfig":
        # Bounds, distribution params and loguniform positivity.
        self.to_prior()
        return self

    def to_prior(self) -> ParameterPrior:
        return ParameterPrior(**self.model_dump())


class SyntheticTargetConfig(BaseModel):
    true_params: Dict[str, float] = {"p_mets": 0.10, "p_die_mets": 0.05}
    times: Optional[List[int]] = None
    relative_se: float = Field(0.05, ge=0.0)
    min_se: float = Field(0.005, gt=0.0)


class TargetConfig(BaseModel):
    path: Optional[str] = None
    synthetic: SyntheticTargetConfig = SyntheticTargetConfig()
    weights: Dict[str, float] = Field(default_factory=dict)


class LikelihoodConfig(BaseModel):
    failure_scope: Literal["sample", "batch"] = "sample"


class ValidationConfig(BaseModel):
    n_draws: int = Field(500, ge=1)
    level: float = Field(0.95, gt=0.0, lt=1.0)


class OutputConfig(BaseModel):
    save_plots: bool = True
    save_samples: bool = True


def default_parameters() -> List[ParameterConfig]:
    return [
        ParameterConfig(name="p_mets", lower=0.04, upper=0.16),
        ParameterConfig(name="p_die_mets", lower=0.04, upper=0.16),
    ]


class CalibrationConfig(BaseModel):
    run: RunConfig = RunConfig()
    model: ModelConfig = ModelConfig()
    parameters: List[ParameterConfig] = Field(default_factory=default_parameters)
    targets: TargetConfig = TargetConfig()
    likelihood: LikelihoodConfig = LikelihoodConfig()
    random_search: RandomSearchConfig = RandomSearchConfig()
    nelder_mead: NelderMeadConfig = NelderMeadConfig()
    imis: ImisConfig = ImisConfig()
    validation: ValidationConfig = ValidationConfig()
    output: OutputConfig = OutputConfig()

    @model_validator(mode="after")
    def check_parameters(self) -> "CalibrationConfig":
        self.parameter_space()
        return self

    def parameter_space(self) -> ParameterSpace:
        return ParameterSpace([p.to_prior() for p in self.parameters])


class ConfigError(Exception):
    pass


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | Path) -> CalibrationConfig:
    path = Path(path)
    data = yaml.safe_load(path.read_text()) or {}
    base_path = data.get("base")
    if base_path:
        base_data = yaml.safe_load((path.parent / base_path).read_text()) or {}
        data = deep_merge(base_data, data)
        data.pop("base", None)
    try:
        return CalibrationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def dump_config(cfg: CalibrationConfig, path: str | Path) -> None:
    path = Path(path)
    path.write_text(yaml.safe_dump(cfg.model_dump(mode="json"), sort_keys=False))
