"""
Configuration loaded from configs/config.yaml and validated with pydantic.

The file location can be overridden with the GROWTH_CONFIG environment
variable. Relative paths inside the file are resolved against the project
root. Invalid configuration fails at startup.

configs/ is not installed with the packages: the service runs from a source
checkout (or an editable install), and an installed copy needs GROWTH_CONFIG.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from anthro.age import AgeConvention
from anthro.analysis import AnalysisSettings, ValidationLimits
from anthro.classify import StatusClassifier
from anthro.indicators import Indicator


PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "config.yaml"


class PathsConfig(BaseModel):
    who_lms_dir: str = Field(default="anthro/data/who2006", description="Directory holding *_lms.csv tables")
    reference_version: Optional[str] = Field(default=None, description="Dataset version label (defaults to the directory name)")

    def resolved_who_lms_dir(self) -> Path:
        p = Path(self.who_lms_dir)
        return p if p.is_absolute() else PROJECT_ROOT / p


class ValidationConfig(BaseModel):
    max_weight_kg: float = Field(default=50.0, gt=0)
    max_height_cm: float = Field(default=150.0, gt=0)
    max_head_circumference_cm: float = Field(default=70.0, gt=0)
    min_bmi: float = Field(default=5.0, ge=0)
    max_bmi: float = Field(default=40.0, gt=0)


class GrowthConfig(BaseModel):
    age_convention: AgeConvention = AgeConvention.COMPLETED_MONTHS
    restate_extremes: List[Indicator] = Field(
        default_factory=lambda: [Indicator.WEIGHT_FOR_AGE, Indicator.WEIGHT_FOR_HEIGHT]
    )
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    classification: Optional[Dict[str, Any]] = None

    @field_validator("classification")
    @classmethod
    def validate_classification(cls, v):
        if v is not None:
            try:
                StatusClassifier.from_config(v)
            except (KeyError, TypeError) as e:
                raise ValueError(f"invalid classification table: {e!r}") from e
        return v

    def analysis_settings(self) -> AnalysisSettings:
        return AnalysisSettings(
            age_convention=self.age_convention,
            restate_extremes=frozenset(self.restate_extremes),
            limits=ValidationLimits(**self.validation.model_dump()),
        )

    def classifier(self) -> StatusClassifier:
        return StatusClassifier.from_config(self.classification)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "console"


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    growth: GrowthConfig = Field(default_factory=GrowthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Optional[str] = None) -> AppConfig:
    cfg_path = Path(path or os.getenv("GROWTH_CONFIG") or DEFAULT_CONFIG_PATH)
    if not cfg_path.exists():
        raise FileNotFoundError(
            f"{cfg_path} not found; run from a source checkout or point GROWTH_CONFIG at a config file"
        )
    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return AppConfig.model_validate(raw)


@lru_cache()
def get_config() -> AppConfig:
    return load_config()
