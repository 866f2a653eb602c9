from __future__ import annotations

from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from anthro.analysis import GrowthAnalysis, Measurement
from anthro.errors import ValidationError as InvalidMeasurement
from anthro.indicators import normalize_sex
from anthro.trend import GrowthFaltering, GrowthTrend


class MeasurementIn(BaseModel):
    sex: Literal["M", "F"] = Field(..., description="M/F; male/female are accepted too")
    birth_date: date
    observation_date: date
    weight_kg: float = Field(..., gt=0)
    height_cm: float = Field(..., gt=0, description="Recumbent length or standing height")
    head_circumference_cm: Optional[float] = Field(default=None, gt=0)

    @field_validator("sex", mode="before")
    @classmethod
    def normalize(cls, v):
        try:
            return normalize_sex(v)
        except InvalidMeasurement as e:
            raise ValueError(e.errors[0]) from e

    def to_measurement(self) -> Measurement:
        return Measurement(
            sex=self.sex,
            birth_date=self.birth_date,
            observation_date=self.observation_date,
            weight_kg=self.weight_kg,
            height_cm=self.height_cm,
            head_circumference_cm=self.head_circumference_cm,
        )


class IndicatorOut(BaseModel):
    indicator: str
    value: float
    z_score: float
    percentile: float
    status: str
    severity: Literal["normal", "warning", "alert"]
    message: str
    restated: bool = False


class GrowthAnalysisOut(BaseModel):
    sex: Literal["M", "F"]
    birth_date: date
    observation_date: date
    weight_kg: float
    height_cm: float
    head_circumference_cm: Optional[float] = None
    age_days: int
    age_months: float
    bmi: float
    reference_version: str
    severity: Literal["normal", "warning", "alert"]
    indicators: Dict[str, IndicatorOut]
    flagged: List[str] = Field(default_factory=list, description="Indicators outside the normal tier")

    @classmethod
    def from_analysis(cls, analysis: GrowthAnalysis) -> "GrowthAnalysisOut":
        return cls(
            **analysis.to_dict(),
            flagged=[r.indicator.value for r in analysis.flagged()],
        )


class TrendIn(BaseModel):
    measurements: List[MeasurementIn] = Field(..., min_length=1)


class GrowthVelocityOut(BaseModel):
    measure: str
    per_month: float
    expected_per_month: float
    percent_of_expected: float
    status: Literal["slow", "normal", "fast"]


class GrowthTrendOut(BaseModel):
    weight: Literal["increasing", "decreasing", "stable"]
    height: Literal["increasing", "decreasing", "stable"]
    weight_for_height: Literal["improving", "declining", "stable"]
    head_circumference: Literal["increasing", "decreasing", "stable"]
    velocities: List[GrowthVelocityOut] = Field(default_factory=list)

    @classmethod
    def from_trend(cls, trend: GrowthTrend) -> "GrowthTrendOut":
        return cls(**trend.to_dict())


class GrowthFalteringOut(BaseModel):
    has_faltering: bool
    severity: Literal["none", "mild", "moderate", "severe"]
    indicators: List[str] = Field(default_factory=list)

    @classmethod
    def from_faltering(cls, faltering: GrowthFaltering) -> "GrowthFalteringOut":
        return cls(**faltering.to_dict())


class TrendOut(BaseModel):
    analyses: List[GrowthAnalysisOut]
    trend: GrowthTrendOut
    faltering: GrowthFalteringOut
    generated_at: str


class ReferenceCurveOut(BaseModel):
    indicator: str
    sex: Literal["M", "F"]
    unit: str
    index: Literal["age", "height"]
    reference_version: str
    z_scores: List[float]
    rows: List[Dict[str, float]]
