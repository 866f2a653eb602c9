from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

import structlog

from anthro.age import Age, AgeConvention, resolve_age
from anthro.classify import Severity, StatusClassifier, worst_severity
from anthro.errors import OutOfRangeError, ValidationError
from anthro.indicators import Indicator, Sex, normalize_sex
from anthro.lms import score, zscore_to_percentile
from anthro.reference import AgeKey, HeightKey, LookupKey, ReferenceData


logger = structlog.get_logger(__name__)

# WHO restates extreme scores for weight-based indicators only.
DEFAULT_RESTATED: FrozenSet[Indicator] = frozenset(
    {Indicator.WEIGHT_FOR_AGE, Indicator.WEIGHT_FOR_HEIGHT}
)


@dataclass(frozen=True)
class Measurement:
    sex: Sex
    birth_date: date
    observation_date: date
    weight_kg: float
    height_cm: float
    head_circumference_cm: Optional[float] = None

    @property
    def bmi(self) -> float:
        height_m = self.height_cm / 100.0
        return self.weight_kg / (height_m * height_m)


@dataclass(frozen=True)
class ValidationLimits:
    max_weight_kg: float = 50.0
    max_height_cm: float = 150.0
    max_head_circumference_cm: float = 70.0
    min_bmi: float = 5.0
    max_bmi: float = 40.0


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def validate_measurement(
    m: Measurement,
    *,
    today: Optional[date] = None,
    limits: ValidationLimits = ValidationLimits(),
) -> None:
    """Raise ValidationError listing every problem with the record."""
    errors: List[str] = []
    today = today or date.today()

    if m.weight_kg is None or not m.weight_kg > 0:
        errors.append("weight must be greater than 0 kg")
    elif m.weight_kg > limits.max_weight_kg:
        errors.append(f"weight must not exceed {limits.max_weight_kg:g} kg")

    if m.height_cm is None or not m.height_cm > 0:
        errors.append("height must be greater than 0 cm")
    elif m.height_cm > limits.max_height_cm:
        errors.append(f"height must not exceed {limits.max_height_cm:g} cm")

    hc = m.head_circumference_cm
    if hc is not None:
        if not hc > 0:
            errors.append("head circumference must be greater than 0 cm")
        elif hc > limits.max_head_circumference_cm:
            errors.append(f"head circumference must not exceed {limits.max_head_circumference_cm:g} cm")

    born = _as_date(m.birth_date)
    observed = _as_date(m.observation_date)
    if observed < born:
        errors.append(
            f"observation date {observed.isoformat()} is before birth date {born.isoformat()}"
        )
    if observed > today:
        errors.append(f"observation date {observed.isoformat()} is in the future")

    if not errors:
        bmi = m.bmi
        if bmi < limits.min_bmi or bmi > limits.max_bmi:
            errors.append(
                f"weight and height give an implausible BMI of {bmi:.1f} kg/m2 "
                f"(expected {limits.min_bmi:g}-{limits.max_bmi:g})"
            )

    if errors:
        raise ValidationError(errors)


@dataclass(frozen=True)
class IndicatorResult:
    indicator: Indicator
    value: float
    z_score: float
    percentile: float
    status: str
    severity: Severity
    message: str
    restated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indicator": self.indicator.value,
            "value": self.value,
            "z_score": self.z_score,
            "percentile": self.percentile,
            "status": self.status,
            "severity": self.severity,
            "message": self.message,
            "restated": self.restated,
        }


@dataclass(frozen=True)
class GrowthAnalysis:
    """
    Composite result for a single measurement.

    Built fresh on every request from the raw measurement; never persisted.
    """

    measurement: Measurement
    age: Age
    reference_version: str
    results: Tuple[IndicatorResult, ...]

    @property
    def indicators(self) -> List[Indicator]:
        return [r.indicator for r in self.results]

    @property
    def bmi(self) -> float:
        return self.measurement.bmi

    @property
    def severity(self) -> Severity:
        return worst_severity(r.severity for r in self.results)

    def get(self, indicator: Indicator) -> Optional[IndicatorResult]:
        for r in self.results:
            if r.indicator is indicator:
                return r
        return None

    def flagged(self) -> List[IndicatorResult]:
        """Indicators in a deficit or elevation tier (the alerting trigger)."""
        return [r for r in self.results if r.severity != "normal"]

    def to_dict(self) -> Dict[str, Any]:
        m = self.measurement
        return {
            "sex": m.sex,
            "birth_date": m.birth_date.isoformat(),
            "observation_date": m.observation_date.isoformat(),
            "weight_kg": m.weight_kg,
            "height_cm": m.height_cm,
            "head_circumference_cm": m.head_circumference_cm,
            "age_days": self.age.days,
            "age_months": self.age.months,
            "bmi": self.bmi,
            "reference_version": self.reference_version,
            "severity": self.severity,
            "indicators": {r.indicator.value: r.to_dict() for r in self.results},
        }


@dataclass(frozen=True)
class AnalysisSettings:
    age_convention: AgeConvention = AgeConvention.COMPLETED_MONTHS
    restate_extremes: FrozenSet[Indicator] = DEFAULT_RESTATED
    limits: ValidationLimits = field(default_factory=ValidationLimits)


class GrowthAnalyzer:
    """
    Orchestrates one measurement through age resolution, reference lookup,
    z-scoring and classification.

    Holds no mutable state: the reference snapshot and the classifier are
    injected and only read, so one analyzer can serve concurrent callers.
    """

    def __init__(
        self,
        reference: ReferenceData,
        classifier: Optional[StatusClassifier] = None,
        settings: Optional[AnalysisSettings] = None,
    ):
        self.reference = reference
        self.classifier = classifier or StatusClassifier()
        self.settings = settings or AnalysisSettings()

    def score_indicator(
        self,
        indicator: Indicator,
        sex: Sex,
        key: LookupKey,
        value: float,
    ) -> IndicatorResult:
        lms = self.reference.lookup(indicator, sex, key)
        restate = indicator in self.settings.restate_extremes
        raw = score(value, lms)
        z = score(value, lms, restate=restate)
        c = self.classifier.classify(indicator, z)
        return IndicatorResult(
            indicator=indicator,
            value=float(value),
            z_score=z,
            percentile=zscore_to_percentile(z),
            status=c.status,
            severity=c.severity,
            message=c.message,
            restated=restate and z != raw,
        )

    def analyze(self, measurement: Measurement, *, today: Optional[date] = None) -> GrowthAnalysis:
        measurement = replace(measurement, sex=normalize_sex(measurement.sex))
        sex = measurement.sex
        validate_measurement(measurement, today=today, limits=self.settings.limits)
        age = resolve_age(
            measurement.birth_date,
            measurement.observation_date,
            self.settings.age_convention,
        )

        age_key = AgeKey(age.months)
        results = [
            self.score_indicator(Indicator.WEIGHT_FOR_AGE, sex, age_key, measurement.weight_kg),
            self.score_indicator(Indicator.HEIGHT_FOR_AGE, sex, age_key, measurement.height_cm),
            self.score_indicator(
                Indicator.WEIGHT_FOR_HEIGHT, sex, HeightKey(measurement.height_cm), measurement.weight_kg
            ),
        ]

        hc = measurement.head_circumference_cm
        indicator = Indicator.HEAD_CIRCUMFERENCE_FOR_AGE
        if hc is not None and self.reference.has(indicator):
            try:
                results.append(self.score_indicator(indicator, sex, age_key, hc))
            except OutOfRangeError as e:
                logger.debug("optional_indicator_omitted", indicator=indicator.value, reason=str(e))

        analysis = GrowthAnalysis(
            measurement=measurement,
            age=age,
            reference_version=self.reference.version,
            results=tuple(results),
        )
        logger.debug(
            "growth_analysis_completed",
            age_months=round(age.months, 2),
            indicators=[r.indicator.value for r in results],
            severity=analysis.severity,
        )
        return analysis


def analyze(
    measurement: Measurement,
    reference: ReferenceData,
    *,
    classifier: Optional[StatusClassifier] = None,
    settings: Optional[AnalysisSettings] = None,
    today: Optional[date] = None,
) -> GrowthAnalysis:
    return GrowthAnalyzer(reference, classifier, settings).analyze(measurement, today=today)
