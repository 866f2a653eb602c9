from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Sequence, Tuple

from anthro.age import DAYS_PER_MONTH
from anthro.analysis import GrowthAnalysis
from anthro.indicators import Indicator


Direction = Literal["increasing", "decreasing", "stable"]
ZDirection = Literal["improving", "declining", "stable"]
VelocityStatus = Literal["slow", "normal", "fast"]

# Expected gain per month, by age (months) upper bound.
EXPECTED_VELOCITY: Dict[str, Tuple[Tuple[float, float], ...]] = {
    "weight": ((3, 0.8), (6, 0.6), (12, 0.4), (24, 0.25), (math.inf, 0.15)),
    "height": ((3, 3.5), (6, 2.0), (12, 1.5), (24, 1.0), (math.inf, 0.8)),
    "head_circumference": ((3, 2.0), (6, 1.0), (12, 0.5), (24, 0.25), (math.inf, 0.1)),
}
SLOW_BELOW_PCT = 70.0
FAST_ABOVE_PCT = 130.0


def expected_velocity(measure: str, age_months: float) -> float:
    for upper, per_month in EXPECTED_VELOCITY[measure]:
        if age_months < upper:
            return per_month
    return EXPECTED_VELOCITY[measure][-1][1]


@dataclass(frozen=True)
class GrowthVelocity:
    measure: str
    per_month: float
    expected_per_month: float
    percent_of_expected: float
    status: VelocityStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measure": self.measure,
            "per_month": self.per_month,
            "expected_per_month": self.expected_per_month,
            "percent_of_expected": self.percent_of_expected,
            "status": self.status,
        }


@dataclass(frozen=True)
class GrowthTrend:
    weight: Direction = "stable"
    height: Direction = "stable"
    weight_for_height: ZDirection = "stable"
    head_circumference: Direction = "stable"
    velocities: Tuple[GrowthVelocity, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weight": self.weight,
            "height": self.height,
            "weight_for_height": self.weight_for_height,
            "head_circumference": self.head_circumference,
            "velocities": [v.to_dict() for v in self.velocities],
        }


def _direction(latest: float, previous: float) -> Direction:
    if latest > previous:
        return "increasing"
    if latest < previous:
        return "decreasing"
    return "stable"


def _z_direction(latest: float, previous: float) -> ZDirection:
    if latest > previous:
        return "improving"
    if latest < previous:
        return "declining"
    return "stable"


def growth_velocity(
    measure: str,
    latest_value: float,
    previous_value: float,
    latest_age_months: float,
    previous_age_months: float,
) -> Optional[GrowthVelocity]:
    """Change per month between two measurements; None when no time elapsed."""
    elapsed = latest_age_months - previous_age_months
    if elapsed <= 0:
        return None

    per_month = (latest_value - previous_value) / elapsed
    expected = expected_velocity(measure, latest_age_months)
    pct = per_month / expected * 100.0

    status: VelocityStatus = "normal"
    if pct < SLOW_BELOW_PCT:
        status = "slow"
    elif pct > FAST_ABOVE_PCT:
        status = "fast"
    return GrowthVelocity(
        measure=measure,
        per_month=per_month,
        expected_per_month=expected,
        percent_of_expected=pct,
        status=status,
    )


def growth_trend(history: Sequence[GrowthAnalysis]) -> GrowthTrend:
    """
    Compare the two chronologically latest analyses of one child.

    Fewer than two records is a normal state (new child), not an error, and
    yields an all-stable trend.
    """
    if len(history) < 2:
        return GrowthTrend()

    ordered = sorted(history, key=lambda a: a.measurement.observation_date)
    previous, latest = ordered[-2], ordered[-1]
    prev_m, last_m = previous.measurement, latest.measurement

    prev_wfh = previous.get(Indicator.WEIGHT_FOR_HEIGHT)
    last_wfh = latest.get(Indicator.WEIGHT_FOR_HEIGHT)
    wfh: ZDirection = "stable"
    if prev_wfh is not None and last_wfh is not None:
        wfh = _z_direction(last_wfh.z_score, prev_wfh.z_score)

    hc: Direction = "stable"
    pairs = [
        ("weight", last_m.weight_kg, prev_m.weight_kg),
        ("height", last_m.height_cm, prev_m.height_cm),
    ]
    if last_m.head_circumference_cm is not None and prev_m.head_circumference_cm is not None:
        hc = _direction(last_m.head_circumference_cm, prev_m.head_circumference_cm)
        pairs.append(("head_circumference", last_m.head_circumference_cm, prev_m.head_circumference_cm))

    # elapsed time from days, so whole-month ages still give a velocity
    last_age = latest.age.days / DAYS_PER_MONTH
    prev_age = previous.age.days / DAYS_PER_MONTH
    velocities = []
    for measure, last_value, prev_value in pairs:
        v = growth_velocity(measure, last_value, prev_value, last_age, prev_age)
        if v is not None:
            velocities.append(v)

    return GrowthTrend(
        weight=_direction(last_m.weight_kg, prev_m.weight_kg),
        height=_direction(last_m.height_cm, prev_m.height_cm),
        weight_for_height=wfh,
        head_circumference=hc,
        velocities=tuple(velocities),
    )


FalteringSeverity = Literal["none", "mild", "moderate", "severe"]
_FALTERING_INDICATORS = (Indicator.WEIGHT_FOR_AGE, Indicator.HEIGHT_FOR_AGE)


@dataclass(frozen=True)
class GrowthFaltering:
    severity: FalteringSeverity = "none"
    indicators: Tuple[Indicator, ...] = ()

    @property
    def has_faltering(self) -> bool:
        return bool(self.indicators)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_faltering": self.has_faltering,
            "severity": self.severity,
            "indicators": [ind.value for ind in self.indicators],
        }


def growth_faltering(history: Sequence[GrowthAnalysis]) -> GrowthFaltering:
    """
    Faltering from the latest weight- and height-for-age scores.

    An indicator falters when its latest z-score is below -2. Any score below
    -3 anywhere in the history makes it severe; two faltering indicators make
    it moderate; one makes it mild.
    """
    if not history:
        return GrowthFaltering()

    ordered = sorted(history, key=lambda a: a.measurement.observation_date)
    latest = ordered[-1]
    indicators = tuple(
        ind for ind in _FALTERING_INDICATORS
        if latest.get(ind) is not None and latest.get(ind).z_score < -2.0
    )
    if not indicators:
        return GrowthFaltering()

    severe = any(
        r.z_score < -3.0
        for a in ordered
        for r in a.results
        if r.indicator in _FALTERING_INDICATORS
    )
    if severe:
        severity: FalteringSeverity = "severe"
    elif len(indicators) >= 2:
        severity = "moderate"
    else:
        severity = "mild"
    return GrowthFaltering(severity=severity, indicators=indicators)
