from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Sequence

from anthro.indicators import Indicator


Severity = Literal["normal", "warning", "alert"]
SEVERITY_ORDER: Mapping[str, int] = MappingProxyType({"normal": 0, "warning": 1, "alert": 2})


@dataclass(frozen=True)
class Band:
    """
    A z-score band closed or open at its upper edge.

    Bands are evaluated in ascending order; a z-score belongs to the first
    band whose upper edge admits it.
    """

    name: str
    upper: float
    inclusive: bool = False

    def admits(self, z: float) -> bool:
        return z <= self.upper if self.inclusive else z < self.upper


# z < -3 | -3 <= z < -2 | -2 <= z <= 2 | 2 < z <= 3 | z > 3
DEFAULT_BANDS: tuple[Band, ...] = (
    Band("severe_low", -3.0, inclusive=False),
    Band("moderate_low", -2.0, inclusive=False),
    Band("normal", 2.0, inclusive=True),
    Band("elevated", 3.0, inclusive=True),
    Band("severe_high", math.inf, inclusive=True),
)


@dataclass(frozen=True)
class StatusRule:
    status: str
    severity: Severity
    description: str


_NORMAL = StatusRule("normal", "normal", "is within the normal range")

DEFAULT_RULES: Mapping[Indicator, Mapping[str, StatusRule]] = MappingProxyType({
    # Weight-for-age has no upper clinical tier; weight-for-height judges excess weight.
    Indicator.WEIGHT_FOR_AGE: MappingProxyType({
        "severe_low": StatusRule("severely_underweight", "alert", "is severely underweight"),
        "moderate_low": StatusRule("underweight", "warning", "is underweight"),
        "normal": _NORMAL,
        "elevated": StatusRule("risk_of_overweight", "warning", "is above the expected range, check weight-for-height"),
        "severe_high": StatusRule("risk_of_overweight", "warning", "is above the expected range, check weight-for-height"),
    }),
    Indicator.HEIGHT_FOR_AGE: MappingProxyType({
        "severe_low": StatusRule("severely_stunted", "alert", "shows severe stunting"),
        "moderate_low": StatusRule("stunted", "warning", "shows stunting"),
        "normal": _NORMAL,
        "elevated": StatusRule("tall", "normal", "is tall for age"),
        "severe_high": StatusRule("very_tall", "warning", "is very tall for age"),
    }),
    Indicator.WEIGHT_FOR_HEIGHT: MappingProxyType({
        "severe_low": StatusRule("severely_wasted", "alert", "shows severe wasting"),
        "moderate_low": StatusRule("wasted", "alert", "shows wasting"),
        "normal": _NORMAL,
        "elevated": StatusRule("overweight", "warning", "is overweight"),
        "severe_high": StatusRule("obese", "alert", "is obese"),
    }),
    Indicator.HEAD_CIRCUMFERENCE_FOR_AGE: MappingProxyType({
        "severe_low": StatusRule("severe_microcephaly", "alert", "is far below the expected range"),
        "moderate_low": StatusRule("microcephaly", "warning", "is below the expected range"),
        "normal": _NORMAL,
        "elevated": StatusRule("macrocephaly", "warning", "is above the expected range"),
        "severe_high": StatusRule("severe_macrocephaly", "alert", "is far above the expected range"),
    }),
})

ADVICE: Mapping[str, str] = MappingProxyType({
    "normal": "",
    "warning": " Monitor closely and measure again at the next visit.",
    "alert": " Consult a doctor or health worker.",
})

MESSAGE_TEMPLATE = "{indicator} {description} (z-score: {z:.2f}).{advice}"


@dataclass(frozen=True)
class Classification:
    band: str
    status: str
    severity: Severity
    message: str


def worst_severity(severities: Iterable[str]) -> Severity:
    worst = "normal"
    for s in severities:
        if SEVERITY_ORDER[s] > SEVERITY_ORDER[worst]:
            worst = s
    return worst  # type: ignore[return-value]


class StatusClassifier:
    """
    Maps z-scores to per-indicator status categories.

    Cut points live in the band table and vocabulary in the per-indicator
    rule table, so both can be replaced from configuration without touching
    the logic.
    """

    def __init__(
        self,
        bands: Sequence[Band] = DEFAULT_BANDS,
        rules: Mapping[Indicator, Mapping[str, StatusRule]] = DEFAULT_RULES,
        message_template: str = MESSAGE_TEMPLATE,
    ):
        bands = tuple(bands)
        if not bands:
            raise ValueError("At least one band is required")
        names = [b.name for b in bands]
        if len(set(names)) != len(names):
            raise ValueError(f"Band names must be unique: {names}")
        uppers = [b.upper for b in bands]
        if any(b >= a for a, b in zip(uppers[1:], uppers[:-1])):
            raise ValueError(f"Band upper edges must be strictly ascending: {uppers}")
        if not (math.isinf(bands[-1].upper) and bands[-1].upper > 0):
            raise ValueError("The last band must be open-ended (upper = inf)")

        for indicator, mapping in rules.items():
            missing = [n for n in names if n not in mapping]
            if missing:
                raise ValueError(f"{indicator.value} has no status rule for bands {missing}")
            for rule in mapping.values():
                if rule.severity not in SEVERITY_ORDER:
                    raise ValueError(f"Unknown severity {rule.severity!r} for {indicator.value}")

        self.bands = bands
        self.rules = MappingProxyType({ind: MappingProxyType(dict(m)) for ind, m in rules.items()})
        self.message_template = message_template

    def band(self, z: float) -> str:
        if math.isnan(z):
            raise ValueError("Cannot classify a NaN z-score")
        for b in self.bands:
            if b.admits(z):
                return b.name
        return self.bands[-1].name

    def classify(self, indicator: Indicator, z: float) -> Classification:
        try:
            rules = self.rules[indicator]
        except KeyError:
            raise KeyError(f"No classification rules for {indicator.value}") from None

        band = self.band(z)
        rule = rules[band]
        message = self.message_template.format(
            indicator=indicator.label,
            description=rule.description,
            z=z,
            advice=ADVICE[rule.severity],
        )
        return Classification(band=band, status=rule.status, severity=rule.severity, message=message)

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]] = None) -> "StatusClassifier":
        """
        Build from a plain mapping (the 'classification' section of the YAML config):

          bands: [{name: severe_low, upper: -3, inclusive: false}, ...]
          rules: {weight_for_age: {moderate_low: {status: ..., severity: ..., description: ...}}}
          message_template: "{indicator} {description} (z-score: {z:.2f}).{advice}"

        Rules given here override the defaults band by band.
        """
        config = config or {}

        bands = DEFAULT_BANDS
        if config.get("bands"):
            bands = tuple(
                Band(
                    name=str(b["name"]),
                    upper=math.inf if b.get("upper") is None else float(b["upper"]),
                    inclusive=bool(b.get("inclusive", False)),
                )
                for b in config["bands"]
            )

        rules: Dict[Indicator, Dict[str, StatusRule]] = {
            ind: dict(mapping) for ind, mapping in DEFAULT_RULES.items()
        }
        for code, overrides in (config.get("rules") or {}).items():
            indicator = Indicator.from_code(code)
            target = rules.setdefault(indicator, {})
            for band_name, rule in overrides.items():
                target[band_name] = StatusRule(
                    status=str(rule["status"]),
                    severity=rule["severity"],
                    description=str(rule["description"]),
                )

        return cls(
            bands=bands,
            rules=rules,
            message_template=config.get("message_template") or MESSAGE_TEMPLATE,
        )
