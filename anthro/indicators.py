from __future__ import annotations

from enum import Enum
from typing import Literal

from anthro.errors import ValidationError


Sex = Literal["M", "F"]

_SEX_ALIASES = {
    "m": "M",
    "male": "M",
    "boy": "M",
    "f": "F",
    "female": "F",
    "girl": "F",
}


def normalize_sex(value: str) -> Sex:
    """Accept 'M'/'F' as well as 'male'/'female' in any case."""
    sex = _SEX_ALIASES.get(str(value).strip().lower())
    if sex is None:
        raise ValidationError([f"sex must be one of M/F (got {value!r})"])
    return sex  # type: ignore[return-value]


class Indicator(str, Enum):
    WEIGHT_FOR_AGE = "weight_for_age"
    HEIGHT_FOR_AGE = "height_for_age"
    WEIGHT_FOR_HEIGHT = "weight_for_height"
    HEAD_CIRCUMFERENCE_FOR_AGE = "head_circumference_for_age"

    @property
    def code(self) -> str:
        """Short code used for reference file names (e.g. wfa_lms.csv)."""
        return _CODES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def index(self) -> Literal["age", "height"]:
        """What the reference table for this indicator is indexed by."""
        return "height" if self is Indicator.WEIGHT_FOR_HEIGHT else "age"

    @property
    def required(self) -> bool:
        return self is not Indicator.HEAD_CIRCUMFERENCE_FOR_AGE

    @property
    def unit(self) -> str:
        return "kg" if self in (Indicator.WEIGHT_FOR_AGE, Indicator.WEIGHT_FOR_HEIGHT) else "cm"

    @classmethod
    def from_code(cls, code: str) -> "Indicator":
        for ind in cls:
            if code in (ind.code, ind.value):
                return ind
        raise ValueError(f"Unknown indicator: {code!r}")


_CODES = {
    Indicator.WEIGHT_FOR_AGE: "wfa",
    Indicator.HEIGHT_FOR_AGE: "hfa",
    Indicator.WEIGHT_FOR_HEIGHT: "wfh",
    Indicator.HEAD_CIRCUMFERENCE_FOR_AGE: "hcfa",
}

_LABELS = {
    Indicator.WEIGHT_FOR_AGE: "Weight-for-age",
    Indicator.HEIGHT_FOR_AGE: "Height-for-age",
    Indicator.WEIGHT_FOR_HEIGHT: "Weight-for-height",
    Indicator.HEAD_CIRCUMFERENCE_FOR_AGE: "Head-circumference-for-age",
}
