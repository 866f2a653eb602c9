from __future__ import annotations

from typing import Iterable, Optional


class GrowthError(Exception):
    """Base class for every failure raised by the growth-assessment engine."""


class ValidationError(GrowthError):
    """A measurement record is malformed; analysis is not attempted."""

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("Invalid measurement: " + "; ".join(self.errors))


class OutOfRangeError(GrowthError):
    """
    The resolved age or height lies outside the reference table's coverage.

    Carries enough context for callers to explain the supported range instead
    of showing a raw computation error.
    """

    def __init__(
        self,
        indicator: str,
        value: float,
        lower: float,
        upper: float,
        unit: str,
        sex: Optional[str] = None,
    ):
        self.indicator = indicator
        self.value = float(value)
        self.lower = float(lower)
        self.upper = float(upper)
        self.unit = unit
        self.sex = sex
        super().__init__(
            f"{indicator}: {self.value:g} {unit} is outside the reference range "
            f"{self.lower:g}-{self.upper:g} {unit}"
        )


class ReferenceDataError(GrowthError):
    """The reference dataset is missing, corrupt or incomplete (load time only)."""
