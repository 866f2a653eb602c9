"""
Age resolution for reference-table lookups.

Reference rows are indexed by age in months, and row selection near table
boundaries is sensitive to the month convention, so every caller resolves
age through resolve_age() with one process-wide convention:

  completed_months  calendar month-and-day subtraction, floored to whole months
                    (default; a 5th birthday is always exactly 60 months)
  average_month     months = completed days / 30.4375, unrounded (WHO Anthro);
                    a 5-year span holding two Feb 29s is 60.02 months and falls
                    outside month-indexed tables that end at 60
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Union

from anthro.errors import ValidationError


DAYS_PER_MONTH = 30.4375


class AgeConvention(str, Enum):
    COMPLETED_MONTHS = "completed_months"
    AVERAGE_MONTH = "average_month"


@dataclass(frozen=True)
class Age:
    days: int
    months: float


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def completed_months(birth_date: date, observation_date: date) -> int:
    """Whole calendar months; a month is complete once the day of birth is reached.

    No month-end clamping: born Jan 31, measured Feb 29 is still 0 months.
    """
    months = (observation_date.year - birth_date.year) * 12 + (observation_date.month - birth_date.month)
    if observation_date.day < birth_date.day:
        months -= 1
    return max(0, months)


def resolve_age(
    birth_date: Union[date, datetime],
    observation_date: Union[date, datetime],
    convention: AgeConvention = AgeConvention.COMPLETED_MONTHS,
) -> Age:
    birth = _as_date(birth_date)
    observed = _as_date(observation_date)
    if observed < birth:
        raise ValidationError(
            [f"observation date {observed.isoformat()} is before birth date {birth.isoformat()}"]
        )

    days = (observed - birth).days
    if AgeConvention(convention) is AgeConvention.COMPLETED_MONTHS:
        months = float(completed_months(birth, observed))
    else:
        months = days / DAYS_PER_MONTH
    return Age(days=days, months=months)
