from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd
import structlog

from anthro.errors import OutOfRangeError, ReferenceDataError
from anthro.indicators import Indicator, Sex
from anthro.lms import LMS, lms_value


logger = structlog.get_logger(__name__)

DEFAULT_REFERENCE_DIR = Path(__file__).resolve().parent / "data" / "who2006"
REQUIRED_COLUMNS = {"sex", "x", "L", "M", "S"}
SEXES: Tuple[Sex, Sex] = ("M", "F")


@dataclass(frozen=True)
class AgeKey:
    months: float


@dataclass(frozen=True)
class HeightKey:
    cm: float


LookupKey = Union[AgeKey, HeightKey]


@dataclass(frozen=True)
class LMSTable:
    """Sex-specific LMS rows of one indicator, sorted by the index value 'x'."""

    x: np.ndarray
    L: np.ndarray
    M: np.ndarray
    S: np.ndarray

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "LMSTable":
        arrays = {}
        for col in ("x", "L", "M", "S"):
            arr = df[col].to_numpy(dtype=float).copy()
            arr.setflags(write=False)
            arrays[col] = arr
        return cls(**arrays)

    @property
    def lower(self) -> float:
        return float(self.x[0])

    @property
    def upper(self) -> float:
        return float(self.x[-1])

    def interp(self, x: float) -> Optional[LMS]:
        """
        Linear interpolation of L, M and S independently.

        Returns None outside [lower, upper]; values are never extrapolated.
        """
        if not np.isfinite(x) or x < self.x[0] or x > self.x[-1]:
            return None

        i = int(np.searchsorted(self.x, x))
        if self.x[i] == x:
            return LMS(float(self.L[i]), float(self.M[i]), float(self.S[i]))

        return LMS(
            float(np.interp(x, self.x, self.L)),
            float(np.interp(x, self.x, self.M)),
            float(np.interp(x, self.x, self.S)),
        )


def _validate_frame(df: pd.DataFrame, name: str) -> pd.DataFrame:
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ReferenceDataError(
            f"{name} missing columns: {sorted(missing)}. Required={sorted(REQUIRED_COLUMNS)}"
        )

    df = df[["sex", "x", "L", "M", "S"]].copy()
    df["sex"] = df["sex"].astype(str).str.strip().str.upper()
    for col in ("x", "L", "M", "S"):
        df[col] = pd.to_numeric(df[col], errors="coerce")

    bad = int(df[["x", "L", "M", "S"]].isna().any(axis=1).sum())
    if bad:
        raise ReferenceDataError(f"{name} has {bad} row(s) with missing or non-numeric values")

    unknown = sorted(set(df["sex"]) - set(SEXES))
    if unknown:
        raise ReferenceDataError(f"{name} has unknown sex values: {unknown}")

    if (df["M"] <= 0).any() or (df["S"] <= 0).any():
        raise ReferenceDataError(f"{name} has non-positive M or S parameters")

    df = df.sort_values(["sex", "x"]).reset_index(drop=True)
    for sex in SEXES:
        xs = df.loc[df["sex"] == sex, "x"].to_numpy(dtype=float)
        if xs.size == 0:
            raise ReferenceDataError(f"{name} has no rows for sex={sex}")
        if xs.size > 1 and not np.all(np.diff(xs) > 0):
            raise ReferenceDataError(f"{name} has duplicated index values for sex={sex}")
    return df


def _load_table(path: Path) -> pd.DataFrame:
    try:
        df = pd.read_csv(path)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ReferenceDataError(f"Cannot read {path.name}: {e}") from e
    return _validate_frame(df, path.name)


@dataclass(frozen=True)
class ReferenceData:
    """
    Immutable snapshot of a versioned LMS reference dataset.

    Built once (see load_reference) and shared read-only; lookups never
    mutate it, so concurrent readers need no locking. Replacing the dataset
    means building a new snapshot.
    """

    version: str
    tables: Mapping[Tuple[Indicator, str], LMSTable]

    @classmethod
    def from_frames(cls, frames: Mapping[Indicator, pd.DataFrame], version: str) -> "ReferenceData":
        missing = [ind.value for ind in Indicator if ind.required and ind not in frames]
        if missing:
            raise ReferenceDataError(f"Reference dataset {version!r} lacks required tables: {missing}")

        tables = {}
        for indicator, df in frames.items():
            df = _validate_frame(df, f"{version}/{indicator.code}")
            for sex in SEXES:
                tables[(indicator, sex)] = LMSTable.from_frame(df[df["sex"] == sex])
        return cls(version=version, tables=MappingProxyType(tables))

    @property
    def indicators(self) -> list[Indicator]:
        return [ind for ind in Indicator if self.has(ind)]

    def has(self, indicator: Indicator) -> bool:
        return (indicator, "M") in self.tables

    def table(self, indicator: Indicator, sex: Sex) -> LMSTable:
        try:
            return self.tables[(indicator, sex)]
        except KeyError:
            raise KeyError(f"No {indicator.value} table for sex={sex} in {self.version}") from None

    def coverage(self, indicator: Indicator, sex: Sex) -> Tuple[float, float]:
        tbl = self.table(indicator, sex)
        return tbl.lower, tbl.upper

    def lookup(self, indicator: Indicator, sex: Sex, key: LookupKey) -> LMS:
        if isinstance(key, AgeKey):
            x, unit, index = key.months, "months", "age"
        elif isinstance(key, HeightKey):
            x, unit, index = key.cm, "cm", "height"
        else:
            raise TypeError(f"Unsupported lookup key: {key!r}")
        if indicator.index != index:
            raise TypeError(f"{indicator.value} is indexed by {indicator.index}, not {index}")

        tbl = self.table(indicator, sex)
        lms = tbl.interp(x)
        if lms is None:
            raise OutOfRangeError(indicator.value, x, tbl.lower, tbl.upper, unit, sex=sex)
        return lms

    def lookup_by_age(self, indicator: Indicator, sex: Sex, age_months: float) -> LMS:
        return self.lookup(indicator, sex, AgeKey(age_months))

    def lookup_by_height(self, indicator: Indicator, sex: Sex, height_cm: float) -> LMS:
        return self.lookup(indicator, sex, HeightKey(height_cm))

    def curve(
        self,
        indicator: Indicator,
        sex: Sex,
        z_scores: Iterable[float] = (-3.0, -2.0, 0.0, 2.0, 3.0),
    ) -> pd.DataFrame:
        """Reference lines for charts: one column per z-score, one row per tabulated x."""
        tbl = self.table(indicator, sex)
        data = {"x": tbl.x.copy()}
        for z in z_scores:
            data[f"{float(z):g}"] = [
                lms_value(float(z), L, M, S) for L, M, S in zip(tbl.L, tbl.M, tbl.S)
            ]
        return pd.DataFrame(data)


def load_reference(directory: Union[str, Path] = DEFAULT_REFERENCE_DIR, version: Optional[str] = None) -> ReferenceData:
    """
    Loads LMS reference tables from a directory:

      wfa_lms.csv   (x=age_months)            required
      hfa_lms.csv   (x=age_months)            required
      wfh_lms.csv   (x=height_or_length_cm)   required
      hcfa_lms.csv  (x=age_months)            optional

    Each CSV has columns: sex, x, L, M, S. A corrupt or incomplete dataset
    raises ReferenceDataError here, never during analysis.
    """
    d = Path(directory)
    if not d.is_dir():
        raise ReferenceDataError(f"Reference directory not found: {d}")

    frames = {}
    for indicator in Indicator:
        path = d / f"{indicator.code}_lms.csv"
        if path.exists():
            frames[indicator] = _load_table(path)
        elif indicator.required:
            raise ReferenceDataError(f"Missing required reference table: {path}")

    ref = ReferenceData.from_frames(frames, version=version or d.name)
    logger.info(
        "reference_loaded",
        version=ref.version,
        directory=str(d),
        indicators=[ind.value for ind in ref.indicators],
    )
    return ref
