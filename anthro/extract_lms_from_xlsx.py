"""Build the CSV reference dataset from WHO expanded LMS workbooks.

Run manually:

    python -m anthro.extract_lms_from_xlsx data/raw/who anthro/data/who2006

Each workbook must carry the sex in its file name ('boys'/'girls') and the
indicator (wfa, lhfa, wfl/wfh, hcfa). Day-indexed tables are converted to
months with the average-month convention used by the age resolver.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import structlog

from anthro.age import DAYS_PER_MONTH
from anthro.indicators import Indicator
from anthro.reference import _validate_frame


logger = structlog.get_logger(__name__)

RAW_DIR = Path("data/raw/who")
OUT_DIR = Path("data/processed/who")


@dataclass
class DetectedSheet:
    file: Path
    sheet: str
    kind: str  # "age_months", "age_days" or "height"
    x_col: str
    l_col: str
    m_col: str
    s_col: str
    sex: str  # "M" or "F"
    indicator: Optional[Indicator] = None


def _norm(s: str) -> str:
    return str(s).strip().lower().replace(" ", "_")


def _guess_sex_from_filename(name: str) -> Optional[str]:
    n = name.lower()
    # 'female' contains 'male', so girls are checked first
    if "girl" in n or "female" in n:
        return "F"
    if "boy" in n or "male" in n:
        return "M"
    return None


def _find_lms_columns(cols) -> Optional[Tuple[str, str, str]]:
    norm = {_norm(c): c for c in cols}
    if all(k in norm for k in ("l", "m", "s")):
        return norm["l"], norm["m"], norm["s"]

    def find_affix(token: str) -> Optional[str]:
        for k, orig in norm.items():
            if k.endswith(f"_{token}") or k.startswith(f"{token}_") or f"_{token}_" in k:
                return orig
        return None

    l = find_affix("l")
    m = find_affix("m")
    s = find_affix("s")
    if l and m and s:
        return l, m, s
    return None


def _find_x_column(cols) -> Optional[Tuple[str, str]]:
    """Return (kind, x_col) with kind in {"age_months", "age_days", "height"}."""
    norm = {_norm(c): c for c in cols}
    for key in ("month", "months", "age_month", "age_months", "age_in_months"):
        if key in norm:
            return "age_months", norm[key]
    for key in ("day", "days", "age_days", "age_in_days"):
        if key in norm:
            return "age_days", norm[key]
    for key in ("height", "height_cm", "length", "length_cm", "len", "ht", "recumbent_length"):
        if key in norm:
            return "height", norm[key]

    for k, orig in norm.items():
        if "month" in k:
            return "age_months", orig
        if "day" in k:
            return "age_days", orig
    for k, orig in norm.items():
        if "height" in k or "length" in k:
            return "height", orig
    return None


def indicator_for_file(name: str, kind: str) -> Optional[Indicator]:
    """Assign a workbook to an indicator from its file name and index kind."""
    n = name.lower()
    if "hcfa" in n or "head" in n:
        ind = Indicator.HEAD_CIRCUMFERENCE_FOR_AGE
    elif "wfl" in n or "wfh" in n or "weight-for-length" in n or "weight-for-height" in n:
        ind = Indicator.WEIGHT_FOR_HEIGHT
    elif "lhfa" in n or "hfa" in n or "lfa" in n or "length-for-age" in n or "height-for-age" in n:
        ind = Indicator.HEIGHT_FOR_AGE
    elif "wfa" in n or "weight-for-age" in n:
        ind = Indicator.WEIGHT_FOR_AGE
    else:
        return None

    index = "height" if kind == "height" else "age"
    return ind if ind.index == index else None


def detect_lms_sheets(xlsx_path: Path) -> List[DetectedSheet]:
    sex = _guess_sex_from_filename(xlsx_path.name)
    if sex is None:
        raise ValueError(
            f"Cannot infer sex from filename: {xlsx_path.name}. "
            f"Rename to include 'boys'/'girls' (or 'male'/'female')."
        )

    xl = pd.ExcelFile(xlsx_path)
    detected: List[DetectedSheet] = []

    for sheet in xl.sheet_names:
        df = xl.parse(sheet_name=sheet, nrows=5)
        if df is None or df.empty:
            continue

        cols = list(df.columns)
        xinfo = _find_x_column(cols)
        lms = _find_lms_columns(cols)

        if xinfo and lms:
            kind, x_col = xinfo
            l_col, m_col, s_col = lms
            detected.append(
                DetectedSheet(
                    file=xlsx_path,
                    sheet=sheet,
                    kind=kind,
                    x_col=x_col,
                    l_col=l_col,
                    m_col=m_col,
                    s_col=s_col,
                    sex=sex,
                    indicator=indicator_for_file(xlsx_path.name, kind),
                )
            )

    return detected


def tidy_lms(df: pd.DataFrame, sheet: DetectedSheet) -> pd.DataFrame:
    out = df[[sheet.x_col, sheet.l_col, sheet.m_col, sheet.s_col]].copy()
    out.columns = ["x", "L", "M", "S"]
    out["sex"] = sheet.sex

    for c in ["x", "L", "M", "S"]:
        out[c] = pd.to_numeric(out[c], errors="coerce")

    out = out.dropna(subset=["x", "L", "M", "S"])
    if sheet.kind == "age_days":
        out["x"] = out["x"] / DAYS_PER_MONTH
    return out.sort_values("x").reset_index(drop=True)[["sex", "x", "L", "M", "S"]]


def extract_lms(sheet: DetectedSheet) -> pd.DataFrame:
    return tidy_lms(pd.read_excel(sheet.file, sheet_name=sheet.sheet), sheet)


def build_reference(raw_dir: Path = RAW_DIR, out_dir: Path = OUT_DIR) -> Dict[Indicator, Path]:
    raw_dir, out_dir = Path(raw_dir), Path(out_dir)
    if not raw_dir.exists():
        raise FileNotFoundError(f"Missing folder: {raw_dir.resolve()}")

    xlsx_files = sorted(raw_dir.glob("*.xlsx"))
    if not xlsx_files:
        raise FileNotFoundError(f"No .xlsx files found in {raw_dir.resolve()}")
    logger.info("workbooks_found", files=[f.name for f in xlsx_files])

    rows: Dict[Indicator, List[pd.DataFrame]] = {}
    for f in xlsx_files:
        detected = detect_lms_sheets(f)
        if not detected:
            logger.warning("no_lms_sheets_detected", file=f.name)
        for d in detected:
            if d.indicator is None:
                logger.warning("workbook_indicator_unknown", file=f.name, sheet=d.sheet, kind=d.kind)
                continue
            rows.setdefault(d.indicator, []).append(extract_lms(d))

    if not rows:
        raise RuntimeError("No LMS sheets detected in any file. Inspect the workbook structure.")

    out_dir.mkdir(parents=True, exist_ok=True)
    written: Dict[Indicator, Path] = {}
    for indicator in Indicator:
        if indicator not in rows:
            if indicator.required:
                logger.warning("reference_table_not_produced", indicator=indicator.value)
            continue
        df = pd.concat(rows[indicator], ignore_index=True).drop_duplicates(subset=["sex", "x"])
        df = _validate_frame(df, f"{indicator.code}_lms.csv")
        path = out_dir / f"{indicator.code}_lms.csv"
        df.to_csv(path, index=False)
        written[indicator] = path
        logger.info("reference_table_saved", path=str(path), rows=len(df))

    return written


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    raw_dir = Path(args[0]) if len(args) > 0 else RAW_DIR
    out_dir = Path(args[1]) if len(args) > 1 else OUT_DIR
    build_reference(raw_dir, out_dir)


if __name__ == "__main__":
    main()
