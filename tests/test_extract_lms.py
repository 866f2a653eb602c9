from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from anthro.errors import ReferenceDataError
from anthro.extract_lms_from_xlsx import (
    DetectedSheet,
    _guess_sex_from_filename,
    build_reference,
    detect_lms_sheets,
    indicator_for_file,
    main,
    tidy_lms,
)
from anthro.indicators import Indicator
from anthro.reference import load_reference


def _workbook(path: Path, x_col: str, xs, m_start: float) -> None:
    df = pd.DataFrame({
        x_col: xs,
        "L": [0.3] * len(xs),
        "M": [m_start + i for i in range(len(xs))],
        "S": [0.1] * len(xs),
        "P50": [m_start + i for i in range(len(xs))],
    })
    df.to_excel(path, sheet_name="Sheet1", index=False)


@pytest.fixture
def raw_dir(tmp_path: Path) -> Path:
    raw = tmp_path / "raw"
    raw.mkdir()
    for sex in ("boys", "girls"):
        _workbook(raw / f"wfa-{sex}-zscore-expanded-tables.xlsx", "Day", [0, 1, 2, 3], 3.3)
        _workbook(raw / f"lhfa-{sex}-zscore-expanded-tables.xlsx", "Month", [0, 1, 2], 49.0)
        _workbook(raw / f"wfl-{sex}-zscore-expanded-tables.xlsx", "Length", [45.0, 45.5, 46.0], 2.4)
    return raw


class TestFileNames:
    @pytest.mark.parametrize(
        "name,sex",
        [("wfa_boys.xlsx", "M"), ("wfa_girls.xlsx", "F"), ("hcfa_female.xlsx", "F"), ("hcfa_male.xlsx", "M"),
         ("wfa.xlsx", None)],
    )
    def test_sex(self, name, sex):
        assert _guess_sex_from_filename(name) == sex

    @pytest.mark.parametrize(
        "name,kind,indicator",
        [
            ("wfa-boys.xlsx", "age_days", Indicator.WEIGHT_FOR_AGE),
            ("lhfa-girls.xlsx", "age_months", Indicator.HEIGHT_FOR_AGE),
            ("wfl-boys.xlsx", "height", Indicator.WEIGHT_FOR_HEIGHT),
            ("wfh-boys.xlsx", "height", Indicator.WEIGHT_FOR_HEIGHT),
            ("hcfa-girls.xlsx", "age_days", Indicator.HEAD_CIRCUMFERENCE_FOR_AGE),
            ("wfl-boys.xlsx", "age_months", None),
            ("bmi-boys.xlsx", "age_months", None),
        ],
    )
    def test_indicator(self, name, kind, indicator):
        assert indicator_for_file(name, kind) == indicator


def test_tidy_converts_days_to_months():
    sheet = DetectedSheet(
        file=Path("wfa-girls.xlsx"), sheet="s", kind="age_days",
        x_col="Day", l_col="L", m_col="M", s_col="S", sex="F",
    )
    df = pd.DataFrame({"Day": [30.4375, 0, "bad"], "L": [0.1, 0.2, 0.3], "M": [4.0, 3.2, 5.0], "S": [0.1, 0.1, 0.1]})
    out = tidy_lms(df, sheet)
    assert list(out.columns) == ["sex", "x", "L", "M", "S"]
    assert out["x"].tolist() == [0.0, 1.0]
    assert out["sex"].unique().tolist() == ["F"]


def test_detect_sheet_columns(raw_dir):
    (sheet,) = detect_lms_sheets(raw_dir / "wfl-girls-zscore-expanded-tables.xlsx")
    assert (sheet.kind, sheet.x_col, sheet.sex) == ("height", "Length", "F")
    assert sheet.indicator is Indicator.WEIGHT_FOR_HEIGHT


def test_detect_requires_sex_in_name(tmp_path):
    path = tmp_path / "wfa.xlsx"
    _workbook(path, "Month", [0, 1], 3.3)
    with pytest.raises(ValueError, match="Cannot infer sex"):
        detect_lms_sheets(path)


def test_build_reference_round_trip(raw_dir, tmp_path):
    out = tmp_path / "who-built"
    written = build_reference(raw_dir, out)

    assert set(written) == {Indicator.WEIGHT_FOR_AGE, Indicator.HEIGHT_FOR_AGE, Indicator.WEIGHT_FOR_HEIGHT}
    assert (out / "wfa_lms.csv").exists()

    ref = load_reference(out)
    assert ref.version == "who-built"
    assert ref.coverage(Indicator.WEIGHT_FOR_AGE, "M") == pytest.approx((0.0, 3 / 30.4375))
    assert ref.coverage(Indicator.WEIGHT_FOR_HEIGHT, "F") == (45.0, 46.0)
    assert ref.lookup_by_height(Indicator.WEIGHT_FOR_HEIGHT, "F", 45.5).M == pytest.approx(3.4)


def test_build_rejects_invalid_tables(raw_dir, tmp_path):
    _workbook(raw_dir / "wfa-boys-zscore-expanded-tables.xlsx", "Day", [0, 1, 2], -1.0)
    with pytest.raises(ReferenceDataError, match="non-positive"):
        build_reference(raw_dir, tmp_path / "out")


def test_missing_raw_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        build_reference(tmp_path / "nope", tmp_path / "out")


def test_no_workbooks(tmp_path):
    with pytest.raises(FileNotFoundError, match="No .xlsx"):
        build_reference(tmp_path, tmp_path / "out")


def test_main(raw_dir, tmp_path):
    out = tmp_path / "cli-out"
    main([str(raw_dir), str(out)])
    assert sorted(p.name for p in out.glob("*.csv")) == ["hfa_lms.csv", "wfa_lms.csv", "wfh_lms.csv"]
