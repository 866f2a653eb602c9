from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from anthro.errors import OutOfRangeError, ReferenceDataError
from anthro.indicators import Indicator
from anthro.lms import LMS, lms_zscore
from anthro.reference import AgeKey, HeightKey, ReferenceData, load_reference


WFA = Indicator.WEIGHT_FOR_AGE
HFA = Indicator.HEIGHT_FOR_AGE
WFH = Indicator.WEIGHT_FOR_HEIGHT
HCFA = Indicator.HEAD_CIRCUMFERENCE_FOR_AGE


def _rewrite(path: Path, edit) -> None:
    df = pd.read_csv(path)
    df = edit(df)
    df.to_csv(path, index=False)


class TestLoad:
    def test_bundled_dataset(self, reference):
        assert reference.version == "who2006"
        assert reference.indicators == [WFA, HFA, WFH, HCFA]
        assert reference.coverage(WFA, "F") == (0.0, 60.0)
        assert reference.coverage(WFH, "M") == (45.0, 120.0)

    def test_explicit_version(self, reference_copy):
        ref = load_reference(reference_copy, version="who2006-r2")
        assert ref.version == "who2006-r2"

    def test_version_defaults_to_directory_name(self, reference_copy):
        assert load_reference(reference_copy).version == "who-test"

    def test_head_circumference_is_optional(self, reference_copy):
        (reference_copy / "hcfa_lms.csv").unlink()
        ref = load_reference(reference_copy)
        assert not ref.has(HCFA)
        assert ref.indicators == [WFA, HFA, WFH]

    def test_missing_required_table(self, reference_copy):
        (reference_copy / "wfh_lms.csv").unlink()
        with pytest.raises(ReferenceDataError, match="wfh_lms.csv"):
            load_reference(reference_copy)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ReferenceDataError):
            load_reference(tmp_path / "nope")

    def test_missing_column(self, reference_copy):
        _rewrite(reference_copy / "wfa_lms.csv", lambda df: df.drop(columns=["S"]))
        with pytest.raises(ReferenceDataError, match="missing columns"):
            load_reference(reference_copy)

    def test_non_numeric_value(self, reference_copy):
        def corrupt(df):
            df["M"] = df["M"].astype(object)
            df.loc[3, "M"] = "n/a"
            return df

        _rewrite(reference_copy / "hfa_lms.csv", corrupt)
        with pytest.raises(ReferenceDataError, match="non-numeric"):
            load_reference(reference_copy)

    def test_non_positive_m(self, reference_copy):
        def corrupt(df):
            df.loc[0, "M"] = 0.0
            return df

        _rewrite(reference_copy / "wfa_lms.csv", corrupt)
        with pytest.raises(ReferenceDataError, match="non-positive"):
            load_reference(reference_copy)

    def test_duplicated_index(self, reference_copy):
        _rewrite(reference_copy / "wfa_lms.csv", lambda df: pd.concat([df, df.iloc[[0]]]))
        with pytest.raises(ReferenceDataError, match="duplicated"):
            load_reference(reference_copy)

    def test_sex_without_rows(self, reference_copy):
        _rewrite(reference_copy / "wfa_lms.csv", lambda df: df[df["sex"] == "M"])
        with pytest.raises(ReferenceDataError, match="sex=F"):
            load_reference(reference_copy)


class TestLookup:
    def test_exact_row_is_returned_unchanged(self, reference):
        assert reference.lookup_by_age(WFA, "F", 6) == LMS(-0.0756, 7.2970, 0.11368)
        assert reference.lookup_by_height(WFH, "F", 65) == LMS(-0.3833, 6.464, 0.06606)

    def test_interpolates_each_parameter_linearly(self, reference):
        lms = reference.lookup(WFA, "F", AgeKey(6.5))
        assert lms.L == pytest.approx((-0.0756 + -0.1039) / 2)
        assert lms.M == pytest.approx((7.2970 + 7.6422) / 2)
        assert lms.S == pytest.approx((0.11368 + 0.10986) / 2)

    def test_interpolation_weighting(self, reference):
        lms = reference.lookup(HFA, "F", AgeKey(6.25))
        assert lms.M == pytest.approx(65.7311 + 0.25 * (67.2873 - 65.7311))

    def test_interpolated_values_stay_between_neighbours(self, reference):
        tbl = reference.table(WFA, "M")
        for lo, hi in zip(range(len(tbl.x) - 1), range(1, len(tbl.x))):
            mid = (tbl.x[lo] + tbl.x[hi]) / 2
            m = reference.lookup_by_age(WFA, "M", mid).M
            assert min(tbl.M[lo], tbl.M[hi]) <= m <= max(tbl.M[lo], tbl.M[hi])

    def test_boundaries_are_inside_coverage(self, reference):
        reference.lookup_by_age(WFA, "M", 0.0)
        reference.lookup_by_age(WFA, "M", 60.0)
        reference.lookup_by_height(WFH, "M", 45.0)
        reference.lookup_by_height(WFH, "M", 120.0)

    @pytest.mark.parametrize("months", [-0.1, 60.01, 200.0, float("nan")])
    def test_age_outside_coverage(self, reference, months):
        with pytest.raises(OutOfRangeError) as exc:
            reference.lookup_by_age(WFA, "F", months)
        err = exc.value
        assert err.indicator == "weight_for_age"
        assert (err.lower, err.upper, err.unit) == (0.0, 60.0, "months")
        assert err.sex == "F"

    @pytest.mark.parametrize("cm", [44.9, 120.5])
    def test_height_outside_coverage(self, reference, cm):
        with pytest.raises(OutOfRangeError) as exc:
            reference.lookup_by_height(WFH, "M", cm)
        assert exc.value.unit == "cm"
        assert "45-120 cm" in str(exc.value)

    def test_key_must_match_indicator_index(self, reference):
        with pytest.raises(TypeError):
            reference.lookup(WFH, "M", AgeKey(12))
        with pytest.raises(TypeError):
            reference.lookup(WFA, "M", HeightKey(80))

    def test_sexes_use_separate_tables(self, reference):
        assert reference.lookup_by_age(WFA, "M", 24).M == pytest.approx(12.1373)
        assert reference.lookup_by_age(WFA, "F", 24).M != reference.lookup_by_age(WFA, "M", 24).M

    def test_unknown_table(self, reference_copy):
        (reference_copy / "hcfa_lms.csv").unlink()
        ref = load_reference(reference_copy)
        with pytest.raises(KeyError):
            ref.lookup_by_age(HCFA, "F", 6)


class TestSnapshot:
    def test_tables_are_read_only(self, reference):
        with pytest.raises(TypeError):
            reference.tables[(WFA, "M")] = None  # type: ignore[index]
        with pytest.raises(ValueError):
            reference.table(WFA, "M").M[0] = 1.0

    def test_frozen(self, reference):
        with pytest.raises(AttributeError):
            reference.version = "other"  # type: ignore[misc]

    def test_from_frames_requires_core_indicators(self):
        df = pd.DataFrame({"sex": ["M", "F"], "x": [0, 0], "L": [1, 1], "M": [3.3, 3.2], "S": [0.1, 0.1]})
        with pytest.raises(ReferenceDataError, match="lacks required tables"):
            ReferenceData.from_frames({WFA: df}, version="partial")


class TestCurve:
    def test_columns_and_median(self, reference):
        df = reference.curve(WFA, "F")
        assert list(df.columns) == ["x", "-3", "-2", "0", "2", "3"]
        tbl = reference.table(WFA, "F")
        np.testing.assert_allclose(df["x"], tbl.x)
        np.testing.assert_allclose(df["0"], tbl.M)

    def test_lines_are_ordered(self, reference):
        df = reference.curve(HFA, "M", z_scores=[-2, 0, 2])
        assert list(df.columns) == ["x", "-2", "0", "2"]
        assert (df["-2"] < df["0"]).all()
        assert (df["0"] < df["2"]).all()


@pytest.mark.parametrize("indicator", [WFA, HFA, WFH, HCFA])
@pytest.mark.parametrize("sex", ["M", "F"])
def test_median_scores_zero_at_every_row(reference, indicator, sex):
    tbl = reference.table(indicator, sex)
    for x, M in zip(tbl.x, tbl.M):
        key = HeightKey(x) if indicator.index == "height" else AgeKey(x)
        lms = reference.lookup(indicator, sex, key)
        assert lms_zscore(M, *lms) == pytest.approx(0.0, abs=1e-12)
