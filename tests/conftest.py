from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Iterator

import pandas as pd
import pytest

from anthro.analysis import GrowthAnalyzer, Measurement
from anthro.reference import DEFAULT_REFERENCE_DIR, ReferenceData, load_reference
from app.config import get_config


@pytest.fixture(scope="session")
def reference() -> ReferenceData:
    return load_reference()


@pytest.fixture
def analyzer(reference: ReferenceData) -> GrowthAnalyzer:
    return GrowthAnalyzer(reference)


@pytest.fixture
def reference_copy(tmp_path: Path) -> Path:
    """A writable copy of the bundled WHO tables."""
    out = tmp_path / "who-test"
    out.mkdir()
    for csv in DEFAULT_REFERENCE_DIR.glob("*_lms.csv"):
        pd.read_csv(csv).to_csv(out / csv.name, index=False)
    return out


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def _measurement(**overrides) -> Measurement:
    """Six-month-old girl, close to the median for weight and height."""
    values = dict(
        sex="F",
        birth_date=date(2024, 1, 1),
        observation_date=date(2024, 7, 2),
        weight_kg=7.3,
        height_cm=65.0,
        head_circumference_cm=None,
    )
    values.update(overrides)
    return Measurement(**values)


@pytest.fixture
def make_measurement():
    return _measurement


@pytest.fixture
def today() -> date:
    return date(2026, 1, 1)
