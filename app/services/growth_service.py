from __future__ import annotations

import threading
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import structlog

from anthro.analysis import GrowthAnalysis, GrowthAnalyzer, Measurement
from anthro.errors import OutOfRangeError
from anthro.indicators import Indicator, Sex
from anthro.reference import ReferenceData, load_reference
from anthro.trend import GrowthFaltering, GrowthTrend, growth_faltering, growth_trend
from app.config import AppConfig
from app.utils.time import latest_calendar_date


logger = structlog.get_logger(__name__)


class ReferenceRegistry:
    """Holds the current reference snapshot.

    Readers take whatever snapshot is current when they start and keep it for
    the whole call. reload() builds a complete new snapshot first and then
    swaps the single reference, so a failed reload leaves the old one in
    place and no reader ever sees a partially loaded dataset.
    """

    def __init__(self, loader: Callable[[], ReferenceData]):
        self._loader = loader
        self._reload_lock = threading.Lock()
        self._current = loader()

    @property
    def current(self) -> ReferenceData:
        return self._current

    def reload(self) -> ReferenceData:
        with self._reload_lock:
            new = self._loader()
            previous = self._current
            self._current = new
        logger.info("reference_reloaded", previous=previous.version, current=new.version)
        return new


def caregiver_message(err: OutOfRangeError) -> str:
    """Explain a chart's supported range instead of surfacing a computation error."""
    label = Indicator(err.indicator).label
    if err.unit == "months":
        return (
            f"{label} can only be assessed for children aged {err.lower:g} to {err.upper:g} months; "
            f"this measurement was taken at {err.value:.1f} months."
        )
    return (
        f"{label} can only be assessed for a height of {err.lower:g} to {err.upper:g} cm; "
        f"this measurement is {err.value:.1f} cm."
    )


class GrowthService:
    def __init__(self, cfg: AppConfig, registry: Optional[ReferenceRegistry] = None):
        self.cfg = cfg
        self.classifier = cfg.growth.classifier()
        self.settings = cfg.growth.analysis_settings()
        self.registry = registry or ReferenceRegistry(
            lambda: load_reference(cfg.paths.resolved_who_lms_dir(), cfg.paths.reference_version)
        )

    @property
    def reference(self) -> ReferenceData:
        return self.registry.current

    def analyzer(self) -> GrowthAnalyzer:
        return GrowthAnalyzer(self.registry.current, self.classifier, self.settings)

    def analyze(self, measurement: Measurement, today: Optional[date] = None) -> GrowthAnalysis:
        return self.analyzer().analyze(measurement, today=today or latest_calendar_date())

    def analyze_history(
        self, measurements: Iterable[Measurement], today: Optional[date] = None
    ) -> List[GrowthAnalysis]:
        # one snapshot for the whole history
        analyzer = self.analyzer()
        today = today or latest_calendar_date()
        analyses = [analyzer.analyze(m, today=today) for m in measurements]
        return sorted(analyses, key=lambda a: a.measurement.observation_date)

    def trend(
        self, measurements: Iterable[Measurement], today: Optional[date] = None
    ) -> Tuple[List[GrowthAnalysis], GrowthTrend, GrowthFaltering]:
        analyses = self.analyze_history(measurements, today)
        return analyses, growth_trend(analyses), growth_faltering(analyses)

    def reference_curve(self, indicator: Indicator, sex: Sex, z_scores: Sequence[float]) -> pd.DataFrame:
        return self.registry.current.curve(indicator, sex, z_scores)

    def reload(self) -> ReferenceData:
        return self.registry.reload()


_service: Optional[GrowthService] = None


def init_growth_service(cfg: AppConfig) -> GrowthService:
    global _service
    _service = GrowthService(cfg)
    return _service


def get_growth_service() -> GrowthService:
    if _service is None:
        raise RuntimeError("Growth service not initialised; call init_growth_service() at startup")
    return _service
