from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from anthro.indicators import Indicator, normalize_sex
from app.schemas.growth import (
    GrowthAnalysisOut,
    GrowthFalteringOut,
    GrowthTrendOut,
    MeasurementIn,
    ReferenceCurveOut,
    TrendIn,
    TrendOut,
)
from app.services.growth_service import GrowthService, get_growth_service
from app.utils.time import now_utc_iso


router = APIRouter(prefix="/growth", tags=["growth"])


@router.post("/analyze", response_model=GrowthAnalysisOut)
def analyze_measurement(
    inp: MeasurementIn,
    service: GrowthService = Depends(get_growth_service),
) -> GrowthAnalysisOut:
    """Z-scores, percentiles and status for every indicator of one measurement."""
    analysis = service.analyze(inp.to_measurement())
    return GrowthAnalysisOut.from_analysis(analysis)


@router.post("/trend", response_model=TrendOut)
def growth_trend(
    inp: TrendIn,
    service: GrowthService = Depends(get_growth_service),
) -> TrendOut:
    """Analyze a child's history (any order) and compare the two latest records."""
    analyses, trend, faltering = service.trend(m.to_measurement() for m in inp.measurements)
    return TrendOut(
        analyses=[GrowthAnalysisOut.from_analysis(a) for a in analyses],
        trend=GrowthTrendOut.from_trend(trend),
        faltering=GrowthFalteringOut.from_faltering(faltering),
        generated_at=now_utc_iso(),
    )


@router.get("/reference/{indicator}/{sex}", response_model=ReferenceCurveOut)
def reference_curve(
    indicator: Indicator,
    sex: str,
    z: List[float] = Query(default=[-3.0, -2.0, 0.0, 2.0, 3.0]),
    service: GrowthService = Depends(get_growth_service),
) -> ReferenceCurveOut:
    """Chart lines at the requested z-scores for one indicator and sex."""
    sex = normalize_sex(sex)
    df = service.reference_curve(indicator, sex, z)
    return ReferenceCurveOut(
        indicator=indicator.value,
        sex=sex,
        unit=indicator.unit,
        index=indicator.index,
        reference_version=service.reference.version,
        z_scores=[float(v) for v in z],
        rows=df.to_dict(orient="records"),
    )


@router.post("/reference/reload")
def reload_reference(service: GrowthService = Depends(get_growth_service)):
    """Load the configured reference dataset again and swap it in atomically."""
    ref = service.reload()
    return {
        "status": "ok",
        "reference_version": ref.version,
        "indicators": [ind.value for ind in ref.indicators],
    }
