from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from anthro.errors import OutOfRangeError, ValidationError
from app.api.routes.growth import router as growth_router
from app.config import get_config
from app.services.growth_service import caregiver_message, get_growth_service, init_growth_service
from app.utils.logs import configure_logging


logger = structlog.get_logger(__name__)

app = FastAPI(title="Child Growth Assessment API", version="0.1.0")

app.include_router(growth_router)


@app.on_event("startup")
def _startup() -> None:
    """Configure logging and load the reference dataset; a bad dataset stops startup."""
    cfg = get_config()
    configure_logging(cfg.logging.level, cfg.logging.format)
    service = init_growth_service(cfg)
    logger.info("api_started", reference_version=service.reference.version)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "invalid_measurement", "detail": exc.errors},
    )


@app.exception_handler(OutOfRangeError)
async def _out_of_range(request: Request, exc: OutOfRangeError) -> JSONResponse:
    logger.info("measurement_out_of_range", indicator=exc.indicator, value=exc.value, unit=exc.unit)
    return JSONResponse(
        status_code=422,
        content={
            "error": "out_of_range",
            "indicator": exc.indicator,
            "lower": exc.lower,
            "upper": exc.upper,
            "unit": exc.unit,
            "detail": caregiver_message(exc),
        },
    )


@app.get("/health")
def health():
    return {"status": "ok", "reference_version": get_growth_service().reference.version}
