"""
VIN Decoder — FastAPI Server
=============================

RESTful API for decoding Vehicle Identification Numbers.

Endpoints:
    POST /decode            Decode a VIN (JSON body with options)
    GET  /decode/{vin}      Decode a VIN (options as query parameters)
    GET  /health            Health check / readiness probe

Run:
    VIN_DECODER_DATABASE_PATH=vpic.lite.db uvicorn api:app --reload
    uvicorn api:app --host 0.0.0.0        # Production

Docs:
    http://localhost:8000/docs             # Swagger UI (auto-generated)
    http://localhost:8000/redoc            # ReDoc (alternative)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from vin_decoder import __version__
from vin_decoder.cache import LRUCache
from vin_decoder.config import DecoderSettings
from vin_decoder.exceptions import VinDecoderError
from vin_decoder.models import DecodeOptions, DecodeResult, Severity
from vin_decoder.pipeline import VinDecoder, normalize_vin
from vin_decoder.storage import SQLiteVinStorage

load_dotenv()

logger = logging.getLogger(__name__)


# ─── Application Lifespan (open the reference database) ─────────────

_decoder: VinDecoder | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the vPIC database once on startup and share it across requests."""
    global _decoder  # noqa: PLW0603
    settings = DecoderSettings()
    if settings.database_path:
        try:
            storage = SQLiteVinStorage(
                settings.database_path, cache=LRUCache(settings.cache_size)
            )
            _decoder = VinDecoder(
                storage,
                DecodeOptions(confidence_threshold=settings.confidence_threshold),
            )
        except VinDecoderError as e:
            logger.error("Decoder not initialised: %s", e)
    else:
        logger.warning("VIN_DECODER_DATABASE_PATH not set; /decode will return 503")
    yield
    if _decoder is not None:
        _decoder.close()
    _decoder = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="VIN Decoder API",
    description=(
        "Decodes 17-character Vehicle Identification Numbers against the NHTSA "
        "vPIC reference database: check digit, model year, manufacturer, and "
        "pattern-matched vehicle, plant and engine attributes."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class DecodeRequest(BaseModel):
    """Request body for POST /decode. Omitted options use the server defaults."""

    model_config = ConfigDict(protected_namespaces=())

    vin: str = Field(
        ...,
        min_length=1,
        description="The VIN to decode. Surrounding whitespace and case are ignored.",
        json_schema_extra={"example": "1HGCM82633A004352"},
    )
    include_pattern_details: Optional[bool] = None
    include_raw_data: Optional[bool] = None
    include_diagnostics: Optional[bool] = None
    model_year: Optional[int] = Field(None, description="Override the position-10 model year")
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class DecodeResponse(DecodeResult):
    """Decode result plus error/warning tallies."""

    error_count: int
    warning_count: int


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_decoder() -> VinDecoder:
    if _decoder is None:
        raise HTTPException(status_code=503, detail="Decoder not initialised")
    return _decoder


def _build_response(result: DecodeResult) -> DecodeResponse:
    """Convert the internal DecodeResult to the API response schema."""
    warning_count = sum(1 for e in result.errors if e.severity == Severity.WARNING)
    return DecodeResponse.model_validate({
        **result.model_dump(),
        "error_count": len(result.errors) - warning_count,
        "warning_count": warning_count,
    })


async def _decode(vin: str, overrides: dict[str, Any]) -> DecodeResponse:
    decoder = _get_decoder()
    # Only the overridden fields are set; the decoder fills in its defaults.
    options = DecodeOptions(**overrides)
    result = await asyncio.to_thread(decoder.decode, normalize_vin(vin), options)
    return _build_response(result)


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/decode",
    summary="Decode a VIN",
    tags=["Decode"],
    responses={503: {"description": "Decoder not yet initialised"}},
)
async def decode_vin_body(request: DecodeRequest) -> DecodeResponse:
    """Run the full decode pipeline on one VIN.

    Returns a structured result with:
    - **valid**: `true` unless a stage failed (warnings don't count)
    - **components**: WMI, model year, check digit, vehicle, plant, engine
    - **errors**: typed decode errors, each with a category and severity
    - **metadata**: confidence, matched schema, processing time
    """
    overrides = request.model_dump(exclude={"vin"}, exclude_none=True)
    return await _decode(request.vin, overrides)


@app.get(
    "/decode/{vin}",
    summary="Decode a VIN (query-string options)",
    tags=["Decode"],
    responses={503: {"description": "Decoder not yet initialised"}},
)
async def decode_vin_path(
    vin: str,
    include_pattern_details: Optional[bool] = None,
    include_raw_data: Optional[bool] = None,
    include_diagnostics: Optional[bool] = None,
    model_year: Optional[int] = None,
    confidence_threshold: Optional[float] = Query(None, ge=0.0, le=1.0),
) -> DecodeResponse:
    """Same as POST /decode, for quick lookups from a browser or curl."""
    overrides = {
        key: value
        for key, value in {
            "include_pattern_details": include_pattern_details,
            "include_raw_data": include_raw_data,
            "include_diagnostics": include_diagnostics,
            "model_year": model_year,
            "confidence_threshold": confidence_threshold,
        }.items()
        if value is not None
    }
    return await _decode(vin, overrides)


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Decoder not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and which reference database is loaded."""
    decoder = _get_decoder()
    database = getattr(decoder.storage, "database_path", None)
    return HealthResponse(
        status="healthy",
        version=__version__,
        database=str(database) if database is not None else type(decoder.storage).__name__,
    )
