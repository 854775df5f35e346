"""
Pydantic models for VIN decoding — strict typing at every boundary.

Everything a decode produces is a model defined here: positional results,
pattern matches, derived vehicle views, typed errors and the final
DecodeResult.  Errors are DATA, not exceptions: a decode never raises, it
returns a result whose `errors` list explains where it stopped.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ─── Severity / Category / Code ─────────────────────────────────────


class Severity(str, Enum):
    """Severity of a decode error."""

    WARNING = "warning"  # Recorded, decode continues
    ERROR = "error"  # Decode stopped at this stage
    FATAL = "fatal"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    STRUCTURE = "structure"
    LOOKUP = "lookup"
    PATTERN = "pattern"
    DATABASE = "database"


class ErrorCode(str, Enum):
    """Stable numeric error codes, grouped by hundreds per category."""

    # Structure (100-199)
    INVALID_LENGTH = "100"
    INVALID_CHARACTERS = "101"

    # Validation (200-299)
    INVALID_CHECK_DIGIT = "200"
    INVALID_MODEL_YEAR = "201"
    INVALID_REGION = "202"

    # Lookup (300-399)
    WMI_NOT_FOUND = "300"
    MANUFACTURER_NOT_FOUND = "301"
    MAKE_NOT_FOUND = "302"

    # Pattern (400-499)
    NO_PATTERNS_FOUND = "400"
    LOW_CONFIDENCE_PATTERNS = "401"
    CONFLICTING_PATTERNS = "402"

    # Database (500-599)
    DATABASE_CONNECTION_ERROR = "500"
    QUERY_ERROR = "501"
    INVALID_RESULT = "502"


class BodyStyle(str, Enum):
    """Closed set of user-facing body styles."""

    SEDAN = "Sedan"
    COUPE = "Coupe"
    CONVERTIBLE = "Convertible"
    HATCHBACK = "Hatchback"
    SUV = "SUV"
    CROSSOVER = "Crossover"
    WAGON = "Wagon"
    VAN = "Van"
    MINIVAN = "Minivan"
    PICKUP = "Pickup"
    TRUCK = "Truck"
    TRACTOR = "Tractor"
    TRAILER = "Trailer"
    BUS = "Bus"
    MOTORCYCLE = "Motorcycle"
    OTHER = "Other"


# ─── Decode Errors (tagged by category) ─────────────────────────────


class DecodeErrorBase(BaseModel):
    """Fields shared by every decode error."""

    code: ErrorCode
    severity: Severity
    message: str
    positions: Optional[list[int]] = None  # 1-indexed VIN positions
    details: Optional[str] = None


class StructureDecodeError(DecodeErrorBase):
    category: Literal[ErrorCategory.STRUCTURE] = ErrorCategory.STRUCTURE


class ValidationDecodeError(DecodeErrorBase):
    category: Literal[ErrorCategory.VALIDATION] = ErrorCategory.VALIDATION
    expected: Optional[str] = None
    actual: Optional[str] = None


class LookupDecodeError(DecodeErrorBase):
    category: Literal[ErrorCategory.LOOKUP] = ErrorCategory.LOOKUP
    search_key: str
    search_type: str


class PatternDecodeError(DecodeErrorBase):
    category: Literal[ErrorCategory.PATTERN] = ErrorCategory.PATTERN
    pattern: Optional[str] = None
    confidence: Optional[float] = None


class DatabaseDecodeError(DecodeErrorBase):
    category: Literal[ErrorCategory.DATABASE] = ErrorCategory.DATABASE
    query: Optional[str] = None
    params: Optional[list[Any]] = None


DecodeError = Annotated[
    Union[
        StructureDecodeError,
        ValidationDecodeError,
        LookupDecodeError,
        PatternDecodeError,
        DatabaseDecodeError,
    ],
    Field(discriminator="category"),
]


# ─── Positional Results ─────────────────────────────────────────────


class ModelYearResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    source: Literal["position", "override", "calculated"]
    confidence: float = Field(ge=0.0, le=1.0)


class CheckDigitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int = 9  # 1-indexed, as printed on the VIN plate
    actual: str
    expected: Optional[str] = None
    is_valid: bool


class WMIResult(BaseModel):
    """Manufacturer record for a 3- or 6-character WMI code."""

    code: str
    manufacturer: Optional[str] = None
    make: Optional[str] = None
    country: Optional[str] = None
    vehicle_type: Optional[str] = None
    region: Optional[str] = None


# ─── Reference Data Rows (what storage hands the resolver) ─────────


class SchemaRecord(BaseModel):
    schema_id: int
    schema_name: str


class RawPatternRow(BaseModel):
    """One (schema, element, pattern) row from the reference database."""

    pattern: str
    element_id: Optional[int] = None
    element_name: str
    element_code: Optional[str] = None
    group_name: Optional[str] = None
    description: Optional[str] = None
    lookup_table: Optional[str] = None
    attribute_id: Optional[Union[str, int]] = None
    schema_name: str
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    element_weight: Optional[float] = None
    value: Optional[str] = None  # Filled in by the resolver from lookup tables


# ─── Pattern Matches ────────────────────────────────────────────────


class PatternMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    lookup_table: Optional[str] = None
    group_name: Optional[str] = None
    element_weight: Optional[float] = None
    pattern_type: Literal["VDS", "VIS"]
    raw_pattern: str


class PatternMatch(BaseModel):
    """A scored (element, value) candidate for this VIN."""

    model_config = ConfigDict(frozen=True)

    element: str
    code: Optional[str] = None
    attribute_id: Optional[str] = None
    value: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    positions: list[int] = Field(default_factory=list)
    schema_name: str
    metadata: PatternMetadata


# ─── Derived Views ──────────────────────────────────────────────────


class VehicleInfo(BaseModel):
    make: str
    model: str
    year: int
    series: Optional[str] = None
    trim: Optional[str] = None
    body_style: Optional[str] = None
    drive_type: Optional[str] = None
    engine_type: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    doors: Optional[str] = None
    manufacturer: Optional[str] = None


class PlantInfo(BaseModel):
    country: str
    city: Optional[str] = None
    manufacturer: Optional[str] = None
    code: str  # Always VIN position 11


class EngineInfo(BaseModel):
    type: Optional[str] = None
    model: Optional[str] = None
    cylinders: Optional[str] = None
    displacement: Optional[str] = None
    fuel: Optional[str] = None
    power: Optional[str] = None


class VinSection(BaseModel):
    """Raw VDS/VIS characters plus the patterns that matched them."""

    raw: str
    patterns: list[PatternMatch] = Field(default_factory=list)


class VINComponents(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    wmi: Optional[WMIResult] = None
    model_year: Optional[ModelYearResult] = None
    check_digit: Optional[CheckDigitResult] = None
    vds: Optional[VinSection] = None
    vis: Optional[VinSection] = None
    vehicle: Optional[VehicleInfo] = None
    plant: Optional[PlantInfo] = None
    engine: Optional[EngineInfo] = None


# ─── Options & Result ───────────────────────────────────────────────


class DecodeOptions(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    include_pattern_details: bool = False
    include_raw_data: bool = False
    model_year: Optional[int] = None  # Overrides positional derivation
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    include_diagnostics: bool = False


class DecodeMetadata(BaseModel):
    processing_time: float = 0.0  # Milliseconds
    confidence: float = 0.0
    schema_version: str = "1.0"
    matched_schema: Optional[str] = None
    total_patterns: Optional[int] = None
    raw_records: Optional[list[dict[str, Any]]] = None
    stage_timings: Optional[dict[str, float]] = None


class DecodeResult(BaseModel):
    """The final output of a decode."""

    vin: str
    valid: bool = False
    components: VINComponents = Field(default_factory=VINComponents)
    errors: list[DecodeError] = Field(default_factory=list)
    patterns: Optional[list[PatternMatch]] = None
    metadata: DecodeMetadata = Field(default_factory=DecodeMetadata)
