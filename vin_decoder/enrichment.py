"""
Folding pattern matches into vehicle, plant and engine records.

The resolver hands us a flat list of (element, value) matches.  Here we
dispatch on element name to build the user-facing views, and normalize the
free-text vPIC body class into a small closed set of body styles.

Body-style strategy — same shape as any messy-name resolution:
  1. Exact lookup in BODY_STYLE_MAP
  2. Case-insensitive substring match against the map keys (either direction)
  3. Keyword heuristics ('pickup' / 'truck')
  4. Fall back to BodyStyle.OTHER
"""

from __future__ import annotations

from .models import (
    BodyStyle,
    EngineInfo,
    ModelYearResult,
    PatternMatch,
    PlantInfo,
    VehicleInfo,
    WMIResult,
)
from .validators import PLANT_CODE_INDEX

# ─── Body Style Table ────────────────────────────────────────────────
# Ordered: substring fallback takes the first key that matches.

BODY_STYLE_MAP: dict[str, BodyStyle] = {
    # Sedans and coupes
    "Sedan/Saloon": BodyStyle.SEDAN,
    "Sedan": BodyStyle.SEDAN,
    "4-Door Sedan": BodyStyle.SEDAN,
    "2-Door Sedan": BodyStyle.SEDAN,
    "4-Door Saloon": BodyStyle.SEDAN,
    "Coupe": BodyStyle.COUPE,
    "2-Door Coupe": BodyStyle.COUPE,
    "Convertible": BodyStyle.CONVERTIBLE,
    "2-Door Convertible": BodyStyle.CONVERTIBLE,
    "4-Door Convertible": BodyStyle.CONVERTIBLE,
    # Hatchbacks and wagons
    "Hatchback": BodyStyle.HATCHBACK,
    "3-Door Hatchback": BodyStyle.HATCHBACK,
    "5-Door Hatchback": BodyStyle.HATCHBACK,
    "Station Wagon": BodyStyle.WAGON,
    "Wagon": BodyStyle.WAGON,
    # SUVs and crossovers (crossovers report as SUV)
    "Sport Utility Vehicle (SUV)/Multi-Purpose Vehicle (MPV)": BodyStyle.SUV,
    "Sport Utility Vehicle (SUV)": BodyStyle.SUV,
    "SUV": BodyStyle.SUV,
    "Crossover Utility Vehicle (CUV)": BodyStyle.SUV,
    "Crossover": BodyStyle.SUV,
    # Vans and minivans
    "Van": BodyStyle.VAN,
    "Cargo Van": BodyStyle.VAN,
    "Minivan": BodyStyle.MINIVAN,
    "Passenger Van": BodyStyle.VAN,
    # Trucks and pickups
    "Pickup": BodyStyle.PICKUP,
    "Pickup Truck": BodyStyle.PICKUP,
    "Truck": BodyStyle.TRUCK,
    "Standard Pickup Truck": BodyStyle.PICKUP,
    "Extended Cab Pickup": BodyStyle.PICKUP,
    "Crew Cab Pickup": BodyStyle.PICKUP,
    # Heavy vehicles
    "Truck-Tractor": BodyStyle.TRACTOR,
    "Trailer": BodyStyle.TRAILER,
    # Bus
    "Bus": BodyStyle.BUS,
    "School Bus": BodyStyle.BUS,
    # Motorcycle
    "Motorcycle": BodyStyle.MOTORCYCLE,
    # Catch-all
    "Incomplete Vehicle": BodyStyle.OTHER,
    "Other": BodyStyle.OTHER,
}


def coerce_body_style(raw: str) -> BodyStyle:
    """Map a raw vPIC body class to a BodyStyle."""
    if raw in BODY_STYLE_MAP:
        return BODY_STYLE_MAP[raw]

    lowered = raw.lower()
    for key, style in BODY_STYLE_MAP.items():
        key_lower = key.lower()
        if key_lower in lowered or lowered in key_lower:
            return style

    if "pickup" in lowered or "truck" in lowered:
        return BodyStyle.PICKUP

    return BodyStyle.OTHER


# ─── Vehicle ─────────────────────────────────────────────────────────


def _weight_then_confidence(match: PatternMatch) -> tuple[float, float]:
    weight = match.metadata.element_weight
    return (weight if weight is not None else 0.0, match.confidence)


def extract_vehicle_info(
    patterns: list[PatternMatch],
    wmi: WMIResult,
    model_year: ModelYearResult,
) -> VehicleInfo:
    """Build VehicleInfo; Model comes from the heaviest, most confident match."""
    info = VehicleInfo(
        make=wmi.make or "",
        model="",
        year=model_year.year,
        manufacturer=wmi.manufacturer,
    )

    models = [p for p in patterns if p.element == "Model" and p.value]
    if models:
        info.model = max(models, key=_weight_then_confidence).value or ""

    for pattern in patterns:
        if not pattern.value:
            continue

        element = pattern.element
        if element == "Make":
            info.make = pattern.value
        elif element == "Series":
            info.series = pattern.value
        elif element in ("Trim", "Trim Level"):
            info.trim = pattern.value
        elif element in ("Body Class", "Body Style"):
            info.body_style = coerce_body_style(pattern.value).value
        elif element == "Drive Type":
            info.drive_type = pattern.value
        elif element == "Fuel Type - Primary":
            info.fuel_type = pattern.value
        elif element == "Fuel Type - Secondary":
            # A secondary fuel means a hybrid powertrain
            info.fuel_type = "Hybrid"
        elif element == "Transmission":
            info.transmission = pattern.value
        elif element == "Doors":
            info.doors = pattern.value

    return info


# ─── Plant ───────────────────────────────────────────────────────────


def extract_plant_info(patterns: list[PatternMatch], vin: str) -> PlantInfo | None:
    """Plant record, or None without a Plant Country match.

    The plant code itself always comes straight from position 11.
    """
    country: str | None = None
    city: str | None = None
    manufacturer: str | None = None

    for pattern in patterns:
        if not pattern.value:
            continue
        element = pattern.element.lower()
        if element == "plant country":
            country = pattern.value
        elif element == "plant city":
            city = pattern.value
        elif element == "plant company name":
            manufacturer = pattern.value

    if not country:
        return None

    return PlantInfo(
        country=country,
        city=city,
        manufacturer=manufacturer,
        code=vin[PLANT_CODE_INDEX],
    )


# ─── Engine ──────────────────────────────────────────────────────────

_ENGINE_FIELDS: dict[str, str] = {
    "Engine Model": "model",
    "Engine Number of Cylinders": "cylinders",
    "Cylinders": "cylinders",
    "Displacement (L)": "displacement",
    "Engine Brake (hp) From": "power",
    "Engine Power (KW)": "power",
    "Fuel Type - Primary": "fuel",
    "Fuel Type": "fuel",
}


def extract_engine_info(patterns: list[PatternMatch]) -> EngineInfo | None:
    """EngineInfo, or None when no engine element matched."""
    fields: dict[str, str] = {}
    for pattern in patterns:
        if pattern.value and pattern.element in _ENGINE_FIELDS:
            fields[_ENGINE_FIELDS[pattern.element]] = pattern.value

    return EngineInfo(**fields) if fields else None
