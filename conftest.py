"""Pytest configuration — project root on sys.path, plus shared reference data.

Two flavours of the same small Honda Accord dataset:
  - honda_storage: MemoryVinStorage, for decoder / resolver / API tests
  - vpic_db:       a vPIC-shaped SQLite file, for SQLiteVinStorage and CLI tests
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

sys.path.insert(0, str(Path(__file__).parent))

from vin_decoder.models import RawPatternRow, SchemaRecord, WMIResult  # noqa: E402
from vin_decoder.pipeline import VinDecoder  # noqa: E402
from vin_decoder.storage import MemoryVinStorage  # noqa: E402

HONDA_VIN = "1HGCM82633A004352"
HONDA_SCHEMA = "Honda Accord 2003-2007"


# ─── In-memory reference data ────────────────────────────────────────


def _row(
    pattern: str,
    element: str,
    attribute_id: str,
    weight: float,
    lookup_table: str | None = None,
) -> RawPatternRow:
    return RawPatternRow(
        pattern=pattern,
        element_name=element,
        element_code=element.replace(" ", ""),
        lookup_table=lookup_table,
        attribute_id=attribute_id,
        schema_name=HONDA_SCHEMA,
        year_from=2003,
        year_to=2007,
        element_weight=weight,
    )


HONDA_ROWS = [
    _row("CM8*", "Model", "1861", 100, "Model"),
    _row("CN1*", "Model", "1862", 100, "Model"),
    _row("CM82*", "Body Class", "3", 70, "BodyStyle"),
    _row("CM8*", "Drive Type", "1", 50, "DriveType"),
    _row("CM826*", "Displacement (L)", "3.0", 40),
    _row("CM826*", "Engine Number of Cylinders", "6", 40),
    _row("*****|*A", "Plant Country", "6", 10, "Country"),
    _row("*****|*A", "Plant City", "MARYSVILLE", 10),
]


def build_honda_storage() -> MemoryVinStorage:
    storage = MemoryVinStorage()
    storage.add_wmi(
        WMIResult(
            code="1HG",
            manufacturer="AMERICAN HONDA MOTOR CO., INC.",
            make="HONDA",
            country="UNITED STATES",
            vehicle_type="Passenger Car",
            region="NORTH AMERICA",
        )
    )
    storage.add_schema("1HG", SchemaRecord(schema_id=100, schema_name=HONDA_SCHEMA), 2003, 2007)
    storage.add_patterns(100, HONDA_ROWS)
    storage.add_lookup("Model", {"1861": "Accord", "1862": "Civic"})
    storage.add_lookup("BodyStyle", {"3": "Sedan/Saloon"})
    storage.add_lookup("DriveType", {"1": "FWD/Front-Wheel Drive"})
    storage.add_lookup("Country", {"6": "UNITED STATES"})
    return storage


@pytest.fixture
def honda_storage() -> MemoryVinStorage:
    return build_honda_storage()


@pytest.fixture(scope="session")
def shared_honda_storage() -> MemoryVinStorage:
    """One instance for module-scoped consumers (API tests). Don't mutate it."""
    return build_honda_storage()


@pytest.fixture
def decoder(honda_storage: MemoryVinStorage) -> VinDecoder:
    return VinDecoder(honda_storage)


# ─── vPIC-shaped SQLite database ─────────────────────────────────────

_VPIC_DDL = [
    "CREATE TABLE Manufacturer (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE Make (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE Model (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE Country (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE VehicleType (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE BodyStyle (Id INTEGER PRIMARY KEY, Name TEXT)",
    "CREATE TABLE DriveType (Id INTEGER PRIMARY KEY, Name TEXT)",
    """CREATE TABLE Wmi (
        Id INTEGER PRIMARY KEY, Wmi TEXT, ManufacturerId INTEGER,
        CountryId INTEGER, VehicleTypeId INTEGER, CreatedOn TEXT)""",
    "CREATE TABLE Wmi_Make (WmiId INTEGER, MakeId INTEGER)",
    "CREATE TABLE VinSchema (Id INTEGER PRIMARY KEY, Name TEXT)",
    """CREATE TABLE Wmi_VinSchema (
        WmiId INTEGER, VinSchemaId INTEGER, YearFrom INTEGER, YearTo INTEGER)""",
    """CREATE TABLE Element (
        Id INTEGER PRIMARY KEY, Name TEXT, Code TEXT, GroupName TEXT,
        Description TEXT, LookupTable TEXT, weight INTEGER)""",
    """CREATE TABLE Pattern (
        Id INTEGER PRIMARY KEY, VinSchemaId INTEGER, Keys TEXT,
        ElementId INTEGER, AttributeId TEXT)""",
    "CREATE TABLE Make_Model (MakeId INTEGER, ModelId INTEGER)",
]

_VPIC_SEED = [
    "INSERT INTO Manufacturer VALUES (988, 'AMERICAN HONDA MOTOR CO., INC.')",
    "INSERT INTO Make VALUES (474, 'HONDA')",
    "INSERT INTO Model VALUES (1861, 'Accord'), (1862, 'Civic')",
    "INSERT INTO Country VALUES (6, 'UNITED STATES')",
    "INSERT INTO VehicleType VALUES (2, 'Passenger Car')",
    "INSERT INTO BodyStyle VALUES (3, 'Sedan/Saloon')",
    "INSERT INTO DriveType VALUES (1, 'FWD/Front-Wheel Drive')",
    "INSERT INTO Wmi VALUES (1, '1HG', 988, 6, 2, '2015-01-01')",
    "INSERT INTO Wmi_Make VALUES (1, 474)",
    f"INSERT INTO VinSchema VALUES (100, '{HONDA_SCHEMA}')",
    "INSERT INTO Wmi_VinSchema VALUES (1, 100, 2003, 2007)",
    """INSERT INTO Element VALUES
        (28, 'Model', 'Model', 'General', NULL, 'Model', 100),
        (26, 'Make', 'Make', 'General', NULL, 'Make', 90),
        (5, 'Body Class', 'BodyClass', 'Exterior / Body', NULL, 'BodyStyle', 70),
        (15, 'Drive Type', 'DriveType', 'Mechanical / Drivetrain', NULL, 'DriveType', 50),
        (13, 'Displacement (L)', 'DisplacementL', 'Engine', NULL, NULL, 40),
        (9, 'Engine Number of Cylinders', 'EngineCylinders', 'Engine', NULL, NULL, 40),
        (75, 'Plant Country', 'PlantCountry', 'Plant', NULL, 'Country', 10),
        (31, 'Plant City', 'PlantCity', 'Plant', NULL, NULL, 10)""",
    """INSERT INTO Pattern VALUES
        (1, 100, 'CM8*', 28, '1861'),
        (2, 100, 'CN1*', 28, '1862'),
        (3, 100, 'CM82*', 5, '3'),
        (4, 100, 'CM8*', 15, '1'),
        (5, 100, 'CM826*', 13, '3.0'),
        (6, 100, 'CM826*', 9, '6'),
        (7, 100, '*****|*A', 75, '6'),
        (8, 100, '*****|*A', 31, 'MARYSVILLE')""",
    "INSERT INTO Make_Model VALUES (474, 1861), (474, 1862)",
]


def build_vpic_db(path: Path) -> Path:
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        for statement in _VPIC_DDL + _VPIC_SEED:
            conn.execute(text(statement))
    engine.dispose()
    return path


@pytest.fixture
def vpic_db(tmp_path: Path) -> Path:
    return build_vpic_db(tmp_path / "vpic.lite.db")
