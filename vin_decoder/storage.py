"""
Reference-data storage for the decoder.

The decoder only ever talks to the VinStorage protocol.  Two backends ship:

  - MemoryVinStorage — dict-backed, for tests and embedding small datasets
  - SQLiteVinStorage — read-only SQLAlchemy access to a vPIC SQLite export,
                       memoizing queries in an injected LRUCache

Backends are chosen and wired by the caller (see main.py / api.py); nothing
here auto-detects an environment.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .cache import LRUCache
from .exceptions import DatabaseNotFoundError, LookupTableError, StorageError
from .models import RawPatternRow, SchemaRecord, WMIResult

logger = logging.getLogger(__name__)


# vPIC lookup tables whose Id -> Name mapping we trust for attribute values.
LOOKUP_TABLES: frozenset[str] = frozenset({
    "DriveType", "EngineModel", "EngineConfiguration", "FuelType",
    "Transmission", "BodyStyle", "GrossVehicleWeightRating",
    "GrossVehicleWeightRatingTo", "GrossVehicleWeightRatingFrom",
    "ChargerLevel", "ElectrificationLevel", "EVDriveUnit", "BatteryType",
    "Make", "Model", "Series", "Trim", "Turbo", "DaytimeRunningLight",
    "Plant", "Country", "DestinationMarket", "Conversion",
})

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ─── Protocol ────────────────────────────────────────────────────────


@runtime_checkable
class VinStorage(Protocol):
    """What the decoder needs from a reference database."""

    def get_wmi(self, code: str) -> WMIResult | None: ...

    def get_valid_schemas(self, wmi: str, year: int) -> list[SchemaRecord]: ...

    def get_patterns(self, schema_ids: Sequence[int]) -> list[RawPatternRow]: ...

    def lookup_values(self, table: str, ids: Sequence[str]) -> dict[str, str]: ...


# ─── In-Memory Backend ───────────────────────────────────────────────


class MemoryVinStorage:
    """Dict-backed VinStorage."""

    def __init__(self) -> None:
        self._wmis: dict[str, WMIResult] = {}
        self._schemas: dict[str, list[tuple[SchemaRecord, int, int | None]]] = {}
        self._patterns: dict[int, list[RawPatternRow]] = {}
        self._lookups: dict[str, dict[str, str]] = {}

    # ── Seeding ─────────────────────────────────────────────────────

    def add_wmi(self, wmi: WMIResult) -> None:
        self._wmis[wmi.code] = wmi

    def add_schema(
        self,
        wmi: str,
        schema: SchemaRecord,
        year_from: int,
        year_to: int | None = None,
    ) -> None:
        self._schemas.setdefault(wmi, []).append((schema, year_from, year_to))

    def add_patterns(self, schema_id: int, rows: Iterable[RawPatternRow]) -> None:
        self._patterns.setdefault(schema_id, []).extend(rows)

    def add_lookup(self, table: str, values: Mapping[str, str]) -> None:
        self._lookups.setdefault(table, {}).update(values)

    # ── VinStorage ──────────────────────────────────────────────────

    def get_wmi(self, code: str) -> WMIResult | None:
        return self._wmis.get(code)

    def get_valid_schemas(self, wmi: str, year: int) -> list[SchemaRecord]:
        return [
            schema
            for schema, year_from, year_to in self._schemas.get(wmi, [])
            if year >= year_from and (year_to is None or year <= year_to)
        ]

    def get_patterns(self, schema_ids: Sequence[int]) -> list[RawPatternRow]:
        rows: list[RawPatternRow] = []
        for schema_id in schema_ids:
            rows.extend(self._patterns.get(schema_id, []))
        return rows

    def lookup_values(self, table: str, ids: Sequence[str]) -> dict[str, str]:
        if table not in self._lookups:
            raise StorageError(f"no such table: {table}", {"table": table})
        values = self._lookups[table]
        return {i: values[i] for i in ids if i in values}


# ─── SQLite (vPIC) Backend ───────────────────────────────────────────

_WMI_SQL = """
WITH WmiMakes AS (
    SELECT
        w.Wmi AS code,
        m.Name AS manufacturer,
        ma.Name AS make,
        c.Name AS country,
        vt.Name AS vehicle_type,
        CASE
            WHEN c.Name IN ('UNITED STATES', 'CANADA', 'MEXICO') THEN 'NORTH AMERICA'
            WHEN c.Name IN ('JAPAN', 'KOREA', 'CHINA', 'TAIWAN') THEN 'ASIA'
            WHEN c.Name IN ('GERMANY', 'UNITED KINGDOM', 'ITALY', 'FRANCE', 'SWEDEN') THEN 'EUROPE'
            ELSE 'OTHER'
        END AS region,
        ROW_NUMBER() OVER (
            PARTITION BY w.Wmi
            ORDER BY
                CASE WHEN w.Wmi IN ('1C6', '2C6', '3C6') AND ma.Name = 'RAM' THEN 1 ELSE 2 END,
                w.CreatedOn DESC
        ) AS rn
    FROM Wmi w
    LEFT JOIN Manufacturer m ON w.ManufacturerId = m.Id
    LEFT JOIN Wmi_Make wm ON w.Id = wm.WmiId
    LEFT JOIN Make ma ON wm.MakeId = ma.Id
    LEFT JOIN Country c ON w.CountryId = c.Id
    LEFT JOIN VehicleType vt ON w.VehicleTypeId = vt.Id
    WHERE w.Wmi = :wmi
)
SELECT code, manufacturer, make, country, vehicle_type, region
FROM WmiMakes
WHERE rn = 1
"""

_SCHEMAS_SQL = """
SELECT DISTINCT vs.Id AS schema_id, vs.Name AS schema_name
FROM Wmi w
JOIN Wmi_VinSchema wvs ON w.Id = wvs.WmiId
JOIN VinSchema vs ON wvs.VinSchemaId = vs.Id
WHERE w.Wmi = :wmi
  AND :year >= wvs.YearFrom
  AND (wvs.YearTo IS NULL OR :year <= wvs.YearTo)
ORDER BY vs.Id
"""

# Second half synthesizes 'Make' rows from Model patterns via Make_Model, so
# a Model match also yields its make.
_PATTERNS_SQL = """
SELECT DISTINCT
    p.Keys AS pattern,
    e.Id AS element_id,
    e.Name AS element_name,
    e.Code AS element_code,
    e.GroupName AS group_name,
    e.Description AS description,
    e.LookupTable AS lookup_table,
    p.AttributeId AS attribute_id,
    vs.Name AS schema_name,
    wvs.YearFrom AS year_from,
    wvs.YearTo AS year_to,
    e.weight AS element_weight
FROM Pattern p
JOIN Element e ON p.ElementId = e.Id
JOIN VinSchema vs ON p.VinSchemaId = vs.Id
JOIN Wmi_VinSchema wvs ON p.VinSchemaId = wvs.VinSchemaId
WHERE p.VinSchemaId IN :schema_ids

UNION ALL

SELECT
    p.Keys AS pattern,
    (SELECT Id FROM Element WHERE Name = 'Make' LIMIT 1) AS element_id,
    'Make' AS element_name,
    'MK' AS element_code,
    'Vehicle' AS group_name,
    NULL AS description,
    NULL AS lookup_table,
    m.Name AS attribute_id,
    vs.Name AS schema_name,
    wvs.YearFrom AS year_from,
    wvs.YearTo AS year_to,
    (SELECT weight FROM Element WHERE Name = 'Make' LIMIT 1) AS element_weight
FROM Pattern p
JOIN Element e ON p.ElementId = e.Id
JOIN VinSchema vs ON p.VinSchemaId = vs.Id
JOIN Wmi_VinSchema wvs ON p.VinSchemaId = wvs.VinSchemaId
JOIN Make_Model mm ON mm.ModelId = CAST(p.AttributeId AS INTEGER)
JOIN Make m ON m.Id = mm.MakeId
WHERE e.Name = 'Model'
  AND p.VinSchemaId IN :model_schema_ids

ORDER BY element_id, pattern
"""


class SQLiteVinStorage:
    """Read-only VinStorage over a vPIC SQLite database.

    Usage:
        storage = SQLiteVinStorage("vpic.lite.db", cache=LRUCache(2048))
        decoder = VinDecoder(storage)
    """

    def __init__(
        self,
        database_path: str | Path,
        cache: LRUCache | None = None,
        read_only: bool = True,
    ):
        path = Path(database_path)
        if not path.is_file():
            raise DatabaseNotFoundError(
                f"Database file not found: {path}", {"path": str(path)}
            )

        self.database_path = path
        self.cache = cache if cache is not None else LRUCache()

        if read_only:
            url = f"sqlite:///file:{path.resolve()}?mode=ro&uri=true"
        else:
            url = f"sqlite:///{path.resolve()}"
        self._engine: Engine = create_engine(url)
        logger.debug("Opened vPIC database at %s", path)

    # ── Query plumbing ──────────────────────────────────────────────

    def _query(self, sql: str, params: dict[str, Any], expanding: Sequence[str] = ()) -> list[dict[str, Any]]:
        key = (sql, tuple(sorted((k, _freeze(v)) for k, v in params.items())))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        statement = text(sql)
        if expanding:
            statement = statement.bindparams(
                *(bindparam(name, expanding=True) for name in expanding)
            )

        try:
            with self._engine.connect() as conn:
                rows = [dict(row) for row in conn.execute(statement, params).mappings()]
        except SQLAlchemyError as e:
            logger.error("vPIC query failed: %s", e)
            raise StorageError(str(e), {"params": params}) from e

        logger.debug("vPIC query returned %d row(s)", len(rows))
        self.cache.set(key, rows)
        return rows

    # ── VinStorage ──────────────────────────────────────────────────

    def get_wmi(self, code: str) -> WMIResult | None:
        rows = self._query(_WMI_SQL, {"wmi": code})
        return WMIResult(**rows[0]) if rows else None

    def get_valid_schemas(self, wmi: str, year: int) -> list[SchemaRecord]:
        rows = self._query(_SCHEMAS_SQL, {"wmi": wmi, "year": year})
        return [SchemaRecord(**row) for row in rows]

    def get_patterns(self, schema_ids: Sequence[int]) -> list[RawPatternRow]:
        if not schema_ids:
            return []
        ids = list(schema_ids)
        rows = self._query(
            _PATTERNS_SQL,
            {"schema_ids": ids, "model_schema_ids": ids},
            expanding=("schema_ids", "model_schema_ids"),
        )
        return [RawPatternRow(**row) for row in rows]

    def lookup_values(self, table: str, ids: Sequence[str]) -> dict[str, str]:
        if table not in LOOKUP_TABLES or not _IDENTIFIER.match(table):
            raise LookupTableError(table)
        if not ids:
            return {}

        # Table name is whitelisted above; only values are bound.
        sql = f"SELECT CAST(Id AS TEXT) AS id, Name AS name FROM {table} WHERE CAST(Id AS TEXT) IN :ids"
        rows = self._query(sql, {"ids": list(ids)}, expanding=("ids",))
        return {row["id"]: row["name"] for row in rows}

    def close(self) -> None:
        self._engine.dispose()
        self.cache.clear()


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value
