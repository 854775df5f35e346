"""
Schema/pattern resolution — turns reference rows into ranked PatternMatches.

Flow:
  ┌──────────────┐
  │ WMI + year   │
  └──────┬───────┘
         │  fetch_rows()
  ┌──────▼───────┐
  │ Valid schemas│   ← storage: year window per WMI
  │ Pattern rows │   ← storage: rows for those schemas
  │ Lookup values│   ← storage: one batch per lookup table
  └──────┬───────┘
         │  score_rows()
  ┌──────▼───────┐
  │ Primary      │   ← best-scoring Model row anchors the schema
  │ schema       │
  ├──────────────┤
  │ Confidence   │   ← pattern.calculate_confidence, plant gating
  │ Threshold    │
  │ Rank + dedup │   ← per element: weight, then confidence
  └──────────────┘

Storage failures on schemas/patterns propagate to the caller.  A failed
lookup-table resolution only degrades that table to raw attribute ids.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .models import PatternMatch, PatternMetadata, RawPatternRow
from .pattern import calculate_confidence, is_vis_pattern, pattern_positions
from .storage import LOOKUP_TABLES, VinStorage

logger = logging.getLogger(__name__)

PLANT_THRESHOLD = 0.3
DEFAULT_THRESHOLD = 0.5
PLANT_NO_SCHEMA_FACTOR = 0.5


def _is_plant(element_name: str) -> bool:
    return "plant" in element_name.lower()


def _weight(value: float | None) -> float:
    return value if value is not None else 0.0


def _raw_id(row: RawPatternRow) -> str | None:
    if row.attribute_id is None or row.attribute_id == "":
        return None
    return str(row.attribute_id)


class PatternResolver:
    """Resolves VDS/VIS segments into PatternMatch records for one WMI."""

    def __init__(self, storage: VinStorage):
        self.storage = storage

    def resolve(self, wmi: str, year: int, vds: str, vis: str) -> list[PatternMatch]:
        """Run the full resolution for one VIN."""
        return self.score_rows(self.fetch_rows(wmi, year), vds, vis)

    # ─── Fetch ───────────────────────────────────────────────────────

    def fetch_rows(self, wmi: str, year: int) -> list[RawPatternRow]:
        """Load the rows for every schema valid at (wmi, year), values resolved.

        Each returned row carries a human-readable `value`; attribute_id is
        left as stored.
        """
        schemas = self.storage.get_valid_schemas(wmi, year)
        if not schemas:
            logger.debug("No valid schemas for WMI %s, year %s", wmi, year)
            return []

        rows = self.storage.get_patterns([s.schema_id for s in schemas])
        rows = [r for r in rows if self._is_recognized_table(r.lookup_table)]
        return self._resolve_lookup_values(rows)

    @staticmethod
    def _is_recognized_table(table: str | None) -> bool:
        if not table:
            return True
        return table in LOOKUP_TABLES and "vNCSA" not in table

    def _resolve_lookup_values(self, rows: list[RawPatternRow]) -> list[RawPatternRow]:
        """Attach a human-readable `value` to every row.

        Rows without a lookup table use their raw attribute id.  Ids a table
        doesn't know, and whole tables that fail to resolve, fall back the
        same way.  Row order is preserved.
        """
        ids_by_table: dict[str, list[str]] = {}
        for row in rows:
            raw_id = _raw_id(row)
            if row.lookup_table and raw_id is not None:
                ids_by_table.setdefault(row.lookup_table, []).append(raw_id)

        values_by_table: dict[str, dict[str, str]] = {}
        for table, ids in ids_by_table.items():
            try:
                values_by_table[table] = self.storage.lookup_values(
                    table, list(dict.fromkeys(ids))
                )
            except Exception as e:
                logger.warning("Lookup table %s resolution failed: %s", table, e)
                values_by_table[table] = {}

        resolved: list[RawPatternRow] = []
        for row in rows:
            raw_id = _raw_id(row)
            values = values_by_table.get(row.lookup_table, {}) if row.lookup_table else {}
            value = values.get(raw_id) if raw_id is not None else None
            value = value or raw_id
            resolved.append(row.model_copy(update={"value": value}))
        return resolved

    # ─── Score ───────────────────────────────────────────────────────

    def score_rows(
        self, rows: Sequence[RawPatternRow], vds: str, vis: str
    ) -> list[PatternMatch]:
        """Score, threshold, rank and deduplicate resolved rows."""
        if not rows:
            return []

        # Stable order: heavier elements first, then pattern text.
        ordered = sorted(rows, key=lambda r: (-_weight(r.element_weight), r.pattern))
        full = vds + vis
        primary_schema = self.find_primary_schema(ordered, full)

        matches: list[PatternMatch] = []
        for row in ordered:
            confidence = self._row_confidence(row, full, vis, primary_schema)
            threshold = PLANT_THRESHOLD if _is_plant(row.element_name) else DEFAULT_THRESHOLD
            if confidence > threshold:
                matches.append(self._to_match(row, confidence))

        return self._rank_and_dedupe(matches)

    @staticmethod
    def find_primary_schema(rows: Sequence[RawPatternRow], full: str) -> str | None:
        """Schema of the first highest-confidence Model row, if any."""
        best: RawPatternRow | None = None
        best_score = -1.0
        for row in rows:
            if row.element_name != "Model":
                continue
            score = calculate_confidence(row.pattern, full)
            if score > best_score:
                best, best_score = row, score
        return best.schema_name if best else None

    @staticmethod
    def _row_confidence(
        row: RawPatternRow, full: str, vis: str, primary_schema: str | None
    ) -> float:
        if is_vis_pattern(row.pattern):
            confidence = calculate_confidence(row.pattern, vis[1:2])
        else:
            confidence = calculate_confidence(row.pattern, full)

        if _is_plant(row.element_name):
            if primary_schema is not None:
                return confidence if row.schema_name == primary_schema else 0.0
            return confidence * PLANT_NO_SCHEMA_FACTOR

        return confidence

    @staticmethod
    def _to_match(row: RawPatternRow, confidence: float) -> PatternMatch:
        return PatternMatch(
            element=row.element_name,
            code=row.element_code,
            attribute_id=_raw_id(row),
            value=row.value or None,
            confidence=confidence,
            positions=pattern_positions(row.pattern),
            schema_name=row.schema_name,
            metadata=PatternMetadata(
                lookup_table=row.lookup_table,
                group_name=row.group_name,
                element_weight=row.element_weight,
                pattern_type="VIS" if is_vis_pattern(row.pattern) else "VDS",
                raw_pattern=row.pattern,
            ),
        )

    @staticmethod
    def _rank_and_dedupe(matches: list[PatternMatch]) -> list[PatternMatch]:
        groups: dict[str, list[PatternMatch]] = {}
        for match in matches:
            groups.setdefault(match.element, []).append(match)

        result: list[PatternMatch] = []
        for group in groups.values():
            group.sort(key=lambda m: (-_weight(m.metadata.element_weight), -m.confidence))
            seen: set[tuple[str | None, tuple[int, ...], str]] = set()
            for match in group:
                key = (match.value, tuple(match.positions), match.schema_name)
                if key in seen:
                    continue
                seen.add(key)
                result.append(match)
        return result
