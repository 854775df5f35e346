"""
Main decode pipeline — sequences every stage into a DecodeResult.

Flow:
  ┌───────────┐
  │  VIN      │
  └─────┬─────┘
  ┌─────▼─────┐
  │ Structure │   ← length + alphabet              (terminal on error)
  ├───────────┤
  │ Check dig.│   ← recorded; mismatch = warning
  ├───────────┤
  │ Model yr. │   ← override or position 10      (terminal if unknown)
  ├───────────┤
  │ WMI       │   ← storage lookup               (terminal if missing)
  ├───────────┤
  │ Patterns  │   ← resolver                     (terminal if none / failure)
  ├───────────┤
  │ Assembly  │   ← vehicle / plant / engine, confidence check
  └─────┬─────┘
  ┌─────▼─────┐
  │  Result   │   ← valid iff every error is a warning
  └───────────┘

Design principles:
  - Every terminal condition returns the partially-built result, never raises.
  - Nothing escapes decode(): unexpected failures become DATABASE errors.
  - Processing time is recorded on every path.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

from .enrichment import extract_engine_info, extract_plant_info, extract_vehicle_info
from .models import (
    DatabaseDecodeError,
    DecodeOptions,
    DecodeResult,
    ErrorCode,
    LookupDecodeError,
    PatternDecodeError,
    PatternMatch,
    Severity,
    VinSection,
)
from .resolver import PatternResolver
from .storage import VinStorage
from .validators import (
    check_digit_error,
    determine_model_year,
    extract_wmi,
    model_year_error,
    model_year_override,
    validate_check_digit,
    validate_structure,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


class VinDecoder:
    """Decodes VINs against an injected reference storage.

    Usage:
        decoder = VinDecoder(storage)
        result = decoder.decode("1HGCM82633A004352")
        if result.valid:
            print(result.components.vehicle.model)

    The decoder holds no per-VIN state, so one instance can serve
    concurrent callers as long as the storage can.
    """

    def __init__(self, storage: VinStorage, default_options: DecodeOptions | None = None):
        self.storage = storage
        self.resolver = PatternResolver(storage)
        self.default_options = default_options or DecodeOptions()

    def decode(self, vin: str, options: DecodeOptions | None = None) -> DecodeResult:
        """Decode one VIN.

        The VIN is used exactly as given; callers trim and uppercase it
        first (see normalize_vin).  Fields set on `options` override the
        decoder defaults; unset fields keep them.

        Returns:
            DecodeResult; check `valid` and `errors` to see how far it got.
        """
        options = self.merge_options(options)
        started = time.perf_counter()

        result = DecodeResult(vin=vin)
        result.metadata.schema_version = SCHEMA_VERSION
        if options.include_raw_data:
            result.metadata.raw_records = []
        timings: dict[str, float] | None = {} if options.include_diagnostics else None

        try:
            self._run(vin, options, result, timings)
        except Exception as e:
            logger.exception("Unexpected error decoding %s", vin)
            result.errors.append(
                DatabaseDecodeError(
                    code=ErrorCode.QUERY_ERROR,
                    severity=Severity.ERROR,
                    message="Unexpected error during decoding",
                    details=str(e) or type(e).__name__,
                )
            )

        # ── Finalize ────────────────────────────────────────────────
        result.valid = all(e.severity == Severity.WARNING for e in result.errors)
        result.metadata.processing_time = (time.perf_counter() - started) * 1000
        result.metadata.stage_timings = timings
        return result

    def merge_options(self, options: DecodeOptions | None) -> DecodeOptions:
        """Layer the fields explicitly set on `options` over the decoder defaults."""
        if options is None:
            return self.default_options
        return self.default_options.model_copy(
            update=options.model_dump(exclude_unset=True)
        )

    def close(self) -> None:
        """Release the storage backend, if it holds resources."""
        close = getattr(self.storage, "close", None)
        if callable(close):
            close()

    # ─── Stages ─────────────────────────────────────────────────────

    def _run(
        self,
        vin: str,
        options: DecodeOptions,
        result: DecodeResult,
        timings: dict[str, float] | None,
    ) -> None:
        components = result.components

        # ── Step 1: Structure ───────────────────────────────────────
        with _stage("structure", timings):
            structure_errors = validate_structure(vin)
        if structure_errors:
            result.errors.extend(structure_errors)
            return

        # ── Step 2: Check digit (never terminal) ───────────────────
        with _stage("check_digit", timings):
            check_digit = validate_check_digit(vin)
        components.check_digit = check_digit
        if not check_digit.is_valid:
            result.errors.append(check_digit_error(check_digit))

        # ── Step 3: Model year ──────────────────────────────────────
        with _stage("model_year", timings):
            if options.model_year is not None:
                model_year = model_year_override(options.model_year)
            else:
                model_year = determine_model_year(vin)
        if model_year is None:
            result.errors.append(model_year_error())
            return
        components.model_year = model_year

        # ── Step 4: WMI ─────────────────────────────────────────────
        wmi_code = extract_wmi(vin)
        with _stage("wmi", timings):
            wmi = self.storage.get_wmi(wmi_code)
        if wmi is None:
            result.errors.append(
                LookupDecodeError(
                    code=ErrorCode.WMI_NOT_FOUND,
                    severity=Severity.ERROR,
                    message=f"WMI '{wmi_code}' not found in database",
                    positions=[1, 2, 3],
                    search_key=wmi_code,
                    search_type="WMI",
                )
            )
            return
        components.wmi = wmi
        if result.metadata.raw_records is not None:
            result.metadata.raw_records.append({"record": "wmi", **wmi.model_dump()})

        # ── Step 5: Pattern resolution ──────────────────────────────
        vds = vin[3:9]
        vis = vin[9:17]
        try:
            with _stage("patterns", timings):
                rows = self.resolver.fetch_rows(wmi_code, model_year.year)
                patterns = self.resolver.score_rows(rows, vds, vis)
        except Exception as e:
            logger.error("Pattern resolution failed for %s: %s", vin, e)
            result.errors.append(
                DatabaseDecodeError(
                    code=ErrorCode.QUERY_ERROR,
                    severity=Severity.ERROR,
                    message="Error matching patterns",
                    details=str(e) or type(e).__name__,
                )
            )
            return

        if result.metadata.raw_records is not None:
            result.metadata.raw_records.extend(
                {"record": "pattern", **row.model_dump()} for row in rows
            )

        if not patterns:
            result.errors.append(
                PatternDecodeError(
                    code=ErrorCode.NO_PATTERNS_FOUND,
                    severity=Severity.ERROR,
                    message="No matching patterns found",
                )
            )
            return

        # ── Step 6: Assembly ────────────────────────────────────────
        with _stage("assembly", timings):
            vds_patterns = [p for p in patterns if p.metadata.pattern_type == "VDS"]
            vis_patterns = [p for p in patterns if p.metadata.pattern_type == "VIS"]
            if vds_patterns:
                components.vds = VinSection(raw=vds, patterns=vds_patterns)
            if vis_patterns:
                components.vis = VinSection(raw=vis, patterns=vis_patterns)

            components.vehicle = extract_vehicle_info(patterns, wmi, model_year)
            components.plant = extract_plant_info(patterns, vin)
            components.engine = extract_engine_info(patterns)

        if options.include_pattern_details:
            result.patterns = patterns

        confidence = sum(p.confidence for p in patterns) / len(patterns)
        result.metadata.confidence = confidence
        result.metadata.matched_schema = _matched_schema(patterns)
        result.metadata.total_patterns = len(patterns)

        if confidence < options.confidence_threshold:
            result.errors.append(
                PatternDecodeError(
                    code=ErrorCode.LOW_CONFIDENCE_PATTERNS,
                    severity=Severity.WARNING,
                    message=(
                        f"Low confidence in pattern matches: {confidence:.2f} "
                        f"< {options.confidence_threshold:.2f}"
                    ),
                    confidence=confidence,
                )
            )

        logger.debug(
            "Decoded %s: %d pattern(s), confidence %.3f", vin, len(patterns), confidence
        )


# ─── Helpers ────────────────────────────────────────────────────────


@contextmanager
def _stage(name: str, timings: dict[str, float] | None) -> Iterator[None]:
    if timings is None:
        yield
        return
    started = time.perf_counter()
    try:
        yield
    finally:
        timings[name] = (time.perf_counter() - started) * 1000


def _matched_schema(patterns: list[PatternMatch]) -> str | None:
    models = [p for p in patterns if p.element == "Model"]
    if not models:
        return None
    return max(models, key=lambda p: p.confidence).schema_name


def normalize_vin(raw: str) -> str:
    """Trim and uppercase a VIN at the caller boundary."""
    return raw.strip().upper()


def decode_vin(
    vin: str, storage: VinStorage, options: DecodeOptions | None = None
) -> DecodeResult:
    """One-shot helper: decode a VIN with a throwaway VinDecoder."""
    return VinDecoder(storage).decode(vin, options)
