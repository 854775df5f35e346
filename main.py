#!/usr/bin/env python3
"""
VIN Decoder — Command Line Entry Point
=======================================

Decodes a single VIN against a vPIC SQLite database.

Usage:
    python main.py decode 1HGCM82633A004352 -d vpic.lite.db
    python main.py decode 1HGCM82633A004352 -p -f json
    VIN_DECODER_DATABASE_PATH=vpic.lite.db python main.py decode 1HGCM82633A004352

Exit status is 0 for a valid decode, 1 otherwise.
"""

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv

from vin_decoder import __version__
from vin_decoder.cache import LRUCache
from vin_decoder.config import DecoderSettings
from vin_decoder.exceptions import VinDecoderError
from vin_decoder.models import DecodeOptions, DecodeResult, Severity
from vin_decoder.pipeline import VinDecoder, normalize_vin
from vin_decoder.storage import SQLiteVinStorage
from vin_decoder.validators import VIN_LENGTH

logger = logging.getLogger(__name__)


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer Helpers ─────────────────────────────────────────


def _print_field(label: str, value) -> None:
    if value is not None and value != "":
        print(f"  {label:<13}{value}")


def _print_vehicle(result: DecodeResult) -> None:
    """Print vehicle, manufacturer, plant and engine sections."""
    components = result.components

    if components.vehicle:
        vehicle = components.vehicle
        print(f"  {_BOLD}{vehicle.year} {vehicle.make} {vehicle.model}{_RESET}")
        _print_field("Series:", vehicle.series)
        _print_field("Trim:", vehicle.trim)
        _print_field("Body:", vehicle.body_style)
        _print_field("Drive:", vehicle.drive_type)
        _print_field("Fuel:", vehicle.fuel_type)
        _print_field("Trans.:", vehicle.transmission)
        _print_field("Doors:", vehicle.doors)

    if components.wmi:
        wmi = components.wmi
        print(f"{'─' * _WIDTH}")
        _print_field("WMI:", wmi.code)
        _print_field("Maker:", wmi.manufacturer)
        _print_field("Country:", wmi.country)
        _print_field("Region:", wmi.region)
        _print_field("Type:", wmi.vehicle_type)

    if components.model_year:
        year = components.model_year
        print(f"  Model Year:  {year.year} {_DIM}({year.source}){_RESET}")

    if components.check_digit:
        check = components.check_digit
        mark = f"{_GREEN}ok{_RESET}" if check.is_valid else f"{_RED}expected {check.expected}{_RESET}"
        print(f"  Check Digit: {check.actual} {_DIM}→{_RESET} {mark}")

    if components.plant:
        plant = components.plant
        where = ", ".join(p for p in (plant.city, plant.country) if p)
        print(f"  Plant:       {where} {_DIM}[{plant.code}]{_RESET}")

    if components.engine:
        engine = components.engine
        print(f"{'─' * _WIDTH}")
        _print_field("Engine:", engine.model)
        _print_field("Cylinders:", engine.cylinders)
        _print_field("Displ. (L):", engine.displacement)
        _print_field("Power:", engine.power)
        _print_field("Engine Fuel:", engine.fuel)


def _print_patterns(result: DecodeResult) -> None:
    if not result.patterns:
        return
    print(f"\n  {_CYAN}{_BOLD}PATTERNS ({len(result.patterns)}){_RESET}")
    for p in result.patterns:
        print(
            f"    {p.element:<30} {p.value or '':<28} "
            f"{_DIM}{p.confidence:.2f}  {p.metadata.raw_pattern}{_RESET}"
        )
    print()


def _print_timings(result: DecodeResult) -> None:
    timings = result.metadata.stage_timings
    if not timings:
        return
    print(f"\n  {_CYAN}{_BOLD}STAGE TIMINGS{_RESET}")
    for stage, ms in timings.items():
        print(f"    {stage:<30} {_DIM}{ms:.2f} ms{_RESET}")
    print()


def _print_errors_group(errors, color: str, label: str) -> None:
    """Print a group of decode errors (errors or warnings)."""
    if not errors:
        return
    print(f"\n  {color}{_BOLD}{label} ({len(errors)}){_RESET}")
    for e in errors:
        print(f"    {color}[{e.code.name}]{_RESET} {_DIM}{e.category.value}{_RESET}")
        print(f"    {e.message}")
        if e.details:
            print(f"      {_DIM}{e.details}{_RESET}")
        print()


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_result(result: DecodeResult) -> int:
    """Pretty-print a decode result with ANSI color codes.

    Returns:
        0 if the decode is valid, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  VIN DECODE REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  VIN:         {result.vin}")
    print(f"  Confidence:  {result.metadata.confidence:.2f}")
    print(f"  Time:        {_DIM}{result.metadata.processing_time:.1f} ms{_RESET}")
    if result.metadata.matched_schema:
        print(f"  Schema:      {result.metadata.matched_schema}")
    print(f"{'─' * _WIDTH}")

    _print_vehicle(result)

    print(f"{'─' * _WIDTH}")
    _print_patterns(result)
    _print_timings(result)

    errors = [e for e in result.errors if e.severity != Severity.WARNING]
    warnings = [e for e in result.errors if e.severity == Severity.WARNING]
    _print_errors_group(errors, _RED, "ERRORS")
    _print_errors_group(warnings, _YELLOW, "WARNINGS")

    print(f"{'=' * _WIDTH}")
    if result.valid:
        print(f"  {_GREEN}{_BOLD}VIN DECODED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}DECODE FAILED  --  {len(errors)} error(s) found{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if result.valid else 1


# ─── CLI ─────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vin-decoder",
        description="Decode Vehicle Identification Numbers against a vPIC database.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    decode = sub.add_parser("decode", help="Decode a single VIN")
    decode.add_argument("vin", help="17-character VIN")
    decode.add_argument("-d", "--database", help="Path to the vPIC SQLite database")
    decode.add_argument(
        "-p", "--patterns", action="store_true", help="Include pattern match details"
    )
    decode.add_argument(
        "-r", "--raw", action="store_true", help="Include raw reference records"
    )
    decode.add_argument(
        "-f", "--format", choices=("pretty", "json"), default="pretty", help="Output format"
    )
    decode.add_argument("-y", "--year", type=int, help="Override the model year")
    decode.add_argument("-v", "--verbose", action="store_true", help="Debug logging and per-stage timings")
    return parser


def _fail(message: str) -> int:
    print(f"{_RED}{_BOLD}error:{_RESET} {message}", file=sys.stderr)
    return 1


def run_decode(args: argparse.Namespace, settings: DecoderSettings) -> int:
    """Decode args.vin and print it. Returns the process exit code."""
    vin = normalize_vin(args.vin)
    if len(vin) != VIN_LENGTH:
        return _fail(f"VIN must be {VIN_LENGTH} characters, got {len(vin)}")

    database = args.database or settings.database_path
    if not database:
        return _fail("no database given (use --database or VIN_DECODER_DATABASE_PATH)")

    try:
        storage = SQLiteVinStorage(database, cache=LRUCache(settings.cache_size))
    except VinDecoderError as e:
        return _fail(str(e))

    options = DecodeOptions(
        include_pattern_details=args.patterns,
        include_raw_data=args.raw,
        model_year=args.year,
        confidence_threshold=settings.confidence_threshold,
        include_diagnostics=args.verbose,
    )

    logger.debug("Decoding %s against %s", vin, database)
    decoder = VinDecoder(storage)
    try:
        result = decoder.decode(vin, options)
    finally:
        decoder.close()

    if args.format == "json":
        print(result.model_dump_json(indent=2, exclude_none=True))
        return 0 if result.valid else 1
    return print_result(result)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = DecoderSettings()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "decode":
        return run_decode(args, settings)
    return 1


if __name__ == "__main__":
    sys.exit(main())
