"""
Positional VIN algorithms — pure functions over the VIN string.

Everything here is deterministic and database-free:
  - Structural validation (length + alphabet)
  - Check digit (49 CFR 565.15 transliteration and weights)
  - Model-year derivation from position 10
  - WMI extraction (3 characters, or 6 for small manufacturers)

Each function is independently testable and never raises on bad input;
problems come back as DecodeError models.
"""

from __future__ import annotations

import re
from datetime import date

from .models import (
    CheckDigitResult,
    DecodeError,
    ErrorCode,
    ModelYearResult,
    Severity,
    StructureDecodeError,
    ValidationDecodeError,
)


# ─── Constants ───────────────────────────────────────────────────────

VIN_LENGTH = 17
CHECK_DIGIT_INDEX = 8
MODEL_YEAR_INDEX = 9
PLANT_CODE_INDEX = 10

_VIN_CHAR = re.compile(r"[0-9A-HJ-NPR-Z]")
_CHECK_DIGIT_CHAR = re.compile(r"[0-9X]")

CHECK_DIGIT_WEIGHTS: tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)

TRANSLITERATION: dict[str, int] = {
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
}

# Position-10 year codes in cycle order.  I, O, Q, U, Z and 0 are never used.
_YEAR_CODES = "ABCDEFGHJKLMNPRSTVWXY123456789"
_FIRST_CYCLE_START = 1980
_CYCLE_LENGTH = 30


def _build_year_table() -> dict[str, int]:
    """Map each year code to its most recent cycle.

    Cycle 1 covers 1980-2009 and cycle 2 repeats the same codes for
    2010-2039; later cycles overwrite earlier ones, and
    determine_model_year() steps back a cycle for future years.
    """
    table: dict[str, int] = {}
    for cycle in range(2):
        start = _FIRST_CYCLE_START + cycle * _CYCLE_LENGTH
        for offset, code in enumerate(_YEAR_CODES):
            table[code] = start + offset
    return table


YEAR_TABLE: dict[str, int] = _build_year_table()


# ─── Structure ───────────────────────────────────────────────────────


def validate_structure(vin: str) -> list[DecodeError]:
    """Check length and per-position alphabet.

    A wrong length short-circuits: character positions are meaningless if
    the VIN isn't 17 long.  Otherwise every bad character is collected into
    a single error so the caller sees all of them at once.
    """
    if len(vin) != VIN_LENGTH:
        return [
            StructureDecodeError(
                code=ErrorCode.INVALID_LENGTH,
                severity=Severity.ERROR,
                message=f"Invalid VIN length: expected {VIN_LENGTH}, got {len(vin)}",
            )
        ]

    invalid: list[tuple[str, int]] = []
    for index, char in enumerate(vin):
        allowed = _CHECK_DIGIT_CHAR if index == CHECK_DIGIT_INDEX else _VIN_CHAR
        if not allowed.fullmatch(char):
            invalid.append((char, index + 1))

    if not invalid:
        return []

    return [
        StructureDecodeError(
            code=ErrorCode.INVALID_CHARACTERS,
            severity=Severity.ERROR,
            message="Invalid characters: "
            + ", ".join(f"{char} at position {pos}" for char, pos in invalid),
            positions=[pos for _, pos in invalid],
        )
    ]


# ─── Check Digit ─────────────────────────────────────────────────────


def _transliterate(char: str) -> int:
    if char.isdigit():
        return int(char)
    return TRANSLITERATION.get(char, 0)


def validate_check_digit(vin: str) -> CheckDigitResult:
    """Recompute position 9 from the other sixteen characters."""
    total = sum(
        _transliterate(char) * weight
        for char, weight in zip(vin, CHECK_DIGIT_WEIGHTS)
    )
    remainder = total % 11
    expected = "X" if remainder == 10 else str(remainder)
    actual = vin[CHECK_DIGIT_INDEX]

    return CheckDigitResult(
        position=CHECK_DIGIT_INDEX + 1,
        actual=actual,
        expected=expected,
        is_valid=actual == expected,
    )


def check_digit_error(result: CheckDigitResult) -> ValidationDecodeError:
    """Warning for a check-digit mismatch.

    Only a warning: grey-market imports, kit cars and decorative plates
    routinely carry bad check digits, and the rest of the VIN still decodes.
    """
    return ValidationDecodeError(
        code=ErrorCode.INVALID_CHECK_DIGIT,
        severity=Severity.WARNING,
        message=(
            f"Invalid check digit: position {result.position} is "
            f"'{result.actual}', expected '{result.expected}'"
        ),
        positions=[result.position],
        expected=result.expected,
        actual=result.actual,
    )


# ─── Model Year ──────────────────────────────────────────────────────


def determine_model_year(
    vin: str, current_year: int | None = None
) -> ModelYearResult | None:
    """Derive the model year from position 10.

    The single year code repeats every 30 years, so it is ambiguous.  We
    take the latest cycle and step back one cycle if that lands more than
    a year in the future.

    Returns None when position 10 isn't a year code (U, Z, 0, ...).
    """
    if len(vin) <= MODEL_YEAR_INDEX:
        return None

    year = YEAR_TABLE.get(vin[MODEL_YEAR_INDEX].upper())
    if year is None:
        return None

    if current_year is None:
        current_year = date.today().year
    if year > current_year + 1:
        year -= _CYCLE_LENGTH

    return ModelYearResult(year=year, source="position", confidence=1.0)


def model_year_override(year: int) -> ModelYearResult:
    return ModelYearResult(year=year, source="override", confidence=1.0)


def model_year_error() -> ValidationDecodeError:
    return ValidationDecodeError(
        code=ErrorCode.INVALID_MODEL_YEAR,
        severity=Severity.ERROR,
        message="Could not determine model year",
        positions=[MODEL_YEAR_INDEX + 1],
    )


# ─── WMI ─────────────────────────────────────────────────────────────


def extract_wmi(vin: str) -> str:
    """Return the 3-character WMI, or the 6-character extended form.

    Manufacturers building fewer than 1,000 vehicles a year share a WMI
    ending in '9'; positions 12-14 then complete their identifier.
    """
    base = vin[:3]
    if len(base) == 3 and base[2] == "9" and len(vin) >= 14:
        return base + vin[11:14]
    return base
