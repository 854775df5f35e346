"""
Positional pattern matching and confidence scoring.

vPIC pattern strings describe which VIN characters select an attribute:

    "CM8*"        literal C, M, 8, then anything
    "[A-E]2*"     one of A..E, literal 2, then anything
    "*****|*A"    plant-code pattern: the VIS character at position 11 is 'A'

Matching is pure string work — no database, no state.  Scoring rewards
specificity: literal matches beat character classes, which beat wildcards.
"""

from __future__ import annotations

# Per-unit weights for calculate_confidence().  Empirically tuned; changing
# them changes which schema wins.
EXACT_WEIGHT = 1.0
LIST_CLASS_WEIGHT = 0.8
RANGE_CLASS_WEIGHT = 0.7
WILDCARD_WEIGHT = 0.5

PLANT_EXACT_CONFIDENCE = 1.0
PLANT_WILDCARD_CONFIDENCE = 0.8

VDS_START = 3
VIS_START = 9

_PLANT_BASE_LENGTH = 5


# ─── Pattern Anatomy ─────────────────────────────────────────────────


def split_pattern(pattern: str) -> tuple[str, str | None]:
    """Split 'base|metadata' into its two halves."""
    base, sep, metadata = pattern.partition("|")
    return base, (metadata if sep else None)


def is_vis_pattern(pattern: str) -> bool:
    return "|" in pattern


def _is_plant_pattern(base: str, metadata: str | None) -> bool:
    return metadata is not None and len(base) == _PLANT_BASE_LENGTH


def _plant_code(metadata: str) -> str | None:
    return metadata[1] if len(metadata) > 1 else None


def char_in_class(char: str, char_class: str) -> bool:
    """Test one character against '[ABC]', '[A-E]' or mixes like '[1-46]'."""
    if not (char_class.startswith("[") and char_class.endswith("]")):
        return char == char_class or char_class == "*"

    content = char_class[1:-1]
    i = 0
    while i < len(content):
        if i + 2 < len(content) and content[i + 1] == "-":
            if ord(content[i]) <= ord(char) <= ord(content[i + 2]):
                return True
            i += 3
        else:
            if char == content[i]:
                return True
            i += 1
    return False


def pattern_positions(pattern: str) -> list[int]:
    """VIN indices (0-indexed) covered by a pattern's base characters."""
    base, _ = split_pattern(pattern)
    start = VIS_START if is_vis_pattern(pattern) else VDS_START
    return [start + i for i in range(len(base))]


# ─── Matching ────────────────────────────────────────────────────────


def matches_pattern(input: str, pattern: str) -> bool:
    """Match input against a full pattern, including '|metadata' plant forms."""
    if not input or not pattern:
        return False

    base, metadata = split_pattern(pattern)

    if _is_plant_pattern(base, metadata):
        expected = _plant_code(metadata)
        return expected == "*" or input[0] == expected

    return matches_simple_pattern(input, base)


def matches_simple_pattern(input: str, pattern: str) -> bool:
    """Walk pattern and input in lock-step.

    A trailing '*' accepts whatever input remains; any other '*' stands for
    exactly one character.  The match holds once the whole pattern has been
    consumed, even if input is left over.
    """
    p = 0
    i = 0

    while p < len(pattern) and i < len(input):
        token = pattern[p]
        char = input[i]

        if token == "[":
            close = pattern.find("]", p)
            if close == -1:
                return False
            if not char_in_class(char, pattern[p:close + 1]):
                return False
            p = close + 1
            i += 1
            continue

        if token == "*":
            if p == len(pattern) - 1:
                return True
            p += 1
            i += 1
            continue

        if char != token:
            return False
        p += 1
        i += 1

    return p >= len(pattern) or (p == len(pattern) - 1 and pattern[p] == "*")


# ─── Scoring ─────────────────────────────────────────────────────────


def calculate_confidence(pattern: str, input: str) -> float:
    """Score how specifically a pattern matches input, in [0, 1].

    Plant-code patterns score 1.0 on an exact metadata match, 0.8 on a
    wildcard and 0 otherwise.  Everything else must match first; then each
    pattern unit contributes its weight and the sum is averaged.
    """
    if not pattern or not input:
        return 0.0

    base, metadata = split_pattern(pattern)

    if _is_plant_pattern(base, metadata):
        expected = _plant_code(metadata)
        if expected == "*":
            return PLANT_WILDCARD_CONFIDENCE
        if expected == input:
            return PLANT_EXACT_CONFIDENCE
        return 0.0

    if not matches_pattern(input, base):
        return 0.0

    score = 0.0
    units = 0
    p = 0
    i = 0

    while p < len(base) and i < len(input):
        token = base[p]

        if token == "[":
            close = base.find("]", p)
            if close == -1:
                break
            content = base[p + 1:close]
            score += RANGE_CLASS_WEIGHT if "-" in content else LIST_CLASS_WEIGHT
            p = close + 1
        elif token == "*":
            score += WILDCARD_WEIGHT
            p += 1
        else:
            if token == input[i]:
                score += EXACT_WEIGHT
            p += 1

        units += 1
        i += 1

    if units == 0:
        return 0.0
    return min(1.0, max(0.0, score / units))
