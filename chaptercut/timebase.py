"""Conversion between ffmetadata timebase units and seconds."""

import math

# Used whenever a timebase is missing or not strictly positive.
FALLBACK_NUM = 1
FALLBACK_DEN = 1000


def _valid(num: int, den: int) -> bool:
    return num > 0 and den > 0


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def units_to_seconds(units: int, num: int, den: int) -> float:
    if not _valid(num, den):
        num, den = FALLBACK_NUM, FALLBACK_DEN
    return units * (num / den)


def seconds_to_units(sec: float, num: int, den: int) -> int:
    if not _valid(num, den):
        return round_half_away(sec * 1000.0)
    return round_half_away(sec * (den / num))
