"""
Fixed-point time helpers.

All engine arithmetic runs on integer milliseconds. Decimal-second strings
only appear at the edges: when a cut plan is parsed and when filter graph
nodes are written for FFmpeg.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

MS_PER_SECOND = 1000


def parse_seconds_to_ms(value: Union[str, int, float, Decimal]) -> int:
    """
    Parse a decimal-seconds value into integer milliseconds.

    Strings are parsed exactly (no float round-trip) and rounded half-up
    to the nearest millisecond.

    Args:
        value: Seconds as a string ("12.345"), int, float or Decimal

    Returns:
        Milliseconds as int

    Raises:
        ValueError: If the value is not a finite decimal number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")

    try:
        if isinstance(value, float):
            # repr() gives the shortest string that round-trips
            seconds = Decimal(repr(value))
        else:
            seconds = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a decimal seconds value: {value!r}")

    if not seconds.is_finite():
        raise ValueError(f"Not a finite seconds value: {value!r}")

    millis = (seconds * MS_PER_SECOND).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(millis)


def format_ms(ms: int) -> str:
    """
    Format milliseconds as FFmpeg decimal seconds with three decimals.

    Example:
        >>> format_ms(9500)
        '9.500'
        >>> format_ms(-250)
        '-0.250'
    """
    sign = "-" if ms < 0 else ""
    whole, frac = divmod(abs(ms), MS_PER_SECOND)
    return f"{sign}{whole}.{frac:03d}"


def ms_to_seconds(ms: int) -> float:
    """Convert milliseconds to float seconds for reporting."""
    return ms / MS_PER_SECOND


def seconds_to_ms(seconds: float) -> int:
    """Round float seconds (e.g. a probed duration) to the nearest millisecond."""
    return parse_seconds_to_ms(float(seconds))
