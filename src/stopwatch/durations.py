"""Duration formatting for stopwatch output."""

from datetime import timedelta
from enum import Enum

_US_PER_MS = 1_000
_US_PER_SECOND = 1_000_000
_US_PER_MINUTE = 60 * _US_PER_SECOND
_US_PER_HOUR = 60 * _US_PER_MINUTE


class OutputFormat(str, Enum):
    """How durations are rendered.

    Attributes:
        DEFAULT: Compact breakdown such as ``1h2m3.5s``.
        SECONDS: Fractional seconds with six decimals.
        MILLISECONDS: Whole milliseconds, truncated toward zero.
    """

    DEFAULT = "default"
    SECONDS = "seconds"
    MILLISECONDS = "milliseconds"


def total_microseconds(duration: timedelta) -> int:
    """Return a timedelta as an exact integer number of microseconds."""
    return (duration.days * 86_400 + duration.seconds) * _US_PER_SECOND + duration.microseconds


def round_duration(duration: timedelta, multiple: timedelta) -> timedelta:
    """Round a duration to the nearest multiple, halfway values away from zero."""
    step = total_microseconds(multiple)
    if step <= 0:
        return duration

    us = total_microseconds(duration)
    magnitude = abs(us)
    rounded = (magnitude + step // 2) // step * step
    return timedelta(microseconds=-rounded if us < 0 else rounded)


def _fraction(value: int, unit: int) -> str:
    """Render value/unit as a decimal with trailing zeros trimmed."""
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    width = len(str(unit)) - 1
    return f"{whole}.{str(rest).zfill(width).rstrip('0')}"


def _default_string(us: int) -> str:
    if us == 0:
        return "0s"

    sign = "-" if us < 0 else ""
    us = abs(us)

    if us < _US_PER_MS:
        return f"{sign}{us}µs"
    if us < _US_PER_SECOND:
        return f"{sign}{_fraction(us, _US_PER_MS)}ms"

    hours, rest = divmod(us, _US_PER_HOUR)
    minutes, rest = divmod(rest, _US_PER_MINUTE)

    parts = [sign]
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{_fraction(rest, _US_PER_SECOND)}s")
    return "".join(parts)


def format_duration(duration: timedelta, output_format: OutputFormat = OutputFormat.DEFAULT) -> str:
    """Format an elapsed duration.

    Zero and negative durations (clock skew) are valid input.

    Args:
        duration: Elapsed time
        output_format: Rendering to use

    Returns:
        Formatted string like "1m30.5s", "90.500000" or "90500"
    """
    us = total_microseconds(duration)

    if output_format == OutputFormat.SECONDS:
        return f"{us / _US_PER_SECOND:f}"
    if output_format == OutputFormat.MILLISECONDS:
        ms = abs(us) // _US_PER_MS
        return str(-ms if us < 0 else ms)
    return _default_string(us)
