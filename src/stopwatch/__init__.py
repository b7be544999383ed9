"""Stopwatch - named timers that survive across shell invocations."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("stopwatch-cli")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from stopwatch.durations import OutputFormat, format_duration
from stopwatch.entries import StopwatchEntries
from stopwatch.storage import StopwatchStorage

__all__ = ["OutputFormat", "format_duration", "StopwatchEntries", "StopwatchStorage"]
