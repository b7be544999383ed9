"""In-memory mapping of running stopwatches.

Each entry pairs a stopwatch identifier with the instant it was started.
The mapping is serialized as a single JSON object whose keys are the
identifiers and whose values are RFC 3339 timestamps.
"""

import re
from datetime import datetime, timedelta
from typing import Annotated, Any, Iterator

from pydantic import Field, RootModel, Strict, field_validator

# Date, then a time of day; date-only strings are not start times
_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}")

Timestamp = Annotated[datetime, Strict()]


class StopwatchEntries(RootModel[dict[str, Timestamp]]):
    """Running stopwatches keyed by identifier.

    Example:
        entries = StopwatchEntries()
        entries.add("build", started_at)
        elapsed = entries.clear("build", now)
    """

    root: dict[str, Timestamp] = Field(default_factory=dict)

    @field_validator("root", mode="before")
    @classmethod
    def _require_time_of_day(cls, value: Any) -> Any:
        if isinstance(value, dict):
            for key, start in value.items():
                if isinstance(start, str) and not _TIMESTAMP_RE.match(start):
                    raise ValueError(f"start time of {key!r} is not an RFC 3339 timestamp: {start!r}")
        return value

    @field_validator("root")
    @classmethod
    def _localize_naive(cls, value: dict[str, datetime]) -> dict[str, datetime]:
        """Interpret timestamps without an offset as local time."""
        return {
            key: start.astimezone() if start.tzinfo is None else start
            for key, start in value.items()
        }

    def add(self, stopwatch_id: str, start_time: datetime) -> None:
        """Record a start time, replacing any existing entry with the same id."""
        self.root[stopwatch_id] = start_time

    def get(self, stopwatch_id: str) -> datetime | None:
        """Get the start time for an id, or None if it is not running."""
        return self.root.get(stopwatch_id)

    def elapsed(self, stopwatch_id: str, now: datetime) -> timedelta | None:
        """Get the time elapsed since an entry started without removing it."""
        start_time = self.root.get(stopwatch_id)
        if start_time is None:
            return None
        return now - start_time

    def clear(self, stopwatch_id: str, now: datetime) -> timedelta | None:
        """Remove an entry and return how long it ran.

        Args:
            stopwatch_id: Identifier to remove
            now: Reference instant for the elapsed computation

        Returns:
            Elapsed duration, or None if no entry had that id
        """
        start_time = self.root.pop(stopwatch_id, None)
        if start_time is None:
            return None
        return now - start_time

    def dumps(self) -> str:
        """Encode the entries as a JSON document."""
        return self.model_dump_json() + "\n"

    @classmethod
    def loads(cls, content: str) -> "StopwatchEntries":
        """Decode entries from JSON text; blank content is an empty store.

        Raises:
            pydantic.ValidationError: If the content is malformed.
        """
        if not content.strip():
            return cls()
        return cls.model_validate_json(content)

    def __contains__(self, stopwatch_id: object) -> bool:
        return stopwatch_id in self.root

    def __len__(self) -> int:
        return len(self.root)

    def __iter__(self) -> Iterator[tuple[str, datetime]]:  # type: ignore[override]
        return iter(self.root.items())
