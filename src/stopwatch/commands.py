"""Stopwatch operations.

Each operation opens the shared stopwatch file under an exclusive lock,
reads the running entries, inspects or mutates them and writes them back
when they changed. Time is taken from an explicit ``RunContext`` captured
once per process so every computation in one invocation agrees on "now".

The ``wait`` operation never touches the file; its timer lives only for
the lifetime of the process.
"""

import logging
import secrets
import struct
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from stopwatch.durations import round_duration
from stopwatch.storage import StopwatchStorage

logger = logging.getLogger(__name__)

DEFAULT_TICK = timedelta(milliseconds=100)


class StopwatchNotFoundError(LookupError):
    """Raised when stopping a stopwatch id that is not running."""

    def __init__(self, stopwatch_id: str) -> None:
        super().__init__(f"no stopwatch with id {stopwatch_id} found")
        self.stopwatch_id = stopwatch_id


@dataclass(frozen=True)
class RunContext:
    """Reference time for a single invocation.

    Attributes:
        epoch: Wall-clock instant the invocation started (timezone-aware).
        anchor: Monotonic clock reading taken together with ``epoch``.
        clock: Monotonic clock used to measure in-process elapsed time.
    """

    epoch: datetime
    anchor: float
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)

    @classmethod
    def now(cls) -> "RunContext":
        """Capture the current instant as the process epoch."""
        return cls(epoch=datetime.now().astimezone(), anchor=time.monotonic())

    def elapsed(self) -> timedelta:
        """Time passed in this process since the epoch."""
        return timedelta(seconds=self.clock() - self.anchor)


@dataclass(frozen=True)
class StopwatchStatus:
    """A running stopwatch as seen by ``list_stopwatches``."""

    stopwatch_id: str
    started_at: datetime
    elapsed: timedelta


def generate_id(now: datetime) -> str:
    """Build a 16 hex character id.

    The first 4 bytes are the big-endian Unix timestamp in seconds, the
    last 4 bytes are random.
    """
    timestamp = int(now.timestamp()) & 0xFFFFFFFF
    return (struct.pack(">I", timestamp) + secrets.token_bytes(4)).hex()


def start_stopwatch(
    storage: StopwatchStorage,
    ctx: RunContext,
    name: str | None = None,
) -> str:
    """Start a stopwatch at the process epoch.

    Starting an id that is already running replaces its start time.

    Args:
        storage: Stopwatch file storage
        ctx: Invocation time reference
        name: Identifier to use; generated when omitted

    Returns:
        The identifier of the started stopwatch
    """
    with storage.open() as store:
        entries = store.read()

        stopwatch_id = name
        if not stopwatch_id:
            stopwatch_id = generate_id(ctx.epoch)
            while stopwatch_id in entries:
                stopwatch_id = generate_id(ctx.epoch)
        elif stopwatch_id in entries:
            logger.warning(f"Restarting running stopwatch: {stopwatch_id}")

        entries.add(stopwatch_id, ctx.epoch)
        store.write(entries)

    logger.info(f"Started stopwatch: {stopwatch_id}")
    return stopwatch_id


def stop_stopwatch(storage: StopwatchStorage, ctx: RunContext, stopwatch_id: str) -> timedelta:
    """Stop a stopwatch and return how long it ran.

    Raises:
        StopwatchNotFoundError: If no stopwatch with that id is running.
            The file is left untouched.
    """
    with storage.open() as store:
        entries = store.read()

        elapsed = entries.clear(stopwatch_id, ctx.epoch)
        if elapsed is None:
            raise StopwatchNotFoundError(stopwatch_id)

        store.write(entries)

    logger.info(f"Stopped stopwatch: {stopwatch_id}")
    return elapsed


def list_stopwatches(storage: StopwatchStorage, ctx: RunContext) -> list[StopwatchStatus]:
    """List running stopwatches with their elapsed time at the process epoch."""
    with storage.open() as store:
        entries = store.read()

    return [
        StopwatchStatus(stopwatch_id=stopwatch_id, started_at=started_at, elapsed=ctx.epoch - started_at)
        for stopwatch_id, started_at in entries
    ]


def wait_for_signal(
    ctx: RunContext,
    stop_event: threading.Event,
    live: bool = False,
    on_tick: Callable[[timedelta], None] | None = None,
    interval: timedelta = DEFAULT_TICK,
) -> timedelta:
    """Block until ``stop_event`` is set and return the elapsed time.

    In live mode the wait wakes every ``interval`` and passes the elapsed
    time, rounded to the interval, to ``on_tick``.
    """
    if not live:
        stop_event.wait()
        return ctx.elapsed()

    timeout = interval.total_seconds()
    while not stop_event.wait(timeout):
        if on_tick:
            on_tick(round_duration(ctx.elapsed(), interval))

    return ctx.elapsed()


def purge_stopwatches(storage: StopwatchStorage) -> bool:
    """Delete the stopwatch file.

    Returns:
        True if a file was removed, False if none existed.
    """
    removed = storage.remove()
    if removed:
        logger.info("Purged all stopwatches")
    return removed
