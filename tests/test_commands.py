"""Tests for the stopwatch operations."""

import json
import struct
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import stopwatch.commands as commands
from stopwatch.commands import (
    RunContext,
    StopwatchNotFoundError,
    generate_id,
    list_stopwatches,
    purge_stopwatches,
    start_stopwatch,
    stop_stopwatch,
    wait_for_signal,
)
from stopwatch.storage import StopwatchStorage

EPOCH = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def make_context(offset: timedelta = timedelta(0)) -> RunContext:
    return RunContext(epoch=EPOCH + offset, anchor=0.0, clock=lambda: 0.0)


@pytest.fixture
def storage(tmp_path: Path) -> StopwatchStorage:
    return StopwatchStorage(tmp_path / "stopwatch" / "stopwatch.json")


class TestGenerateId:
    """Tests for generate_id()."""

    def test_format(self) -> None:
        """16 hex characters, timestamp prefix in big-endian."""
        stopwatch_id = generate_id(EPOCH)

        assert len(stopwatch_id) == 16
        assert stopwatch_id[:8] == struct.pack(">I", int(EPOCH.timestamp())).hex()
        int(stopwatch_id, 16)

    def test_random_suffix(self) -> None:
        ids = {generate_id(EPOCH) for _ in range(50)}
        assert len(ids) > 1


class TestStartStopwatch:
    """Tests for start_stopwatch()."""

    def test_start_named(self, storage: StopwatchStorage) -> None:
        assert start_stopwatch(storage, make_context(), name="build") == "build"

        with storage.open() as store:
            assert store.read().get("build") == EPOCH

    def test_start_generates_id(self, storage: StopwatchStorage) -> None:
        stopwatch_id = start_stopwatch(storage, make_context())

        assert len(stopwatch_id) == 16
        assert stopwatch_id in json.loads(storage.path.read_text())

    def test_generated_id_avoids_running_ids(self, storage: StopwatchStorage, monkeypatch) -> None:
        """A generated id that is already running is regenerated."""
        start_stopwatch(storage, make_context(), name="aaaa")
        candidates = iter(["aaaa", "aaaa", "bbbb"])
        monkeypatch.setattr(commands, "generate_id", lambda now: next(candidates))

        assert start_stopwatch(storage, make_context()) == "bbbb"

    def test_restart_named_replaces_start(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="build")
        start_stopwatch(storage, make_context(timedelta(minutes=1)), name="build")

        statuses = list_stopwatches(storage, make_context(timedelta(minutes=2)))

        assert [s.elapsed for s in statuses] == [timedelta(minutes=1)]

    def test_concurrent_starts_keep_every_entry(self, tmp_path: Path) -> None:
        """Parallel starts against one file never lose an entry."""
        path = tmp_path / "stopwatch.json"
        count = 20

        def start(i: int) -> str:
            return start_stopwatch(StopwatchStorage(path), make_context(), name=f"sw-{i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(start, range(count)))

        stored = json.loads(path.read_text())
        assert sorted(stored) == sorted(ids)
        assert len(stored) == count


class TestStopStopwatch:
    """Tests for stop_stopwatch()."""

    def test_stop_returns_elapsed(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="build")

        elapsed = stop_stopwatch(storage, make_context(timedelta(seconds=90.5)), "build")

        assert elapsed == timedelta(seconds=90.5)
        assert list_stopwatches(storage, make_context()) == []

    def test_stop_unknown_leaves_file_unchanged(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="build")
        before = storage.path.read_bytes()

        with pytest.raises(StopwatchNotFoundError) as exc_info:
            stop_stopwatch(storage, make_context(), "missing")

        assert exc_info.value.stopwatch_id == "missing"
        assert "no stopwatch with id missing found" in str(exc_info.value)
        assert storage.path.read_bytes() == before

    def test_stop_twice_fails(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="build")
        stop_stopwatch(storage, make_context(), "build")

        with pytest.raises(StopwatchNotFoundError):
            stop_stopwatch(storage, make_context(), "build")

    def test_stop_zero_length_run(self, storage: StopwatchStorage) -> None:
        """Stopping in the same instant reports zero, not "not found"."""
        start_stopwatch(storage, make_context(), name="instant")
        assert stop_stopwatch(storage, make_context(), "instant") == timedelta(0)


class TestListStopwatches:
    """Tests for list_stopwatches()."""

    def test_empty_store(self, storage: StopwatchStorage) -> None:
        assert list_stopwatches(storage, make_context()) == []

    def test_elapsed_against_epoch(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="a")
        start_stopwatch(storage, make_context(timedelta(seconds=30)), name="b")

        statuses = {s.stopwatch_id: s for s in list_stopwatches(storage, make_context(timedelta(minutes=1)))}

        assert statuses["a"].elapsed == timedelta(minutes=1)
        assert statuses["b"].elapsed == timedelta(seconds=30)
        assert statuses["b"].started_at == EPOCH + timedelta(seconds=30)

    def test_list_does_not_modify(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="a")
        before = storage.path.read_bytes()

        list_stopwatches(storage, make_context(timedelta(hours=1)))

        assert storage.path.read_bytes() == before


class FakeEvent:
    """Event that reports set after a fixed number of timed waits."""

    def __init__(self, ticks: int) -> None:
        self.ticks = ticks
        self.timeouts: list[float | None] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.timeouts.append(timeout)
        if timeout is None:
            return True
        self.ticks -= 1
        return self.ticks < 0


class TestWaitForSignal:
    """Tests for wait_for_signal()."""

    def test_non_live_waits_without_timeout(self) -> None:
        readings = iter([2.5])
        ctx = RunContext(epoch=EPOCH, anchor=1.0, clock=lambda: next(readings))
        event = FakeEvent(ticks=0)

        elapsed = wait_for_signal(ctx, event)  # type: ignore[arg-type]

        assert elapsed == timedelta(seconds=1.5)
        assert event.timeouts == [None]

    def test_live_ticks_with_rounded_elapsed(self) -> None:
        readings = iter([0.12, 0.21, 0.33, 0.349])
        ctx = RunContext(epoch=EPOCH, anchor=0.0, clock=lambda: next(readings))
        event = FakeEvent(ticks=3)
        ticks: list[timedelta] = []

        elapsed = wait_for_signal(ctx, event, live=True, on_tick=ticks.append)  # type: ignore[arg-type]

        assert ticks == [
            timedelta(milliseconds=100),
            timedelta(milliseconds=200),
            timedelta(milliseconds=300),
        ]
        assert event.timeouts == [0.1, 0.1, 0.1, 0.1]
        assert elapsed == timedelta(seconds=0.349)

    def test_live_stops_on_real_event(self) -> None:
        """A real event set from another thread ends the loop."""
        stop_event = threading.Event()
        timer = threading.Timer(0.25, stop_event.set)
        timer.start()

        ticks: list[timedelta] = []
        elapsed = wait_for_signal(
            RunContext.now(),
            stop_event,
            live=True,
            on_tick=ticks.append,
            interval=timedelta(milliseconds=50),
        )
        timer.join()

        assert elapsed >= timedelta(seconds=0.2)
        assert ticks
        assert all(t.microseconds % 50_000 == 0 for t in ticks)


class TestPurgeStopwatches:
    """Tests for purge_stopwatches()."""

    def test_purge_existing(self, storage: StopwatchStorage) -> None:
        start_stopwatch(storage, make_context(), name="a")

        assert purge_stopwatches(storage) is True
        assert not storage.path.exists()
        assert list_stopwatches(storage, make_context()) == []

    def test_purge_missing(self, storage: StopwatchStorage) -> None:
        assert purge_stopwatches(storage) is False
