"""JSON file persistence for running stopwatches.

This module opens, locks, reads and writes the shared stopwatch file.
Every command that touches the file holds an exclusive lock for the
whole read-modify-write cycle so concurrent invocations are serialized.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

from filelock import FileLock
from pydantic import ValidationError

from stopwatch.entries import StopwatchEntries

logger = logging.getLogger(__name__)

STORE_FILENAME = "stopwatch.json"


class StorageError(Exception):
    """Raised when the stopwatch file cannot be opened, read or written."""


class StoreDecodeError(StorageError):
    """Raised when the stopwatch file contains malformed data."""


class StoreFile:
    """An open, locked stopwatch file.

    Only valid inside ``StopwatchStorage.open()``.
    """

    def __init__(self, path: Path, handle: IO[str]) -> None:
        self._path = path
        self._handle = handle

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> StopwatchEntries:
        """Read all entries from the start of the file.

        Returns:
            Parsed entries; an empty file yields an empty store.

        Raises:
            StorageError: If the file cannot be read.
            StoreDecodeError: If the content is not a valid entry mapping.
        """
        try:
            self._handle.seek(0)
            content = self._handle.read()
        except UnicodeDecodeError as e:
            raise StoreDecodeError(f"error decoding entries in {self._path}: {e}") from e
        except OSError as e:
            raise StorageError(f"error reading file {self._path}: {e}") from e

        try:
            entries = StopwatchEntries.loads(content)
        except ValidationError as e:
            raise StoreDecodeError(f"error decoding entries in {self._path}: {e}") from e

        logger.debug(f"Loaded {len(entries)} stopwatches from {self._path}")
        return entries

    def write(self, entries: StopwatchEntries) -> None:
        """Replace the file content with the given entries.

        The file is truncated before writing, so a crash mid-write can
        leave it empty or partial.

        Raises:
            StorageError: If truncating, seeking or writing fails.
        """
        try:
            self._handle.truncate(0)
            self._handle.seek(0)
            self._handle.write(entries.dumps())
            self._handle.flush()
        except OSError as e:
            raise StorageError(f"error writing file {self._path}: {e}") from e

        logger.debug(f"Saved {len(entries)} stopwatches to {self._path}")


class StopwatchStorage:
    """File-based storage for running stopwatches.

    Uses file locking to prevent concurrent modification by parallel
    invocations. Lock acquisition blocks without a timeout.

    Example:
        storage = StopwatchStorage("/path/to/stopwatch.json")
        with storage.open() as store:
            entries = store.read()
            entries.add("build", now)
            store.write(entries)
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the storage.

        Args:
            path: Path to the JSON stopwatch file.
        """
        self._path = Path(path)
        self._lock_path = self._path.with_suffix(".lock")
        self._lock = FileLock(str(self._lock_path))

    @property
    def path(self) -> Path:
        """Get the stopwatch file path."""
        return self._path

    @property
    def lock_path(self) -> Path:
        """Get the lock file path."""
        return self._lock_path

    def _ensure_directory(self) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"error creating directory {directory}: {e}") from e

    @contextmanager
    def open(self) -> Iterator[StoreFile]:
        """Open and exclusively lock the stopwatch file.

        The file is created if missing. The lock is released and the file
        closed when the block exits, whether or not it raised.

        Raises:
            StorageError: If the directory or file cannot be created,
                opened or locked.
        """
        self._ensure_directory()

        try:
            self._lock.acquire()
        except OSError as e:
            raise StorageError(f"error locking file {self._lock_path}: {e}") from e

        try:
            try:
                fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o644)
                handle = os.fdopen(fd, "r+", encoding="utf-8")
            except OSError as e:
                raise StorageError(f"error opening file {self._path}: {e}") from e

            logger.debug(f"Locked {self._path}")
            with handle:
                yield StoreFile(self._path, handle)
        finally:
            self._lock.release()
            logger.debug(f"Unlocked {self._path}")

    def remove(self) -> bool:
        """Delete the stopwatch file.

        Returns:
            True if a file was removed, False if there was none.

        Raises:
            StorageError: If the file exists but cannot be removed.
        """
        if not self._path.parent.is_dir():
            return False

        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"error removing stopwatch file {self._path}: {e}") from e

        logger.info(f"Removed stopwatch file: {self._path}")
        return True
