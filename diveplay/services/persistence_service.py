"""
Progress persistence: reading and writing the per-folder progress file.

`ProgressStore` owns the file itself. It reads leniently (a missing or broken
file simply means "no prior state") and writes by full atomic replacement.

`ProgressWriter` decides *when* to write. Position updates are throttled,
pauses are written after a short settle delay, and settings changes and
teardown flushes go straight through. Every snapshot is stamped with a
sequence number at the moment it is taken; a write whose stamp is older than
the last one written is dropped, so a delayed write can never roll the file
back to an earlier state.
"""

import itertools
import json
import threading
import time
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from loguru import logger

from ..config.common import (
    PAUSE_SETTLE_SECONDS,
    POSITION_WRITE_THROTTLE_SECONDS,
    STATE_FILE_NAME,
)
from ..domain.exceptions import (
    PermissionRevokedException,
    PersistenceReadInvalidException,
    PersistenceWriteFailedException,
)
from ..domain.session import PersistedProgress
from .storage_service import LocalStorageProvider, StorageProvider


class ProgressStore:
    """
    Reads and writes `PersistedProgress` for one session root.

    Attributes:
        root (Path): The session root.
        path (Path): The progress file inside the root.
        storage (StorageProvider): Used for every read and write.
    """

    def __init__(self, root: Path, storage: Optional[StorageProvider] = None):
        self.root = root
        self.path = root / STATE_FILE_NAME
        self.storage = storage or LocalStorageProvider()

    def read(self) -> Optional[PersistedProgress]:
        """
        Loads the saved progress.

        Returns:
            The record, or None when the file is missing, unreadable as JSON, or
            does not describe a progress record.

        Raises:
            PermissionRevokedException: If the folder can no longer be read.
        """
        try:
            with self.storage.open_read(self.path) as f:
                data = json.loads(f.read().decode("utf-8"))
            progress = PersistedProgress.from_dict(data)
        except FileNotFoundError:
            logger.debug(f"No saved progress at {self.path}.")
            return None
        except (ValueError, PersistenceReadInvalidException) as e:
            # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors.
            logger.debug(f"Ignoring unreadable progress file {self.path}: {e}")
            return None
        except PermissionRevokedException:
            raise
        except OSError as e:
            logger.warning(f"Could not read progress file {self.path}: {e}")
            return None

        logger.debug(
            f"Loaded saved progress: '{progress.last_file}' at {progress.last_position:.1f}s"
        )
        return progress

    def write(self, progress: PersistedProgress):
        """
        Replaces the progress file with `progress`.

        Raises:
            PermissionRevokedException: If the folder is no longer writable.
            PersistenceWriteFailedException: For any other I/O failure.
        """
        try:
            with self.storage.open_replace(self.path) as f:
                json.dump(progress.to_dict(), f, indent=2)
        except PermissionRevokedException:
            raise
        except OSError as e:
            raise PersistenceWriteFailedException(
                f"Could not write progress file {self.path}: {e}"
            ) from e


class StampedProgress(NamedTuple):
    sequence: int
    progress: PersistedProgress


class ProgressWriter:
    """
    Schedules and orders the writes of a `ProgressStore`.

    The caller takes snapshots and stamps them with `stamp()` while its own
    state is consistent (the playback session does this under its lock), then
    hands them to `commit()`. Commits are serialized and last-stamp-wins.

    Write failures are logged and passed to `on_error`; they never propagate.
    """

    def __init__(
        self,
        store: ProgressStore,
        clock: Callable[[], float] = time.monotonic,
        timer_factory=threading.Timer,
        throttle_seconds: float = POSITION_WRITE_THROTTLE_SECONDS,
        settle_seconds: float = PAUSE_SETTLE_SECONDS,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.store = store
        self.clock = clock
        self.timer_factory = timer_factory
        self.throttle_seconds = throttle_seconds
        self.settle_seconds = settle_seconds
        self.on_error = on_error

        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._last_written_sequence = 0
        self._last_position_write: Optional[float] = None
        self._pending_timer = None
        self._closed = False

    @property
    def last_written_sequence(self) -> int:
        return self._last_written_sequence

    def stamp(self, progress: PersistedProgress) -> StampedProgress:
        with self._lock:
            return StampedProgress(next(self._sequence), progress)

    def position_write_due(self) -> bool:
        """True at most once per throttle window; the first call is always due."""
        now = self.clock()
        with self._lock:
            if (
                self._last_position_write is not None
                and now - self._last_position_write < self.throttle_seconds
            ):
                return False
            self._last_position_write = now
            return True

    def commit(self, stamped: Optional[StampedProgress]) -> bool:
        """
        Writes a stamped snapshot unless a newer one has already been written.

        Returns:
            True if the file was written.
        """
        if stamped is None:
            return False
        failure = None
        with self._write_lock:
            if self._closed:
                return False
            if stamped.sequence <= self._last_written_sequence:
                logger.debug(
                    f"Skipping stale progress write #{stamped.sequence} "
                    f"(#{self._last_written_sequence} already written)."
                )
                return False
            try:
                self.store.write(stamped.progress)
            except (PersistenceWriteFailedException, PermissionRevokedException) as e:
                logger.warning(f"Progress not saved: {e}")
                failure = e
            else:
                self._last_written_sequence = stamped.sequence
                logger.trace(
                    f"Progress #{stamped.sequence} saved: '{stamped.progress.last_file}' "
                    f"at {stamped.progress.last_position:.1f}s"
                )
        # on_error may commit again, so it runs outside the write lock.
        if failure is not None:
            if self.on_error:
                self.on_error(failure)
            return False
        return True

    def schedule_settled(self, callback: Callable[[], None]):
        """Runs `callback` after the settle delay, replacing any pending one."""
        with self._lock:
            if self._closed:
                return
            if self._pending_timer is not None:
                self._pending_timer.cancel()
            timer = self.timer_factory(self.settle_seconds, callback)
            timer.daemon = True
            self._pending_timer = timer
        timer.start()

    def cancel_scheduled(self):
        with self._lock:
            if self._pending_timer is not None:
                self._pending_timer.cancel()
                self._pending_timer = None

    def close(self):
        """Cancels pending work. Later commits are ignored."""
        self.cancel_scheduled()
        with self._write_lock:
            self._closed = True
