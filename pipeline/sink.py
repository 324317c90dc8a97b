# ============================================================================
# ROTATING EVENT SINK
# ============================================================================
# STATUS: Core - Durable append-only event file with daily rotation
# PURPOSE: Own the single writable event file and rotate it per UTC day
# CREATED: 12 OCT 2026
# ============================================================================
"""
Rotating Event Sink

Owns the one file that events are appended to. Nothing else opens it for
writing.

States:
    OPEN     -> write() appends a record, flushes and fsyncs before returning
    ROTATING -> the record's period differs from the open file's period:
                1. flush and close the current file
                2. publish FileClosed(path, period) on the closed-file queue
                3. open the file for the new period
                4. write the pending record into the new file
    CLOSED   -> close() flushed and closed the file; writes are rejected

The whole rotation runs under the writer lock, so no other write can land
between closing the old file and reopening the new one.

Rotation policy:
    Lazy. The period is the UTC date of the wall clock at delivery time,
    checked on every write. There is no timer: an idle day produces no file
    and a file stays open past midnight until the first event of the next
    day arrives.

Fixed mode:
    RotatingSink.fixed(path) appends to a single file for the lifetime of the
    process. No rotation, no FileClosed messages.

Any I/O error is fatal: it is raised as SinkWriteError and the sink refuses
all further writes.
"""

import asyncio
import logging
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

from core.config import SinkConfig
from core.contracts import FileClosed, RotationPeriod
from core.errors import SinkClosedError, SinkWriteError
from core.logging import log_checkpoint, log_context

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RotatingSink:
    """
    Single-writer, durably flushed, daily rotated event file.

    Records are written whole with one write call. The caller owns encoding;
    the sink only guarantees ordering, durability and rotation.
    """

    def __init__(
        self,
        directory: Optional[Path] = None,
        clock: Optional[Clock] = None,
        closed_queue: Optional[asyncio.Queue] = None,
        fixed_path: Optional[Path] = None,
    ):
        """
        Initialize sink.

        Args:
            directory: Directory holding one YYYY-MM-DD.log file per day
            clock: Wall clock used to pick the period of each write
            closed_queue: Receives a FileClosed message for every rotated file
            fixed_path: Append to this single file instead of rotating
        """
        if (directory is None) == (fixed_path is None):
            raise ValueError("Exactly one of directory or fixed_path must be given")

        self._directory = Path(directory) if directory is not None else None
        self._fixed_path = Path(fixed_path) if fixed_path is not None else None
        self._clock: Clock = clock or utc_now
        self._closed_queue = closed_queue

        # Active file (exclusively owned)
        self._file: Optional[TextIO] = None
        self._path: Optional[Path] = None
        self._period: Optional[date] = None

        # State
        self._lock = asyncio.Lock()
        self._closed = False
        self._failed = False

        # Stats
        self._records_written = 0
        self._rotations = 0
        self._opened_at: Optional[datetime] = None
        self._last_write_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def fixed(cls, path: Path, clock: Optional[Clock] = None) -> "RotatingSink":
        """Sink that appends to one file for the whole process lifetime."""
        return cls(fixed_path=path, clock=clock)

    @classmethod
    def from_config(
        cls,
        config: SinkConfig,
        clock: Optional[Clock] = None,
        closed_queue: Optional[asyncio.Queue] = None,
    ) -> "RotatingSink":
        """Create the sink described by a SinkConfig."""
        issues = config.validate()
        if issues:
            raise ValueError(f"Invalid sink configuration: {'; '.join(issues)}")

        if config.rotation_enabled:
            return cls(
                directory=config.rotation_directory,
                clock=clock,
                closed_queue=closed_queue if config.archive_enabled else None,
            )
        return cls.fixed(config.output_path, clock=clock)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def rotating(self) -> bool:
        return self._directory is not None

    @property
    def current_path(self) -> Optional[Path]:
        return self._path

    @property
    def current_period(self) -> Optional[date]:
        return self._period

    @property
    def is_open(self) -> bool:
        return self._file is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def path_for(self, period: date) -> Path:
        """Event file holding the records of a period."""
        if not self.rotating:
            return self._fixed_path
        return self._directory / RotationPeriod.file_name(period)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the file for the current period (fails fast on bad paths)."""
        async with self._lock:
            self._ensure_writable()
            if self._file is None:
                await self._open_period(self._current_period())

    async def write(self, record: str) -> None:
        """
        Append one record and make it durable.

        Args:
            record: One encoded, newline-terminated record

        Raises:
            SinkWriteError: On any I/O failure (the sink is then unusable)
            SinkClosedError: If the sink was closed or failed earlier
        """
        if not record.endswith("\n"):
            record += "\n"

        async with self._lock:
            self._ensure_writable()

            period = self._current_period()
            if self._file is None:
                await self._open_period(period)
            elif period != self._period:
                await self._rotate(period)

            try:
                await self._run_blocking(self._append, self._file, record)
            except OSError as e:
                self._failed = True
                logger.error(f"Write to {self._path} failed: {e}")
                raise SinkWriteError(
                    f"Failed to write record to {self._path}: {e}",
                    path=self._path,
                    operation="write",
                ) from e

            self._records_written += 1
            self._last_write_at = utc_now()

    async def close(self) -> None:
        """
        Flush and close the active file. Idempotent.

        Closing at shutdown does not publish FileClosed: the period is not
        over, and a restart on the same day appends to the same file.
        """
        async with self._lock:
            if self._closed:
                return
            self._closed = True

            if self._file is None:
                return

            path = self._path
            try:
                await self._close_active()
            finally:
                logger.info(
                    f"Event sink closed: {path} "
                    f"(records={self._records_written}, rotations={self._rotations})"
                )

    async def __aenter__(self) -> "RotatingSink":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals (called with the lock held)
    # ------------------------------------------------------------------

    def _ensure_writable(self) -> None:
        if self._failed:
            raise SinkClosedError("Event sink failed earlier and accepts no more writes")
        if self._closed:
            raise SinkClosedError("Event sink is closed")

    def _current_period(self) -> Optional[date]:
        if not self.rotating:
            return None
        return RotationPeriod.for_time(self._clock())

    async def _open_period(self, period: Optional[date]) -> None:
        path = self.path_for(period)
        try:
            self._file = await self._run_blocking(
                self._open_file, path, on_cancelled=self._close_file
            )
        except OSError as e:
            self._failed = True
            logger.error(f"Cannot open event file {path}: {e}")
            raise SinkWriteError(
                f"Failed to open event file {path}: {e}",
                path=path,
                operation="open",
            ) from e

        self._path = path
        self._period = period
        self._opened_at = utc_now()
        logger.info(f"Opened event file {path}")

    async def _close_active(self) -> None:
        fh, path = self._file, self._path
        self._file = None
        try:
            await self._run_blocking(self._close_file, fh)
        except OSError as e:
            self._failed = True
            logger.error(f"Cannot close event file {path}: {e}")
            raise SinkWriteError(
                f"Failed to close event file {path}: {e}",
                path=path,
                operation="close",
            ) from e

    async def _rotate(self, period: date) -> None:
        old_file, old_path, old_period = self._file, self._path, self._period

        try:
            await self._close_active()
        except asyncio.CancelledError:
            # _run_blocking waited for the close thread, so old_file.closed is final
            if old_file.closed:
                self._publish_closed(old_path, old_period, period)
            raise

        self._publish_closed(old_path, old_period, period)
        await self._open_period(period)

    def _publish_closed(self, old_path: Path, old_period: date, next_period: date) -> None:
        self._rotations += 1

        with log_context(period=old_period.isoformat(), path=str(old_path), component="sink"):
            log_checkpoint("file_rotated", {"next_period": next_period.isoformat()})

        if self._closed_queue is not None:
            self._closed_queue.put_nowait(FileClosed(path=old_path, period=old_period))

    # ------------------------------------------------------------------
    # Blocking file operations (run in a worker thread)
    # ------------------------------------------------------------------

    @staticmethod
    async def _run_blocking(
        func: Callable[..., Any],
        *args: Any,
        on_cancelled: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """
        Run a file operation in a worker thread.

        A thread cannot be interrupted, so on cancellation the operation is
        allowed to finish before CancelledError propagates. on_cancelled
        receives the result of an operation whose caller went away.
        """
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            await asyncio.wait([future])
            if on_cancelled is not None and not future.cancelled() and future.exception() is None:
                on_cancelled(future.result())
            raise

    @staticmethod
    def _open_file(path: Path) -> TextIO:
        path.parent.mkdir(parents=True, exist_ok=True)
        return open(path, "a", encoding="utf-8")

    @staticmethod
    def _append(fh: TextIO, record: str) -> None:
        fh.write(record)
        fh.flush()
        os.fsync(fh.fileno())

    @staticmethod
    def _close_file(fh: TextIO) -> None:
        try:
            fh.flush()
            os.fsync(fh.fileno())
        finally:
            fh.close()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Sink counters for health reporting."""
        return {
            "mode": "rotating" if self.rotating else "fixed",
            "current_path": str(self._path) if self._path else None,
            "current_period": self._period.isoformat() if self._period else None,
            "records_written": self._records_written,
            "rotations": self._rotations,
            "opened_at": self._opened_at.isoformat() if self._opened_at else None,
            "last_write_at": self._last_write_at.isoformat() if self._last_write_at else None,
            "closed": self._closed,
            "failed": self._failed,
        }


__all__ = ["Clock", "RotatingSink", "utc_now"]
