# ============================================================================
# ROTATED FILE ARCHIVER
# ============================================================================
# STATUS: Core - Best-effort compression of rotated event files
# PURPOSE: Zip each closed daily file without touching the ingestion path
# CREATED: 12 OCT 2026
# ============================================================================
"""
Rotated File Archiver

Consumes FileClosed messages published by the sink and compresses each
closed file into its own zip archive:

    <archive_directory>/YYYY-MM-DD.zip
        YYYY-MM-DD.log   (single ZIP_DEFLATED entry)

Properties:
- Fire-and-forget: one detached task per closed file, compression runs in a
  worker thread, nothing the archiver does can block or fail ingestion.
- Idempotent naming: the archive name comes from the rotation period, so
  archiving the same file twice produces the same path.
- Atomic output: the archive is assembled in <name>.zip.tmp and moved into
  place with os.replace once complete.
- Best effort: failures are logged and the job is dropped. No retries.
  The rotated file itself is left in place either way.
"""

import asyncio
import contextlib
import logging
import os
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional, Set

from core.contracts import ArchiveJob, ArchiveStatus, FileClosed, RotationPeriod
from core.errors import ArchiveError
from core.logging import log_checkpoint, log_context

logger = logging.getLogger(__name__)


class Archiver:
    """
    Background consumer of the sink's closed-file queue.

    Usage:
        queue = asyncio.Queue()
        archiver = Archiver(Path("/var/log/nomad-events/archive"), queue)
        await archiver.start()
        ...
        await archiver.stop()
    """

    COMPRESSION = zipfile.ZIP_DEFLATED
    COMPRESS_LEVEL = 6

    def __init__(
        self,
        archive_directory: Path,
        queue: Optional[asyncio.Queue] = None,
    ):
        """
        Initialize archiver.

        Args:
            archive_directory: Where archives are written (created on demand)
            queue: Closed-file queue shared with the sink
        """
        self.archive_directory = Path(archive_directory)
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

        # Background tasks
        self._consumer_task: Optional[asyncio.Task] = None
        self._jobs: Set[asyncio.Task] = set()

        # Stats
        self._jobs_submitted = 0
        self._jobs_archived = 0
        self._jobs_failed = 0

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def archive_path_for(self, closed: FileClosed) -> Path:
        """
        Archive path for a closed file.

        Derived from the period the file represents, never from the time of
        compression.
        """
        if closed.period is not None:
            name = RotationPeriod.archive_name(closed.period)
        else:
            name = f"{Path(closed.path).name}{RotationPeriod.ARCHIVE_SUFFIX}"
        return self.archive_directory / name

    def job_for(self, closed: FileClosed) -> ArchiveJob:
        return ArchiveJob(
            source_path=Path(closed.path),
            archive_path=self.archive_path_for(closed),
            period=closed.period,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming the closed-file queue."""
        if self._consumer_task is not None and not self._consumer_task.done():
            logger.warning("Archiver already running")
            return

        self._consumer_task = asyncio.create_task(self.run(), name="archiver-consumer")
        logger.info(f"Archiver started: archive_directory={self.archive_directory}")

    async def run(self) -> None:
        """Dispatch one archive job per FileClosed message, forever."""
        while True:
            closed = await self.queue.get()
            try:
                self.submit(closed)
            finally:
                self.queue.task_done()

    def submit(self, closed: FileClosed) -> asyncio.Task:
        """Launch a detached archive job for one closed file."""
        job = self.job_for(closed)
        self._jobs_submitted += 1

        task = asyncio.create_task(self._archive(job), name=f"archive-{job.archive_path.name}")
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)
        return task

    async def drain(self) -> None:
        """Wait until queued messages are dispatched and running jobs finish."""
        if self._consumer_task is not None and not self._consumer_task.done():
            await self.queue.join()
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    async def stop(self, drain: bool = True) -> None:
        """Stop consuming; optionally let in-flight jobs finish first."""
        if drain:
            await self.drain()

        if self._consumer_task is not None:
            self._consumer_task.cancel()
            await asyncio.gather(self._consumer_task, return_exceptions=True)
            self._consumer_task = None

        if not drain:
            for task in list(self._jobs):
                task.cancel()
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

        logger.info(
            f"Archiver stopped. Stats: archived={self._jobs_archived}, "
            f"failed={self._jobs_failed}"
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _archive(self, job: ArchiveJob) -> ArchiveJob:
        """Run one job. Never raises: failures are logged and dropped."""
        period = job.period.isoformat() if job.period else None
        with log_context(period=period, path=str(job.source_path), component="archiver"):
            try:
                await asyncio.to_thread(self._write_archive, job)
            except Exception as e:
                job.status = ArchiveStatus.FAILED
                job.error_message = str(e)
                self._jobs_failed += 1
                logger.error(f"Archiving {job.source_path} failed, dropping job: {e}")
                return job

            job.status = ArchiveStatus.ARCHIVED
            self._jobs_archived += 1
            log_checkpoint("archive_written", {"archive": str(job.archive_path)})
            return job

    def _write_archive(self, job: ArchiveJob) -> None:
        """Compress job.source_path into job.archive_path (blocking)."""
        if not job.source_path.is_file():
            raise ArchiveError(
                f"Rotated file not found: {job.source_path}",
                source_path=job.source_path,
            )

        job.archive_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = job.temp_path
        try:
            with zipfile.ZipFile(
                temp_path,
                mode="w",
                compression=self.COMPRESSION,
                compresslevel=self.COMPRESS_LEVEL,
            ) as zf:
                zf.write(job.source_path, arcname=job.source_path.name)

            with open(temp_path, "rb") as fh:
                os.fsync(fh.fileno())
            os.replace(temp_path, job.archive_path)
        except BaseException:
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Archiver counters for health reporting."""
        return {
            "archive_directory": str(self.archive_directory),
            "submitted": self._jobs_submitted,
            "archived": self._jobs_archived,
            "failed": self._jobs_failed,
            "in_flight": len(self._jobs),
            "queued": self.queue.qsize(),
        }


__all__ = ["Archiver"]
