# ============================================================================
# PIPELINE CONTRACTS
# ============================================================================
# STATUS: Foundation - Messages passed between pipeline stages
# PURPOSE: Define the sink -> archiver hand-off and rotation period helpers
# CREATED: 12 OCT 2026
# EXPORTS: RotationPeriod, FileClosed, ArchiveJob, ArchiveStatus
# ============================================================================
"""
Pipeline contracts.

The sink announces every rotated file with a FileClosed message on a
dedicated queue. The archiver turns each message into an ArchiveJob.
Neither side shares mutable state with the other: a FileClosed is only
published after the file it names has been flushed and closed.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


# ============================================================================
# ROTATION PERIOD
# ============================================================================

class RotationPeriod:
    """
    Calendar-day rotation period.

    A period is identified by the UTC date of the delivery wall clock.
    File and archive names are derived from the period, never from the time
    the name is computed.
    """

    FILE_SUFFIX = ".log"
    ARCHIVE_SUFFIX = ".zip"

    @staticmethod
    def for_time(moment: datetime) -> date:
        """Period containing a wall-clock instant (naive values are UTC)."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc).date()

    @classmethod
    def file_name(cls, period: date) -> str:
        return f"{period.isoformat()}{cls.FILE_SUFFIX}"

    @classmethod
    def archive_name(cls, period: date) -> str:
        return f"{period.isoformat()}{cls.ARCHIVE_SUFFIX}"


# ============================================================================
# MESSAGES
# ============================================================================

@dataclass(frozen=True)
class FileClosed:
    """A rotated event file has been flushed, closed and relinquished."""
    path: Path
    period: Optional[date] = None


class ArchiveStatus(str, Enum):
    """Outcome of one archive job."""
    PENDING = "pending"
    ARCHIVED = "archived"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in (ArchiveStatus.ARCHIVED, ArchiveStatus.FAILED)


@dataclass
class ArchiveJob:
    """One closed file paired with the archive it should end up in."""
    source_path: Path
    archive_path: Path
    period: Optional[date] = None
    status: ArchiveStatus = ArchiveStatus.PENDING
    error_message: Optional[str] = None

    @property
    def temp_path(self) -> Path:
        """Where the archive is assembled before being moved into place."""
        return self.archive_path.with_name(self.archive_path.name + ".tmp")


__all__ = [
    "RotationPeriod",
    "FileClosed",
    "ArchiveStatus",
    "ArchiveJob",
]
