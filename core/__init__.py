# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export contracts, errors and event models
# CREATED: 12 OCT 2026
# ============================================================================

from core.contracts import ArchiveJob, ArchiveStatus, FileClosed, RotationPeriod
from core.errors import (
    ArchiveError,
    EncodingError,
    SinkClosedError,
    SinkError,
    SinkWriteError,
    WatchError,
)
from core.models import (
    AllocationEvent,
    EvaluationEvent,
    JobEvent,
    NodeEvent,
    TaskStateEvent,
    WatchEvent,
    WatchEventType,
)

__all__ = [
    # Contracts
    "ArchiveJob",
    "ArchiveStatus",
    "FileClosed",
    "RotationPeriod",
    # Errors
    "ArchiveError",
    "EncodingError",
    "SinkClosedError",
    "SinkError",
    "SinkWriteError",
    "WatchError",
    # Models
    "AllocationEvent",
    "EvaluationEvent",
    "JobEvent",
    "NodeEvent",
    "TaskStateEvent",
    "WatchEvent",
    "WatchEventType",
]
