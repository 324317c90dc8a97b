# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# STATUS: Foundation - Exceptions shared by pipeline stages
# PURPOSE: Separate fatal sink errors from best-effort archival errors
# CREATED: 12 OCT 2026
# ============================================================================
"""
Error Taxonomy

Fatal (cross the sink boundary and stop the process):
- SinkError and its subclasses: encoding, open/write/flush/close failures

Best-effort (absorbed and logged by the owning component):
- ArchiveError: compression of a rotated file failed
- WatchError: a watch stream gave up talking to Nomad
"""

from pathlib import Path
from typing import Optional, Union


# ============================================================================
# FATAL
# ============================================================================

class SinkError(Exception):
    """Base exception for errors that must stop ingestion."""
    pass


class EncodingError(SinkError):
    """Raised when an event cannot be serialized into a record."""

    def __init__(self, message: str, event_type: Optional[str] = None):
        self.event_type = event_type
        super().__init__(message)


class SinkWriteError(SinkError):
    """Raised when the active event file cannot be opened, written or closed."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        operation: Optional[str] = None,
    ):
        self.path = path
        self.operation = operation
        super().__init__(message)


class SinkClosedError(SinkError):
    """Raised when writing to a sink that was closed or has failed."""
    pass


# ============================================================================
# BEST EFFORT
# ============================================================================

class ArchiveError(Exception):
    """Raised inside the archiver when a rotated file cannot be compressed."""

    def __init__(self, message: str, source_path: Optional[Path] = None):
        self.source_path = source_path
        super().__init__(message)


class WatchError(Exception):
    """Raised by a watch stream after exhausting its retries."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        self.endpoint = endpoint
        super().__init__(message)


__all__ = [
    "SinkError",
    "EncodingError",
    "SinkWriteError",
    "SinkClosedError",
    "ArchiveError",
    "WatchError",
]
