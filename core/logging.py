# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across all pipeline stages
# CREATED: 12 OCT 2026
# ============================================================================
"""
Structured Logging

Two output modes:
- text: one line per record, context fields shown inline (development)
- json: one JSON object per record (log aggregation, --log-file)

Context fields (stream, period, path, component) are held in a ContextVar,
so each watch stream's producer task logs with its own stream name without
passing it around.

Usage:
    import logging
    from core.logging import log_context, log_checkpoint

    logger = logging.getLogger(__name__)

    with log_context(stream="jobs", component="watcher"):
        logger.info("Blocking query returned")
        log_checkpoint("stream_exhausted", {"delivered": 12})
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

CONTEXT_FIELDS = ("stream", "period", "path", "component")


@dataclass(frozen=True)
class LogContext:
    """Fields attached to every record logged inside a log_context block."""
    stream: Optional[str] = None
    period: Optional[str] = None
    path: Optional[str] = None
    component: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty fields, extra merged in."""
        result = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "extra" and getattr(self, f.name) is not None
        }
        result.update(self.extra)
        return result


_current_context: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "log_context", default=LogContext()
)


def get_current_context() -> LogContext:
    return _current_context.get()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """
    Layer context fields over the enclosing context.

    Known fields replace the parent's value; anything else lands in extra.

    Example:
        with log_context(period="2026-10-12", path="/var/log/events/2026-10-12.log"):
            logger.info("Rotating")
    """
    parent = get_current_context()
    known = {k: v for k, v in kwargs.items() if k in CONTEXT_FIELDS}
    extra = {k: v for k, v in kwargs.items() if k not in CONTEXT_FIELDS}
    context = replace(parent, **known, extra={**parent.extra, **extra})

    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per record, context under "context"."""

    def __init__(self, include_source: bool = True):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_current_context().to_dict()
        if context:
            log_data["context"] = context

        data = getattr(record, "data", None)
        if data:
            log_data["data"] = data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Single-line formatter for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        parts = [
            f"{name}={getattr(context, name)}"
            for name in ("stream", "period", "path")
            if getattr(context, name)
        ]
        context_str = f" [{', '.join(parts)}]" if parts else ""

        data = getattr(record, "data", None)
        data_str = f" {data}" if data else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}{data_str}"
        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"
        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that pins a component name.

    Records logged outside any log_context still carry the component.
    """

    def log(self, level, msg, *args, **kwargs):
        component = (self.extra or {}).get("component")
        if component and get_current_context().component is None:
            with log_context(component=component):
                super().log(level, msg, *args, **kwargs)
        else:
            super().log(level, msg, *args, **kwargs)


def get_logger(name: str, component: Optional[str] = None) -> ContextLogger:
    """
    Get a logger that tags records with a component.

    Args:
        name: Logger name (e.g., "main")
        component: Component name used when no context sets one
    """
    return ContextLogger(logging.getLogger(name), {"component": component})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    include_source: bool = True,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON records instead of text on stdout
        log_file: Append JSON records to this file instead of stdout
        include_source: Include file/line/function in JSON records
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if log_file or json_output:
        formatter: logging.Formatter = StructuredFormatter(include_source=include_source)
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    for existing in root.handlers[:]:
        root.removeHandler(existing)
        existing.close()

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # aiohttp access logs would interleave one line per health probe
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named checkpoint.

    Checkpoints mark milestones worth querying later:
    file_rotated, archive_written, stream_exhausted.

    Args:
        name: Checkpoint name
        data: Optional checkpoint data
        logger: Logger to use (defaults to "checkpoint")
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = {"checkpoint": name}
    if data:
        checkpoint_data.update(data)

    logger.info(f"CHECKPOINT: {name}", extra={"data": checkpoint_data})


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
