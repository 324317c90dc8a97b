# ============================================================================
# APPLICATION SETTINGS
# ============================================================================
# STATUS: Core - Runtime configuration
# PURPOSE: Sink, Nomad and process settings with environment overrides
# CREATED: 12 OCT 2026
# ============================================================================
"""
Application Settings

Configuration is built once at startup and passed explicitly to each
component's constructor. Nothing here is read from module-level globals
after construction.

Design:
- Dataclasses for settings
- Environment variable overrides via from_env()
- validate() returns human-readable problems instead of raising
- from_env() raises ValueError naming the variable when a value does not parse
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    """Read an integer from the environment, naming the variable on error."""
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    return Path(value).expanduser() if value else None


# ============================================================================
# SINK
# ============================================================================

@dataclass(frozen=True)
class SinkConfig:
    """
    Where and how events are persisted.

    Rotation enabled:  one file per UTC day under rotation_directory
    Rotation disabled: a single append-only file at output_path
    """
    rotation_enabled: bool = False
    archive_enabled: bool = False
    output_path: Optional[Path] = None
    rotation_directory: Optional[Path] = None
    archive_directory: Optional[Path] = None

    @property
    def resolved_archive_directory(self) -> Optional[Path]:
        """Archive directory, defaulting to <rotation_directory>/archive."""
        if self.archive_directory is not None:
            return self.archive_directory
        if self.rotation_directory is not None:
            return self.rotation_directory / "archive"
        return None

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty if valid)."""
        issues = []
        if self.rotation_enabled and self.rotation_directory is None:
            issues.append("rotation is enabled but no rotation directory is set")
        if not self.rotation_enabled and self.output_path is None:
            issues.append("rotation is disabled but no output path is set")
        if self.archive_enabled and not self.rotation_enabled:
            issues.append("archival requires rotation to be enabled")
        return issues

    @classmethod
    def from_event_file(
        cls,
        event_file: str,
        rotate: bool = False,
        archive: bool = False,
        archive_dir: Optional[str] = None,
    ) -> "SinkConfig":
        """
        Build from the single event-file setting.

        With rotation the event file names a directory, otherwise a file.
        """
        path = Path(event_file).expanduser()
        return cls(
            rotation_enabled=rotate,
            archive_enabled=archive,
            output_path=None if rotate else path,
            rotation_directory=path if rotate else None,
            archive_directory=Path(archive_dir).expanduser() if archive_dir else None,
        )

    @classmethod
    def from_env(cls) -> "SinkConfig":
        """Create from environment variables."""
        event_file = os.getenv("EVENT_FILE", "").strip()
        rotate = _env_bool("LOG_ROTATE")
        if not event_file:
            return cls(
                rotation_enabled=rotate,
                archive_enabled=_env_bool("ARCHIVE"),
                archive_directory=_env_path("ARCHIVE_DIR"),
            )
        return cls.from_event_file(
            event_file,
            rotate=rotate,
            archive=_env_bool("ARCHIVE"),
            archive_dir=os.getenv("ARCHIVE_DIR") or None,
        )


# ============================================================================
# NOMAD
# ============================================================================

@dataclass(frozen=True)
class NomadConfig:
    """Connection settings for the Nomad HTTP API."""
    address: str = "http://127.0.0.1:4646"
    token: Optional[str] = None
    region: Optional[str] = None
    wait_seconds: int = 300  # blocking query wait
    request_timeout_seconds: float = 330.0  # must exceed wait_seconds
    max_backoff_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "NomadConfig":
        """Create from the standard Nomad environment variables."""
        wait_seconds = _env_int("NOMAD_WAIT_SECONDS", 300)
        return cls(
            address=os.getenv("NOMAD_ADDR", "http://127.0.0.1:4646"),
            token=os.getenv("NOMAD_TOKEN") or None,
            region=os.getenv("NOMAD_REGION") or None,
            wait_seconds=wait_seconds,
            request_timeout_seconds=float(wait_seconds + 30),
            max_backoff_seconds=_env_float("NOMAD_MAX_BACKOFF_SECONDS", 60.0),
        )


# ============================================================================
# APPLICATION
# ============================================================================

@dataclass(frozen=True)
class AppConfig:
    """Container for all runtime settings."""
    sink: SinkConfig = field(default_factory=SinkConfig)
    nomad: NomadConfig = field(default_factory=NomadConfig)
    debug: bool = False
    log_file: Optional[Path] = None
    log_format: str = "text"  # "text" or "json"
    health_port: int = 0  # 0 disables the health server

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else "INFO"

    def validate(self) -> List[str]:
        """Return a list of configuration problems (empty if valid)."""
        issues = self.sink.validate()
        if self.log_format not in ("text", "json"):
            issues.append(f"unknown log format '{self.log_format}' (expected text or json)")
        if self.health_port < 0:
            issues.append(f"invalid health port {self.health_port}")
        return issues

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create all settings from environment variables."""
        return cls(
            sink=SinkConfig.from_env(),
            nomad=NomadConfig.from_env(),
            debug=_env_bool("DEBUG"),
            log_file=_env_path("LOG_FILE"),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            health_port=_env_int("HEALTH_PORT", 0),
        )


__all__ = [
    "SinkConfig",
    "NomadConfig",
    "AppConfig",
]
