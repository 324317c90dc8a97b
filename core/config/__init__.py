# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration
# PURPOSE: Centralized configuration management
# CREATED: 12 OCT 2026
# ============================================================================
"""
Configuration Module

Provides the settings consumed by the sink, the Nomad client and main.
"""

from core.config.settings import (
    SinkConfig,
    NomadConfig,
    AppConfig,
)

__all__ = [
    "SinkConfig",
    "NomadConfig",
    "AppConfig",
]
