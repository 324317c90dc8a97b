# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for the watch event models
# CREATED: 12 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Pydantic models for the events persisted by the sink.
"""

from core.models.events import (
    WatchEventType,
    AllocationEvent,
    TaskStateEvent,
    EvaluationEvent,
    JobEvent,
    NodeEvent,
    WatchEvent,
    event_from_dict,
)

__all__ = [
    "WatchEventType",
    "AllocationEvent",
    "TaskStateEvent",
    "EvaluationEvent",
    "JobEvent",
    "NodeEvent",
    "WatchEvent",
    "event_from_dict",
]
