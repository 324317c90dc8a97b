# ============================================================================
# WATCH EVENT MODELS
# ============================================================================
# STATUS: Core model - Cluster change events
# PURPOSE: Typed envelopes for the five Nomad watch streams
# CREATED: 12 OCT 2026
# EXPORTS: WatchEventType, AllocationEvent, TaskStateEvent, EvaluationEvent,
#          JobEvent, NodeEvent, WatchEvent, event_from_dict
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Watch Event Models

One model per watch stream. The payload of each event is the object returned
by the Nomad API, kept as an opaque dict: the sink never inspects it, it only
serializes the whole value.

Record layout (one line per event):
{
    "event_type": "allocation",
    "timestamp": "2026-10-12T09:15:02.113000Z",
    "wait_index": 4412,
    "allocation": {...}
}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class WatchEventType(str, Enum):
    """Watch stream that produced an event."""
    ALLOCATION = "allocation"
    TASK_STATE = "task_state"
    EVALUATION = "evaluation"
    JOB = "job"
    NODE = "node"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WatchEventBase(BaseModel):
    """
    Fields shared by every watch event.

    Events are frozen once emitted; ownership moves from stage to stage.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the watch source observed the change (UTC)"
    )
    wait_index: int = Field(
        default=0,
        ge=0,
        description="Nomad raft index returned by the blocking query"
    )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a dict for JSON encoding, event_type first.

        Payloads stay in python mode so NaN, infinities and non-string keys
        reach the encoder unchanged.
        """
        data: Dict[str, Any] = {"event_type": self.event_type.value}
        data.update(self.model_dump(exclude={"event_type"}))
        data["timestamp"] = self.model_dump(mode="json", include={"timestamp"})["timestamp"]
        return data


class AllocationEvent(_WatchEventBase):
    """An allocation was created or its ModifyIndex advanced."""
    event_type: Literal[WatchEventType.ALLOCATION] = WatchEventType.ALLOCATION
    allocation: Dict[str, Any] = Field(default_factory=dict)


class TaskStateEvent(_WatchEventBase):
    """A new task event was recorded on one task of an allocation."""
    event_type: Literal[WatchEventType.TASK_STATE] = WatchEventType.TASK_STATE
    alloc_id: str = ""
    eval_id: str = ""
    job_id: str = ""
    node_id: str = ""
    task_group: str = ""
    task_name: str = ""
    task_state: str = ""
    event: Dict[str, Any] = Field(default_factory=dict)


class EvaluationEvent(_WatchEventBase):
    """A scheduling evaluation was created or updated."""
    event_type: Literal[WatchEventType.EVALUATION] = WatchEventType.EVALUATION
    evaluation: Dict[str, Any] = Field(default_factory=dict)


class JobEvent(_WatchEventBase):
    """A job definition was registered, updated or deregistered."""
    event_type: Literal[WatchEventType.JOB] = WatchEventType.JOB
    job: Dict[str, Any] = Field(default_factory=dict)


class NodeEvent(_WatchEventBase):
    """A client node joined, left or changed status."""
    event_type: Literal[WatchEventType.NODE] = WatchEventType.NODE
    node: Dict[str, Any] = Field(default_factory=dict)


WatchEvent = Annotated[
    Union[AllocationEvent, TaskStateEvent, EvaluationEvent, JobEvent, NodeEvent],
    Field(discriminator="event_type"),
]

_watch_event_adapter = TypeAdapter(WatchEvent)


def event_from_dict(data: Dict[str, Any]) -> WatchEvent:
    """Rebuild a typed event from a decoded record."""
    return _watch_event_adapter.validate_python(data)


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
