# ============================================================================
# RECORD ENCODER
# ============================================================================
# STATUS: Core - Event serialization
# PURPOSE: Turn one watch event into one newline-terminated JSON record
# CREATED: 12 OCT 2026
# ============================================================================
"""
Record Encoder

One event in, one line out. Keys keep their insertion order and nothing is
dropped or coerced: a value that JSON cannot represent (NaN, infinities,
sets, arbitrary objects, non-string keys) raises EncodingError, which stops
the pipeline. Silently dropping an event from the log is never an option.
"""

import json
from collections.abc import Mapping
from typing import Any, Dict

from pydantic import BaseModel

from core.errors import EncodingError

RECORD_SEPARATOR = "\n"


def _event_type_of(event: Any) -> str:
    event_type = getattr(event, "event_type", None)
    if event_type is None and isinstance(event, Mapping):
        event_type = event.get("event_type")
    return getattr(event_type, "value", event_type) or type(event).__name__


def _check_keys(value: Any, where: str = "$") -> None:
    """Reject non-string object keys anywhere in the value."""
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(
                    f"key {key!r} at {where} is {type(key).__name__}, not str"
                )
            _check_keys(item, f"{where}.{key}")
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_keys(item, f"{where}[{i}]")


def encode_event(event: Any) -> str:
    """
    Serialize an event into a single record.

    Args:
        event: A watch event model, or any mapping of JSON-compatible values

    Returns:
        One JSON object followed by a newline

    Raises:
        EncodingError: If the event cannot be represented as JSON
    """
    event_type = _event_type_of(event)
    try:
        if isinstance(event, BaseModel):
            data = event.to_dict() if hasattr(event, "to_dict") else event.model_dump(mode="json")
        elif isinstance(event, Mapping):
            data = event
        else:
            raise TypeError(f"unsupported event value of type {type(event).__name__}")

        _check_keys(data)

        line = json.dumps(
            data,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as e:
        raise EncodingError(
            f"Cannot serialize {event_type} event: {e}",
            event_type=event_type,
        ) from e

    return line + RECORD_SEPARATOR


def decode_record(line: str) -> Dict[str, Any]:
    """Decode a single record back into a dict."""
    return json.loads(line)


__all__ = [
    "RECORD_SEPARATOR",
    "encode_event",
    "decode_record",
]
