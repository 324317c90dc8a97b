# ============================================================================
# ENCODER TESTS
# ============================================================================
# STATUS: Tests - Record serialization
# PURPOSE: Verify one event becomes one lossless, self-delimited JSON line
# CREATED: 14 OCT 2026
# ============================================================================
"""
Encoder Tests

Covers:
1. Every event variant encodes to exactly one newline-terminated line
2. Field order and payload are preserved
3. Plain mappings are accepted as-is
4. Unrepresentable values are fatal (EncodingError)

Run with:
    pytest tests/test_encoder.py -v
"""

import json
import math
from datetime import datetime, timezone

import pytest

from core.errors import EncodingError, SinkError
from core.models import (
    AllocationEvent,
    EvaluationEvent,
    JobEvent,
    NodeEvent,
    TaskStateEvent,
    event_from_dict,
)
from pipeline.encoder import decode_record, encode_event


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def observed_at() -> datetime:
    return datetime(2026, 10, 12, 9, 15, 2, tzinfo=timezone.utc)


@pytest.fixture
def all_variants(observed_at):
    return [
        AllocationEvent(
            timestamp=observed_at,
            wait_index=10,
            allocation={"ID": "a1", "ClientStatus": "running", "ModifyIndex": 10},
        ),
        TaskStateEvent(
            timestamp=observed_at,
            wait_index=11,
            alloc_id="a1",
            job_id="web",
            task_group="frontend",
            task_name="nginx",
            task_state="running",
            event={"Type": "Started", "Time": 1760260502000000000},
        ),
        EvaluationEvent(timestamp=observed_at, wait_index=12, evaluation={"ID": "e1"}),
        JobEvent(timestamp=observed_at, wait_index=13, job={"ID": "web", "Status": "running"}),
        NodeEvent(timestamp=observed_at, wait_index=14, node={"ID": "n1", "Status": "ready"}),
    ]


# ============================================================================
# RECORD SHAPE
# ============================================================================

class TestRecordShape:
    """One event, one line."""

    def test_every_variant_is_one_line(self, all_variants):
        for event in all_variants:
            record = encode_event(event)

            assert record.endswith("\n")
            assert record.count("\n") == 1
            assert decode_record(record)["event_type"] == event.event_type.value

    def test_event_type_comes_first(self, all_variants):
        record = encode_event(all_variants[0])

        keys = list(json.loads(record).keys())

        assert keys[0] == "event_type"
        assert keys[1:] == ["timestamp", "wait_index", "allocation"]

    def test_embedded_newlines_stay_escaped(self, observed_at):
        event = JobEvent(timestamp=observed_at, job={"ID": "x", "Meta": {"note": "line1\nline2"}})

        record = encode_event(event)

        assert record.count("\n") == 1
        assert decode_record(record)["job"]["Meta"]["note"] == "line1\nline2"

    def test_non_ascii_is_kept(self, observed_at):
        event = NodeEvent(timestamp=observed_at, node={"Name": "nœud-été"})

        record = encode_event(event)

        assert "nœud-été" in record


# ============================================================================
# LOSSLESSNESS
# ============================================================================

class TestLossless:
    """Decoding a record gives back the same event."""

    def test_payload_key_order_is_preserved(self, observed_at):
        payload = {"z": 1, "a": 2, "m": {"y": 1, "b": 2}}
        event = AllocationEvent(timestamp=observed_at, allocation=payload)

        decoded = decode_record(encode_event(event))

        assert list(decoded["allocation"].keys()) == ["z", "a", "m"]
        assert list(decoded["allocation"]["m"].keys()) == ["y", "b"]

    def test_decoded_record_rebuilds_event(self, all_variants):
        for event in all_variants:
            rebuilt = event_from_dict(decode_record(encode_event(event)))

            assert type(rebuilt) is type(event)
            assert rebuilt.to_dict() == event.to_dict()

    def test_mapping_is_encoded_as_is(self):
        record = encode_event({"event_type": "job", "b": 1, "a": [1, 2]})

        assert record == '{"event_type":"job","b":1,"a":[1,2]}\n'

    def test_encoding_is_deterministic(self, all_variants):
        for event in all_variants:
            assert encode_event(event) == encode_event(event)


# ============================================================================
# FAILURES
# ============================================================================

class TestEncodingFailures:
    """Unserializable events are fatal, never dropped."""

    def test_arbitrary_object_raises(self):
        with pytest.raises(EncodingError) as exc_info:
            encode_event({"event_type": "job", "job": object()})

        assert exc_info.value.event_type == "job"

    def test_nan_raises(self):
        with pytest.raises(EncodingError):
            encode_event({"event_type": "node", "load": math.nan})

    def test_unsupported_value_raises(self):
        with pytest.raises(EncodingError):
            encode_event(42)

    def test_encoding_error_is_fatal_sink_error(self):
        with pytest.raises(SinkError):
            encode_event({"bad": {1, 2, 3}})

    def test_nan_in_typed_event_raises(self, observed_at):
        event = JobEvent(timestamp=observed_at, job={"ID": "web", "ratio": math.nan})

        with pytest.raises(EncodingError) as exc_info:
            encode_event(event)

        assert exc_info.value.event_type == "job"

    def test_infinity_in_typed_event_raises(self, observed_at):
        event = NodeEvent(timestamp=observed_at, node={"Resources": {"CPU": math.inf}})

        with pytest.raises(EncodingError):
            encode_event(event)

    def test_non_string_keys_raise(self):
        with pytest.raises(EncodingError) as exc_info:
            encode_event({"event_type": "job", "job": {1: "a", "1": "b"}})

        assert "$.job" in str(exc_info.value)

    def test_non_string_keys_in_typed_event_raise(self, observed_at):
        event = AllocationEvent(
            timestamp=observed_at,
            allocation={"ID": "a1", "Metrics": [{None: 1}]},
        )

        with pytest.raises(EncodingError):
            encode_event(event)

    def test_timestamp_is_iso_formatted(self, observed_at):
        event = JobEvent(timestamp=observed_at, job={"ID": "web"})

        decoded = decode_record(encode_event(event))

        assert decoded["timestamp"].startswith("2026-10-12T09:15:02")
