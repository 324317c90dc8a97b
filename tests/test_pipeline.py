# ============================================================================
# PIPELINE TESTS
# ============================================================================
# STATUS: Tests - End-to-end write path
# PURPOSE: Verify watch streams -> aggregator -> encoder -> sink -> archiver
# CREATED: 15 OCT 2026
# ============================================================================
"""
Pipeline Tests

End-to-end scenarios for the event write path:
1. N events from interleaved streams -> exactly N records, once each
2. Rotation disabled: one file, records in delivery order
3. Day change with rotation and archival: two files, one archive
4. Forced write failure: fatal, nothing written afterwards
5. Unwritable archive directory: ingestion unaffected, failure only logged

Run with:
    pytest tests/test_pipeline.py -v
"""

import asyncio
import logging
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, List

import pytest

from core.config import SinkConfig
from core.errors import EncodingError, SinkWriteError
from core.models import AllocationEvent, JobEvent, NodeEvent, event_from_dict
from pipeline.encoder import decode_record
from pipeline.runner import EventPipeline, build_pipeline
from pipeline.sink import RotatingSink


# ============================================================================
# HELPERS
# ============================================================================

class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def timed(events: List[Any], delays: List[float]) -> AsyncIterator[Any]:
    """Yield each event after its own delay (seconds since stream start)."""
    elapsed = 0.0
    for event, at in zip(events, delays):
        await asyncio.sleep(at - elapsed)
        elapsed = at
        yield event


def read_records(path: Path):
    return [decode_record(line) for line in path.read_text(encoding="utf-8").splitlines()]


def alloc(n: int) -> AllocationEvent:
    return AllocationEvent(wait_index=n, allocation={"ID": f"alloc-{n}", "ModifyIndex": n})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 12, 22, 0, tzinfo=timezone.utc))


# ============================================================================
# DELIVERY
# ============================================================================

class TestDelivery:
    """Exactly one record per event."""

    def test_interleaved_streams_write_each_event_once(self, tmp_path):
        names = ["allocations", "task_states", "evaluations", "jobs", "nodes"]
        sources = {
            name: timed(
                [JobEvent(wait_index=i, job={"ID": f"{name}-{i}"}) for i in range(25)],
                [0.001 * i * (n + 1) for i in range(25)],
            )
            for n, name in enumerate(names)
        }
        path = tmp_path / "events.json"
        pipeline = build_pipeline(SinkConfig(output_path=path), sources)

        count = asyncio.run(pipeline.run())

        records = read_records(path)
        ids = [record["job"]["ID"] for record in records]
        assert count == 125
        assert len(records) == 125
        assert len(set(ids)) == 125
        for name in names:
            per_stream = [int(i.split("-")[-1]) for i in ids if i.startswith(f"{name}-")]
            assert per_stream == list(range(25))

    def test_six_events_one_period_rotation_disabled(self, tmp_path):
        a1, a2, a3 = alloc(1), alloc(2), alloc(3)
        job = JobEvent(wait_index=4, job={"ID": "web"})
        n1 = NodeEvent(wait_index=5, node={"ID": "node-1"})
        n2 = NodeEvent(wait_index=6, node={"ID": "node-2"})
        sources = {
            "allocations": timed([a1, a2, a3], [0.00, 0.02, 0.08]),
            "jobs": timed([job], [0.04]),
            "nodes": timed([n1, n2], [0.06, 0.10]),
        }
        path = tmp_path / "events.json"
        pipeline = build_pipeline(SinkConfig(output_path=path), sources)

        asyncio.run(pipeline.run())

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 6
        rebuilt = [event_from_dict(decode_record(line)) for line in lines]
        assert [event.wait_index for event in rebuilt] == [1, 2, 4, 5, 3, 6]
        assert [event.to_dict() for event in rebuilt] == [
            e.to_dict() for e in (a1, a2, job, n1, a3, n2)
        ]

    def test_stats_after_run(self, tmp_path):
        sources = {"jobs": timed([JobEvent(job={"ID": "x"})], [0])}
        pipeline = build_pipeline(SinkConfig(output_path=tmp_path / "e.json"), sources)

        asyncio.run(pipeline.run())
        stats = pipeline.stats()

        assert stats["running"] is False
        assert stats["events_persisted"] == 1
        assert stats["sink"]["closed"] is True
        assert stats["streams"]["delivered"] == {"jobs": 1}


# ============================================================================
# ROTATION AND ARCHIVAL
# ============================================================================

class TestRotationScenario:
    """One event on D1, one on D2."""

    def test_day_change_rotates_and_archives(self, tmp_path, clock):
        events_dir = tmp_path / "events"
        config = SinkConfig(
            rotation_enabled=True,
            archive_enabled=True,
            rotation_directory=events_dir,
        )
        holder = {}

        async def two_days():
            yield alloc(1)
            while holder["pipeline"].sink.stats()["records_written"] < 1:
                await asyncio.sleep(0.001)
            clock.advance(days=1)
            yield alloc(2)

        pipeline = build_pipeline(config, {"allocations": two_days()}, clock=clock)
        holder["pipeline"] = pipeline

        asyncio.run(pipeline.run())

        d1 = events_dir / "2026-10-12.log"
        d2 = events_dir / "2026-10-13.log"
        assert len(read_records(d1)) == 1
        assert len(read_records(d2)) == 1
        archives = list((events_dir / "archive").iterdir())
        assert [p.name for p in archives] == ["2026-10-12.zip"]
        with zipfile.ZipFile(archives[0]) as zf:
            assert zf.namelist() == ["2026-10-12.log"]
            assert zf.read("2026-10-12.log") == d1.read_bytes()

    def test_unwritable_archive_directory_does_not_affect_ingestion(self, tmp_path, clock, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        events_dir = tmp_path / "events"
        config = SinkConfig(
            rotation_enabled=True,
            archive_enabled=True,
            rotation_directory=events_dir,
            archive_directory=blocker / "archive",
        )
        holder = {}

        async def three_days():
            for day in range(3):
                yield alloc(day)
                while holder["pipeline"].sink.stats()["records_written"] < day + 1:
                    await asyncio.sleep(0.001)
                clock.advance(days=1)

        pipeline = build_pipeline(config, {"allocations": three_days()}, clock=clock)
        holder["pipeline"] = pipeline

        with caplog.at_level(logging.ERROR, logger="pipeline.archiver"):
            count = asyncio.run(pipeline.run())

        assert count == 3
        assert sorted(p.name for p in events_dir.iterdir()) == [
            "2026-10-12.log", "2026-10-13.log", "2026-10-14.log",
        ]
        for path in events_dir.iterdir():
            assert len(read_records(path)) == 1
        assert pipeline.stats()["archiver"]["failed"] == 2
        assert "dropping job" in caplog.text


# ============================================================================
# FATAL ERRORS
# ============================================================================

class TestFatalErrors:
    """Sink errors stop the pipeline."""

    def test_forced_write_failure_stops_pipeline(self, tmp_path):
        path = tmp_path / "events.json"
        sink = RotatingSink.fixed(path)
        real_append = sink._append
        calls = {"n": 0}

        def failing_third(fh, record):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OSError(5, "Input/output error")
            return real_append(fh, record)

        sink._append = failing_third
        sources = {"allocations": timed([alloc(i) for i in range(10)], [0.0] * 10)}
        pipeline = EventPipeline(sources, sink)

        with pytest.raises(SinkWriteError):
            asyncio.run(pipeline.run())

        records = read_records(path)
        assert [r["wait_index"] for r in records] == [0, 1]
        assert pipeline.stats()["fatal_error"] is not None
        assert pipeline.stats()["running"] is False
        assert all(task.done() for task in pipeline.aggregator._tasks.values())

    def test_unserializable_event_is_fatal(self, tmp_path):
        path = tmp_path / "events.json"

        async def bad():
            yield JobEvent(job={"ID": "ok"})
            yield {"event_type": "job", "job": object()}
            yield JobEvent(job={"ID": "never"})

        pipeline = build_pipeline(SinkConfig(output_path=path), {"jobs": bad()})

        with pytest.raises(EncodingError):
            asyncio.run(pipeline.run())

        assert [r["job"]["ID"] for r in read_records(path)] == ["ok"]

    def test_cancellation_closes_the_file(self, tmp_path):
        path = tmp_path / "events.json"

        async def endless():
            i = 0
            while True:
                yield JobEvent(wait_index=i, job={"ID": str(i)})
                i += 1
                await asyncio.sleep(0.001)

        async def scenario():
            pipeline = build_pipeline(SinkConfig(output_path=path), {"jobs": endless()})
            task = asyncio.create_task(pipeline.run())
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return pipeline

        pipeline = asyncio.run(scenario())

        assert pipeline.sink.closed
        assert not pipeline.sink.is_open
        # at least once: a write in flight when cancelled still lands
        assert len(read_records(path)) >= pipeline.stats()["events_persisted"] > 0
