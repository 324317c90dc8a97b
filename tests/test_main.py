# ============================================================================
# MAIN ENTRY POINT TESTS
# ============================================================================
# STATUS: Tests - Process wiring
# PURPOSE: Verify option parsing, exit codes and the health endpoint
# CREATED: 16 OCT 2026
# ============================================================================
"""
Main Entry Point Tests

Watch streams are replaced with in-memory sources so no Nomad cluster is
needed.

Run with:
    pytest tests/test_main.py -v
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import main
from core.models import JobEvent, NodeEvent
from pipeline.sink import RotatingSink

ENV_VARS = (
    "EVENT_FILE", "LOG_ROTATE", "ARCHIVE", "ARCHIVE_DIR", "DEBUG", "LOG_FILE",
    "LOG_FORMAT", "HEALTH_PORT", "NOMAD_ADDR", "NOMAD_TOKEN", "NOMAD_REGION",
    "NOMAD_WAIT_SECONDS", "NOMAD_MAX_BACKOFF_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def fake_sources(count: int = 3):
    async def jobs():
        for i in range(count):
            yield JobEvent(wait_index=i, job={"ID": f"job-{i}"})

    async def nodes():
        yield NodeEvent(wait_index=100, node={"ID": "node-1"})

    def factory(client):
        return {"jobs": jobs(), "nodes": nodes()}

    return factory


# ============================================================================
# OPTIONS
# ============================================================================

class TestOptions:
    def test_event_file_is_required(self):
        with pytest.raises(SystemExit):
            main.parse_args([])

    def test_event_file_from_environment(self, monkeypatch):
        monkeypatch.setenv("EVENT_FILE", "/data/events")
        monkeypatch.setenv("LOG_ROTATE", "1")

        config = main.config_from_args(main.parse_args([]))

        assert config.sink.rotation_enabled is True
        assert config.sink.rotation_directory == Path("/data/events")

    def test_flags(self):
        args = main.parse_args([
            "--event-file", "/data/events",
            "--log-rotate", "--archive",
            "--archive-dir", "/data/zips",
            "--nomad-addr", "http://nomad:4646",
            "--debug",
        ])

        config = main.config_from_args(args)

        assert config.sink.archive_enabled is True
        assert config.sink.resolved_archive_directory == Path("/data/zips")
        assert config.nomad.address == "http://nomad:4646"
        assert config.log_level == "DEBUG"


# ============================================================================
# EXIT CODES
# ============================================================================

class TestMain:
    def test_streams_ending_exits_zero(self, tmp_path):
        path = tmp_path / "events.json"

        code = asyncio.run(main.main(
            ["--event-file", str(path)], sources_factory=fake_sources(), configure=False
        ))

        assert code == main.EXIT_OK
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 4
        assert sorted(json.loads(line)["event_type"] for line in lines) == ["job", "job", "job", "node"]

    def test_archive_without_rotation_exits_one(self, tmp_path):
        code = asyncio.run(main.main(
            ["--event-file", str(tmp_path / "events.json"), "--archive"],
            sources_factory=fake_sources(),
            configure=False,
        ))

        assert code == main.EXIT_FAILURE
        assert not (tmp_path / "events.json").exists()

    def test_malformed_environment_exits_one(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HEALTH_PORT", "not-a-port")

        code = asyncio.run(main.main(
            ["--event-file", str(tmp_path / "events.json")],
            sources_factory=fake_sources(),
            configure=False,
        ))

        assert code == main.EXIT_FAILURE
        assert not (tmp_path / "events.json").exists()

    def test_sources_are_closed_on_exit(self, tmp_path):
        closed = []

        class Stream:
            def __init__(self, name):
                self.name = name

            def __aiter__(self):
                return self

            async def __anext__(self):
                raise StopAsyncIteration

            async def aclose(self):
                closed.append(self.name)

        def factory(client):
            return {"jobs": Stream("jobs"), "nodes": Stream("nodes")}

        code = asyncio.run(main.main(
            ["--event-file", str(tmp_path / "events.json")],
            sources_factory=factory,
            configure=False,
        ))

        assert code == main.EXIT_OK
        assert sorted(closed) == ["jobs", "nodes"]

    def test_write_failure_exits_one(self, tmp_path):
        with patch.object(RotatingSink, "_append", side_effect=OSError("disk full")):
            code = asyncio.run(main.main(
                ["--event-file", str(tmp_path / "events.json")],
                sources_factory=fake_sources(),
                configure=False,
            ))

        assert code == main.EXIT_FAILURE

    def test_rotation_writes_into_directory(self, tmp_path):
        directory = tmp_path / "events"

        code = asyncio.run(main.main(
            ["--event-file", str(directory), "--log-rotate"],
            sources_factory=fake_sources(),
            configure=False,
        ))

        assert code == main.EXIT_OK
        files = list(directory.glob("*.log"))
        assert len(files) == 1
        assert len(files[0].read_text(encoding="utf-8").splitlines()) == 4


# ============================================================================
# HEALTH
# ============================================================================

class TestHealthHandler:
    def _request(self, stats):
        pipeline = MagicMock()
        pipeline.stats.return_value = stats
        request = MagicMock()
        request.app = {"pipeline": pipeline}
        return request

    def test_running_pipeline_is_healthy(self):
        request = self._request({"running": True, "fatal_error": None})

        response = asyncio.run(main.health_handler(request))

        assert response.status == 200
        assert json.loads(response.text)["status"] == "healthy"

    def test_stopped_pipeline_is_unhealthy(self):
        request = self._request({"running": False, "fatal_error": None})

        response = asyncio.run(main.health_handler(request))

        assert response.status == 503

    def test_fatal_error_is_unhealthy(self):
        request = self._request({"running": True, "fatal_error": "disk full"})

        response = asyncio.run(main.health_handler(request))

        assert response.status == 503
        assert json.loads(response.text)["status"] == "unhealthy"
