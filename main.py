# ============================================================================
# NOMAD EVENT SINK - MAIN ENTRY POINT
# ============================================================================
# STATUS: Core - Process entry point
# PURPOSE: Parse options, wire Nomad watch streams into the event pipeline
# CREATED: 14 OCT 2026
# ============================================================================
"""
Nomad Event Sink Main Entry Point

Starts a process that:
1. Watches allocations, task states, evaluations, jobs and nodes in Nomad
2. Appends every change as one JSON line to the event file
3. Rotates the event file daily and zips rotated files (optional)
4. Serves /health for liveness probes (optional)

Usage:
    python main.py --event-file /var/log/nomad-events.json
    python main.py --log-rotate --archive --event-file /var/log/nomad-events

Every option can also be set through the environment:
    EVENT_FILE, LOG_ROTATE, ARCHIVE, ARCHIVE_DIR, DEBUG, LOG_FILE, LOG_FORMAT,
    HEALTH_PORT, NOMAD_ADDR, NOMAD_TOKEN, NOMAD_REGION

Exit codes:
    0    all watch streams ended
    1    fatal sink error or invalid configuration
    130  interrupted (SIGINT / SIGTERM)
"""

import argparse
import asyncio
import os
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, AsyncIterable, Callable, List, Mapping, Optional

from aiohttp import web

from __version__ import __version__, BUILD_DATE
from core.config import AppConfig, SinkConfig
from core.errors import SinkError
from core.logging import configure_logging, get_logger
from pipeline.runner import EventPipeline, build_pipeline
from watcher.client import NomadClient
from watcher.streams import build_sources

logger = get_logger(__name__, component="main")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

SourcesFactory = Callable[[NomadClient], Mapping[str, AsyncIterable[Any]]]


# ============================================================================
# OPTIONS
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line options, defaulting from the environment."""
    env = AppConfig.from_env()

    parser = argparse.ArgumentParser(
        description="Persist Nomad cluster change events as JSON lines",
    )
    parser.add_argument(
        "--event-file",
        default=os.getenv("EVENT_FILE"),
        help="Path to JSON event file (a directory when --log-rotate is set) [EVENT_FILE]",
    )
    parser.add_argument(
        "--log-rotate",
        action="store_true",
        default=env.sink.rotation_enabled,
        help="Rotate the event file daily [LOG_ROTATE]",
    )
    parser.add_argument(
        "--archive",
        action="store_true",
        default=env.sink.archive_enabled,
        help="Zip each rotated event file [ARCHIVE]",
    )
    parser.add_argument(
        "--archive-dir",
        default=os.getenv("ARCHIVE_DIR"),
        help="Archive directory (default: <event-file>/archive) [ARCHIVE_DIR]",
    )
    parser.add_argument(
        "--log-file",
        default=os.getenv("LOG_FILE"),
        help="Write JSON application logs to this file [LOG_FILE]",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default=env.log_format if env.log_format in ("text", "json") else "text",
        help="Log format on stdout [LOG_FORMAT]",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=env.debug,
        help="Enable debug logging [DEBUG]",
    )
    parser.add_argument(
        "--nomad-addr",
        default=env.nomad.address,
        help="Nomad HTTP API address [NOMAD_ADDR]",
    )
    parser.add_argument(
        "--health-port",
        type=int,
        default=env.health_port,
        help="Serve /health on this port, 0 to disable [HEALTH_PORT]",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__} ({BUILD_DATE})",
    )

    args = parser.parse_args(argv)
    if not args.event_file:
        parser.error("--event-file is required (or set EVENT_FILE)")
    return args


def config_from_args(args: argparse.Namespace) -> AppConfig:
    """Merge parsed options over the environment defaults."""
    env = AppConfig.from_env()
    return AppConfig(
        sink=SinkConfig.from_event_file(
            args.event_file,
            rotate=args.log_rotate,
            archive=args.archive,
            archive_dir=args.archive_dir,
        ),
        nomad=replace(env.nomad, address=args.nomad_addr),
        debug=args.debug,
        log_file=Path(args.log_file).expanduser() if args.log_file else None,
        log_format=args.log_format,
        health_port=args.health_port,
    )


# ============================================================================
# HEALTH SERVER
# ============================================================================

async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Healthy while the pipeline is running and has not hit a fatal error.
    """
    pipeline: EventPipeline = request.app["pipeline"]
    stats = pipeline.stats()
    healthy = stats["running"] and not stats["fatal_error"]

    response_data = {
        "status": "healthy" if healthy else "unhealthy",
        "version": __version__,
        "build_date": BUILD_DATE,
        "pipeline": stats,
    }
    return web.json_response(response_data, status=200 if healthy else 503)


async def start_health_server(pipeline: EventPipeline, port: int) -> web.AppRunner:
    """Start minimal HTTP server for health probes."""
    app = web.Application()
    app["pipeline"] = pipeline
    app.router.add_get("/health", health_handler)
    app.router.add_get("/livez", health_handler)
    app.router.add_get("/readyz", health_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info(f"Health server started on port {port}")
    return runner


# ============================================================================
# MAIN
# ============================================================================

def _install_signal_handlers(task: asyncio.Task) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / not the main thread
            pass


async def _close_sources(sources: Mapping[str, AsyncIterable[Any]]) -> None:
    """Close any watch stream the pipeline left open before the client goes."""
    for stream in sources.values():
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


async def main(
    argv: Optional[List[str]] = None,
    sources_factory: SourcesFactory = build_sources,
    configure: bool = True,
) -> int:
    """
    Main entry point.

    Returns:
        Process exit code
    """
    try:
        config = config_from_args(parse_args(argv))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    if configure:
        configure_logging(
            level=config.log_level,
            json_output=config.log_format == "json",
            log_file=config.log_file,
        )

    logger.info(f"Nomad Event Sink v{__version__} (build {BUILD_DATE})")
    logger.debug(f"Configuration: {config}")

    issues = config.validate()
    if issues:
        for issue in issues:
            logger.error(f"Invalid configuration: {issue}")
        return EXIT_FAILURE

    client = NomadClient(config.nomad)
    sources = sources_factory(client)
    pipeline = build_pipeline(config.sink, sources)

    health_runner = None
    if config.health_port:
        health_runner = await start_health_server(pipeline, config.health_port)

    pipeline_task = asyncio.create_task(pipeline.run(), name="event-pipeline")
    _install_signal_handlers(pipeline_task)

    try:
        count = await pipeline_task
        logger.info(f"All watch streams ended after {count} events")
        return EXIT_OK
    except asyncio.CancelledError:
        logger.info("Interrupted, event file flushed and closed")
        return EXIT_INTERRUPTED
    except SinkError as e:
        logger.exception(f"Event sink failed, stopping: {e}")
        return EXIT_FAILURE
    finally:
        await _close_sources(sources)
        await client.close()
        if health_runner is not None:
            await health_runner.cleanup()


def run() -> None:
    """Synchronous entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
