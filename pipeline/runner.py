# ============================================================================
# EVENT PIPELINE
# ============================================================================
# STATUS: Core - Pipeline wiring
# PURPOSE: Watch streams -> aggregator -> encoder -> sink -> archiver
# CREATED: 12 OCT 2026
# ============================================================================
"""
Event Pipeline

Drives the single consumer task: pulls events from the aggregator in arrival
order, encodes each one and hands the record to the sink. Rotated files flow
from the sink to the archiver over the closed-file queue.

Shutdown:
- Natural end: every watch stream is exhausted. The sink is closed and
  in-flight archive jobs are allowed to finish.
- Fatal error (SinkError): the sink is closed best-effort and the error is
  re-raised to the caller, which exits non-zero.
- Cancellation: same cleanup as a fatal error, then CancelledError propagates.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterable, Dict, Mapping, Optional

from core.config import SinkConfig
from core.errors import SinkError
from pipeline.aggregator import EventAggregator
from pipeline.archiver import Archiver
from pipeline.encoder import encode_event
from pipeline.sink import Clock, RotatingSink

logger = logging.getLogger(__name__)


class EventPipeline:
    """Single-consumer pipeline from watch streams to the event file."""

    def __init__(
        self,
        sources: Mapping[str, AsyncIterable[Any]],
        sink: RotatingSink,
        archiver: Optional[Archiver] = None,
    ):
        """
        Initialize pipeline.

        Args:
            sources: Stream name -> async iterable of watch events
            sink: Event sink (rotating or fixed)
            archiver: Optional archiver consuming the sink's closed-file queue
        """
        self.aggregator = EventAggregator(sources)
        self.sink = sink
        self.archiver = archiver

        # State
        self._running = False
        self._started_at: Optional[datetime] = None
        self._stopped_at: Optional[datetime] = None
        self._events_persisted = 0
        self._fatal_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> int:
        """
        Persist events until every stream is exhausted.

        Returns:
            Number of events written

        Raises:
            SinkError: On any fatal encoding or I/O failure
        """
        self._running = True
        self._started_at = datetime.now(timezone.utc)
        events = self.aggregator.__aiter__()

        try:
            if self.archiver is not None:
                await self.archiver.start()
            await self.sink.open()

            async for event in events:
                record = encode_event(event)
                await self.sink.write(record)
                self._events_persisted += 1

        except SinkError as e:
            self._fatal_error = str(e)
            logger.error(f"Fatal sink error after {self._events_persisted} events: {e}")
            await self._shutdown(events, failing=True)
            raise
        except BaseException:
            await self._shutdown(events, failing=True)
            raise
        else:
            await self._shutdown(events, failing=False)

        logger.info(f"Pipeline finished: {self._events_persisted} events persisted")
        return self._events_persisted

    async def _shutdown(self, events, failing: bool) -> None:
        """Stop producers, close the sink, let archive jobs finish."""
        self._running = False
        self._stopped_at = datetime.now(timezone.utc)

        await events.aclose()

        try:
            await self.sink.close()
        except SinkError as e:
            if not failing:
                raise
            logger.error(f"Closing the event file also failed: {e}")
        finally:
            if self.archiver is not None:
                await self.archiver.stop(drain=True)

    def stats(self) -> Dict[str, Any]:
        """Aggregated counters for health reporting."""
        result: Dict[str, Any] = {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "stopped_at": self._stopped_at.isoformat() if self._stopped_at else None,
            "events_persisted": self._events_persisted,
            "fatal_error": self._fatal_error,
            "streams": self.aggregator.stats(),
            "sink": self.sink.stats(),
        }
        if self.archiver is not None:
            result["archiver"] = self.archiver.stats()
        return result


def build_pipeline(
    config: SinkConfig,
    sources: Mapping[str, AsyncIterable[Any]],
    clock: Optional[Clock] = None,
) -> EventPipeline:
    """
    Build sink, optional archiver and pipeline from a SinkConfig.

    Raises:
        ValueError: If the configuration is invalid
    """
    archiver = None
    closed_queue = None
    if config.rotation_enabled and config.archive_enabled:
        closed_queue = asyncio.Queue()
        archiver = Archiver(config.resolved_archive_directory, closed_queue)

    sink = RotatingSink.from_config(config, clock=clock, closed_queue=closed_queue)

    if sink.rotating:
        logger.info(f"Event files rotate daily under {config.rotation_directory}")
    else:
        logger.info(f"Events append to {config.output_path}")
    if archiver is not None:
        logger.info(f"Rotated files are archived to {archiver.archive_directory}")

    return EventPipeline(sources, sink, archiver)


__all__ = ["EventPipeline", "build_pipeline"]
