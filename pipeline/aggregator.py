# ============================================================================
# EVENT AGGREGATOR
# ============================================================================
# STATUS: Core - Many-to-one stream merge
# PURPOSE: Fan the watch streams into a single arrival-ordered sequence
# CREATED: 12 OCT 2026
# ============================================================================
"""
Event Aggregator

Merges independently paced async streams into one async sequence.

Ordering contract:
- Events are delivered in arrival order at the merge point, nothing more.
  Two events from different streams have no guaranteed relative order.
- Events from the same stream keep that stream's order.
- Every event is delivered exactly once.

Flow control:
- The merge point holds a single event. Each producer holds at most one
  more while it waits to hand it over, so a slow consumer blocks all
  producers uniformly and nothing is buffered beyond that.

Termination:
- A stream that ends (or raises) is marked exhausted and the others keep
  going. The merged sequence ends only when every stream is exhausted.
"""

import asyncio
import logging
from typing import Any, AsyncIterable, AsyncIterator, Dict, Mapping, Optional

from core.logging import log_checkpoint, log_context

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


class EventAggregator:
    """
    Arrival-order merge of named async event streams.

    Usage:
        aggregator = EventAggregator({"jobs": watch_jobs(client), ...})
        async for event in aggregator:
            ...

    An aggregator can be iterated once.
    """

    def __init__(self, sources: Mapping[str, AsyncIterable[Any]]):
        """
        Initialize aggregator.

        Args:
            sources: Stream name -> async iterable of events
        """
        self._sources: Dict[str, AsyncIterable[Any]] = dict(sources)
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._started = False

        # Stats
        self._delivered: Dict[str, int] = {name: 0 for name in self._sources}
        self._exhausted: Dict[str, str] = {}

    @property
    def source_names(self):
        return list(self._sources)

    @property
    def active_sources(self):
        """Streams that have not been exhausted yet."""
        return [name for name in self._sources if name not in self._exhausted]

    def __aiter__(self) -> AsyncIterator[Any]:
        if self._started:
            raise RuntimeError("EventAggregator can only be iterated once")
        self._started = True
        return self._merge()

    async def _merge(self) -> AsyncIterator[Any]:
        self._queue = asyncio.Queue(maxsize=1)
        for name, source in self._sources.items():
            self._tasks[name] = asyncio.create_task(
                self._produce(name, source),
                name=f"aggregator-{name}",
            )

        logger.info(f"Aggregating {len(self._tasks)} streams: {list(self._tasks)}")
        remaining = len(self._tasks)

        try:
            while remaining:
                name, item = await self._queue.get()
                if item is _EXHAUSTED:
                    remaining -= 1
                    continue
                self._delivered[name] += 1
                yield item

            logger.info("All streams exhausted")
        finally:
            await self.close()

    async def _produce(self, name: str, source: AsyncIterable[Any]) -> None:
        """Forward one stream into the merge point."""
        with log_context(stream=name, component="aggregator"):
            try:
                async for event in source:
                    await self._queue.put((name, event))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._exhausted[name] = "failed"
                logger.warning(f"Stream {name} failed, treating it as exhausted: {e}")
            else:
                self._exhausted[name] = "closed"
                logger.info(f"Stream {name} closed")

            log_checkpoint(
                "stream_exhausted",
                {"stream": name, "reason": self._exhausted[name], "delivered": self._delivered[name]},
            )
            await self._queue.put((name, _EXHAUSTED))

    async def close(self) -> None:
        """Cancel any producer that is still running."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def stats(self) -> Dict[str, Any]:
        """Per-stream delivery counters."""
        return {
            "delivered": dict(self._delivered),
            "total_delivered": sum(self._delivered.values()),
            "exhausted": dict(self._exhausted),
            "active": self.active_sources,
        }


__all__ = ["EventAggregator"]
