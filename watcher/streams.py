# ============================================================================
# NOMAD WATCH STREAMS
# ============================================================================
# STATUS: Infrastructure - Cluster change detection
# PURPOSE: Turn blocking-query snapshots into typed change events
# CREATED: 13 OCT 2026
# ============================================================================
"""
Nomad Watch Streams

Each stream long-polls one list endpoint and emits an event for every object
whose ModifyIndex moved since the previous snapshot. The first snapshot emits
every object currently known to the cluster.

Streams:
    allocations  -> AllocationEvent      (/v1/allocations)
    task_states  -> TaskStateEvent       (TaskStates[*].Events of each alloc)
    evaluations  -> EvaluationEvent      (/v1/evaluations)
    jobs         -> JobEvent             (/v1/jobs)
    nodes        -> NodeEvent            (/v1/nodes)

allocations and task_states come from the same poll loop and are exposed as
two separate sequences. Streams are infinite: they only end when the client
raises WatchError, which is re-raised to the consumer.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from core.errors import WatchError
from core.logging import log_context
from core.models import (
    AllocationEvent,
    EvaluationEvent,
    JobEvent,
    NodeEvent,
    TaskStateEvent,
)

logger = logging.getLogger(__name__)

_END = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def poll_endpoint(client, endpoint: str) -> AsyncIterator[Tuple[List[Dict[str, Any]], int]]:
    """
    Yield (snapshot, index) each time the endpoint's index advances.

    A blocking query that returns the same index (wait elapsed) yields
    nothing. An index that goes backwards (leader change, snapshot restore)
    restarts from 0.
    """
    index = 0
    first = True
    while True:
        items, new_index = await client.blocking_query(endpoint, index)
        if new_index < index:
            logger.info(f"{endpoint} index went backwards ({index} -> {new_index}), resetting")
            index = 0
            continue
        if new_index == index and not first:
            continue
        first = False
        index = new_index
        yield items or [], index


class ChangeTracker:
    """
    Remembers the last ModifyIndex seen per object ID.

    Objects that disappear from a snapshot are forgotten so the tracker does
    not grow with garbage-collected objects.
    """

    def __init__(self, id_field: str = "ID", index_field: str = "ModifyIndex"):
        self.id_field = id_field
        self.index_field = index_field
        self._seen: Dict[str, Any] = {}

    def changed(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Return the items that are new or modified since the last call."""
        current: Dict[str, Any] = {}
        changed = []
        for item in items:
            object_id = item.get(self.id_field)
            modify_index = item.get(self.index_field)
            current[object_id] = modify_index
            if object_id not in self._seen or self._seen[object_id] != modify_index:
                changed.append(item)
        self._seen = current
        return changed

    def __len__(self) -> int:
        return len(self._seen)


async def _watch_objects(
    client,
    endpoint: str,
    make_event: Callable[[Dict[str, Any], int], Any],
) -> AsyncIterator[Any]:
    tracker = ChangeTracker()
    with log_context(stream=endpoint, component="watcher"):
        async for items, index in poll_endpoint(client, endpoint):
            changed = tracker.changed(items)
            if changed:
                logger.debug(f"{len(changed)} {endpoint} changed at index {index}")
            for item in changed:
                yield make_event(item, index)


def watch_evaluations(client) -> AsyncIterator[EvaluationEvent]:
    """Stream of evaluation changes."""
    return _watch_objects(
        client,
        "evaluations",
        lambda item, index: EvaluationEvent(timestamp=_now(), wait_index=index, evaluation=item),
    )


def watch_jobs(client) -> AsyncIterator[JobEvent]:
    """Stream of job definition changes."""
    return _watch_objects(
        client,
        "jobs",
        lambda item, index: JobEvent(timestamp=_now(), wait_index=index, job=item),
    )


def watch_nodes(client) -> AsyncIterator[NodeEvent]:
    """Stream of node membership and status changes."""
    return _watch_objects(
        client,
        "nodes",
        lambda item, index: NodeEvent(timestamp=_now(), wait_index=index, node=item),
    )


class AllocationWatcher:
    """
    One allocation poll loop feeding two sequences.

    allocations() yields AllocationEvent for every allocation change;
    task_states() yields TaskStateEvent for every task event newly recorded
    on an allocation. The poll loop starts when either sequence is first
    iterated and both sequences end together. When every started sequence
    has been closed or cancelled the poll loop is cancelled too, so no
    request outlives its consumers.
    """

    def __init__(self, client):
        self.client = client
        self._alloc_queue: asyncio.Queue = asyncio.Queue()
        self._task_queue: asyncio.Queue = asyncio.Queue()
        self._poll_task: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None
        self._consumers = 0
        self._closed = False

        self._allocs = ChangeTracker()
        # (alloc ID, task name) -> Time of the newest task event emitted
        self._last_task_event: Dict[Tuple[str, str], int] = {}

    def allocations(self) -> AsyncIterator[AllocationEvent]:
        return self._drain(self._alloc_queue)

    def task_states(self) -> AsyncIterator[TaskStateEvent]:
        return self._drain(self._task_queue)

    async def _drain(self, queue: asyncio.Queue) -> AsyncIterator[Any]:
        if self._closed:
            return
        self._consumers += 1
        self._ensure_polling()
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    if self._error is not None:
                        raise self._error
                    return
                yield item
        finally:
            self._consumers -= 1
            if self._consumers == 0:
                await self.close()

    def _ensure_polling(self) -> None:
        if self._poll_task is None and not self._closed:
            self._poll_task = asyncio.create_task(self._poll(), name="watch-allocations")

    async def _poll(self) -> None:
        with log_context(stream="allocations", component="watcher"):
            try:
                async for items, index in poll_endpoint(self.client, "allocations"):
                    self.process_snapshot(items, index)
            except WatchError as e:
                logger.error(f"Allocation watch stopped: {e}")
                self._error = e
            finally:
                self._alloc_queue.put_nowait(_END)
                self._task_queue.put_nowait(_END)

    def process_snapshot(self, allocs: List[Dict[str, Any]], index: int) -> None:
        """Queue events for every changed allocation in a snapshot."""
        live_tasks = set()
        changed = {alloc.get("ID") for alloc in self._allocs.changed(allocs)}

        for alloc in allocs:
            alloc_id = alloc.get("ID", "")
            if alloc_id in changed:
                self._alloc_queue.put_nowait(
                    AllocationEvent(timestamp=_now(), wait_index=index, allocation=alloc)
                )

            for task_name, state in (alloc.get("TaskStates") or {}).items():
                key = (alloc_id, task_name)
                live_tasks.add(key)
                task_events = (state or {}).get("Events") or []
                # Nomad only keeps the newest task events, so track by Time, not count.
                last_time = self._last_task_event.get(key, -1)
                for task_event in task_events:
                    event_time = task_event.get("Time", 0)
                    if event_time <= last_time:
                        continue
                    last_time = event_time
                    self._task_queue.put_nowait(
                        TaskStateEvent(
                            timestamp=_now(),
                            wait_index=index,
                            alloc_id=alloc_id,
                            eval_id=alloc.get("EvalID", ""),
                            job_id=alloc.get("JobID", ""),
                            node_id=alloc.get("NodeID", ""),
                            task_group=alloc.get("TaskGroup", ""),
                            task_name=task_name,
                            task_state=(state or {}).get("State", ""),
                            event=task_event,
                        )
                    )
                self._last_task_event[key] = last_time

        for key in list(self._last_task_event):
            if key not in live_tasks:
                del self._last_task_event[key]

    async def close(self) -> None:
        """Stop the poll loop. Sequences not yet started end immediately."""
        self._closed = True
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)


def build_sources(client) -> Dict[str, AsyncIterator[Any]]:
    """The five named streams consumed by the aggregator."""
    allocations = AllocationWatcher(client)
    return {
        "allocations": allocations.allocations(),
        "task_states": allocations.task_states(),
        "evaluations": watch_evaluations(client),
        "jobs": watch_jobs(client),
        "nodes": watch_nodes(client),
    }


__all__ = [
    "poll_endpoint",
    "ChangeTracker",
    "AllocationWatcher",
    "watch_evaluations",
    "watch_jobs",
    "watch_nodes",
    "build_sources",
]
