from __future__ import annotations

"""
Server-Sent Events stream of queue snapshots.

GET /api/print-queue/events sends the current snapshot on connect, then one
`queue-update` event per tracker change, with a comment heartbeat when idle.
Each client gets its own bounded buffer; a slow client drops updates rather
than blocking the queue.
"""

import json
import queue
from typing import Iterator

from flask import Blueprint, Response

from ticket_dispatcher.queue import QueueSnapshot, QueueTracker
from .context import get_queue

events_bp = Blueprint("events", __name__, url_prefix="/api/print-queue")

HEARTBEAT_SECONDS = 15.0
CLIENT_BUFFER = 100


def _sse(event: str, snap: QueueSnapshot) -> str:
    return f"event: {event}\ndata: {json.dumps(snap.to_dict())}\n\n"


def snapshot_stream(tracker: QueueTracker, heartbeat: float = HEARTBEAT_SECONDS) -> Iterator[str]:
    """
    Yield SSE frames until the consumer closes the generator.
    """
    updates: "queue.Queue[QueueSnapshot]" = queue.Queue(maxsize=CLIENT_BUFFER)

    def _listener(snap: QueueSnapshot) -> None:
        try:
            updates.put_nowait(snap)
        except queue.Full:
            pass

    unsubscribe = tracker.subscribe(_listener)
    try:
        yield _sse("queue-update", tracker.snapshot())
        while True:
            try:
                snap = updates.get(timeout=heartbeat)
            except queue.Empty:
                yield ": heartbeat\n\n"
                continue
            yield _sse("queue-update", snap)
    finally:
        unsubscribe()


@events_bp.get("/events")
def queue_events():
    tracker = get_queue().tracker
    return Response(
        snapshot_stream(tracker),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
