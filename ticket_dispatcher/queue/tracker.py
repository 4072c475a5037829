"""
In-memory view of queue occupancy.

The tracker mirrors the pending and in-flight directory listings and keeps
three counters the disk cannot tell us (completed, failed, enqueued since
start). The lists are a cache: `reconcile()` overwrites them from a fresh
listing, which is how the process recovers after a crash or after someone
moves files by hand.

All mutations run under one RLock; the drain loop, the scheduler and Flask
request threads call in concurrently. Listeners are notified outside that lock
but under a second (publish) lock held across mutate-and-notify, so every
listener sees snapshots in the order the changes happened.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import JobStoreError
from .store import JobStore, Stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueSnapshot:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0
    enqueued: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


Listener = Callable[[QueueSnapshot], Any]


class QueueTracker:
    def __init__(self, store: JobStore):
        self.store = store
        self._lock = threading.RLock()
        self._publish = threading.RLock()
        self._pending: List[str] = []
        self._in_flight: List[str] = []
        self._completed = 0
        self._failed = 0
        self._enqueued = 0
        self._listeners: List[Listener] = []

    # ---- subscription -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register `listener` for snapshots. Returns a callable that unsubscribes it.
        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _notify(self, snap: QueueSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snap)
            except Exception:
                logger.exception("Queue listener %r failed", listener)

    # ---- state --------------------------------------------------------------

    def _snapshot_locked(self) -> QueueSnapshot:
        pending = len(self._pending)
        processing = len(self._in_flight)
        return QueueSnapshot(
            pending=pending,
            processing=processing,
            completed=self._completed,
            failed=self._failed,
            total=pending + processing,
            enqueued=self._enqueued,
        )

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def pending_ids(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def in_flight_ids(self) -> List[str]:
        with self._lock:
            return list(self._in_flight)

    def reconcile(self) -> Optional[QueueSnapshot]:
        """
        Replace the pending/in-flight lists with what is on disk.

        The listing runs under the state lock, so a job registered concurrently
        is either in the listing or registered after it, never dropped.
        Returns the new snapshot, or None if a stage could not be listed (state
        is left untouched and the next reconcile tries again).
        """
        with self._publish:
            with self._lock:
                try:
                    pending = self.store.list(Stage.PENDING)
                    in_flight = self.store.list(Stage.IN_FLIGHT)
                except JobStoreError as e:
                    logger.error("Reconcile failed: %s", e)
                    return None
                if pending != self._pending or in_flight != self._in_flight:
                    logger.debug(
                        "Reconciled queue state: pending %d->%d, processing %d->%d",
                        len(self._pending), len(pending), len(self._in_flight), len(in_flight),
                    )
                self._pending = pending
                self._in_flight = in_flight
                snap = self._snapshot_locked()
            self._notify(snap)
        return snap

    def register_enqueued(self, job_id: str, count: bool = True) -> QueueSnapshot:
        """
        Record a job just written to pending. The returned snapshot is taken
        right after insertion, so its `pending` is the job's queue position.

        `count=False` re-admits a job that was already counted once (a requeued
        failure) without bumping `enqueued`.
        """
        with self._publish:
            with self._lock:
                if job_id not in self._pending:
                    self._pending.append(job_id)
                if count:
                    self._enqueued += 1
                snap = self._snapshot_locked()
            self._notify(snap)
        return snap

    def claim(self, job_id: str) -> None:
        with self._publish:
            with self._lock:
                if job_id in self._pending:
                    self._pending.remove(job_id)
                if job_id not in self._in_flight:
                    self._in_flight.append(job_id)
                snap = self._snapshot_locked()
            self._notify(snap)

    def mark_completed(self, job_id: str) -> None:
        with self._publish:
            with self._lock:
                if job_id in self._in_flight:
                    self._in_flight.remove(job_id)
                self._completed += 1
                snap = self._snapshot_locked()
            logger.info("Job %s completed; %d job(s) remaining", job_id, snap.total)
            self._notify(snap)

    def mark_failed(self, job_id: str, error_info: Any = None) -> None:
        with self._publish:
            with self._lock:
                if job_id in self._in_flight:
                    self._in_flight.remove(job_id)
                self._failed += 1
                snap = self._snapshot_locked()
            logger.error("Job %s failed: %s", job_id, error_info)
            self._notify(snap)

    def forget(self, job_id: str) -> None:
        """
        Drop an id from both lists without touching counters (a job moved out of
        the non-terminal stages by something other than the drain loop).
        """
        with self._publish:
            with self._lock:
                changed = False
                for ids in (self._pending, self._in_flight):
                    if job_id in ids:
                        ids.remove(job_id)
                        changed = True
                snap = self._snapshot_locked()
            if changed:
                self._notify(snap)


__all__ = ["Listener", "QueueSnapshot", "QueueTracker"]
