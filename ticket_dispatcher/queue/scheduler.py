"""
Background thread that drives the queue: drains on a fixed poll interval (or
immediately when triggered) and reconciles the tracker against disk.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional

from .drain import DrainLoop
from .tracker import QueueTracker

logger = logging.getLogger(__name__)


class QueueScheduler:
    def __init__(
        self,
        drain_loop: DrainLoop,
        tracker: QueueTracker,
        poll_interval: float = 2.0,
        reconcile_interval: float = 5.0,
    ):
        self.drain_loop = drain_loop
        self.tracker = tracker
        self.poll_interval = max(0.05, float(poll_interval))
        self.reconcile_interval = max(0.05, float(reconcile_interval))
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._last_reconcile = 0.0

    def start(self) -> None:
        """
        Start the scheduler thread (idempotent).
        """
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop.clear()
            t = threading.Thread(target=self._run, daemon=True, name="ticket-dispatcher-queue")
            t.start()
            self._thread = t
        logger.info(
            "Queue scheduler started (poll %.1fs, reconcile %.1fs)", self.poll_interval, self.reconcile_interval
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        with self._lock:
            t = self._thread
        if t is not None:
            t.join(timeout)
        logger.info("Queue scheduler stopped")

    def trigger(self) -> None:
        """
        Ask for a drain as soon as possible instead of waiting for the next poll.
        """
        self._wake.set()

    def status(self) -> Dict[str, Any]:
        alive = bool(self._thread) and self._thread.is_alive()  # type: ignore[union-attr]
        return {
            "scheduler_started": self._thread is not None,
            "scheduler_alive": alive,
            "draining": self.drain_loop.is_draining,
        }

    def tick(self) -> None:
        """
        One scheduler step: reconcile when due, then drain. Never raises.
        """
        now = time.monotonic()
        if now - self._last_reconcile >= self.reconcile_interval:
            self._last_reconcile = now
            try:
                self.tracker.reconcile()
            except Exception:
                logger.exception("Periodic reconcile failed")
        try:
            self.drain_loop.drain()
        except Exception:
            logger.exception("Drain invocation failed")

    def _run(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._wake.wait(min(self.poll_interval, self.reconcile_interval))
            self._wake.clear()


__all__ = ["QueueScheduler"]
