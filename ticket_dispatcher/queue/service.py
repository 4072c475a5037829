"""
Wiring for one print queue instance: store, tracker, manager, drain loop,
scheduler and webhook notifier, built from the dispatcher config.

There is no module-level queue state; the Flask app keeps its PrintQueue in
`app.extensions["ticket_dispatcher"]`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional

from .drain import ConfigProvider, DrainLoop, RenderFn
from .manager import InFlightRecovery, QueueManager
from .notify import WebhookNotifier
from .scheduler import QueueScheduler
from .store import JobStore
from .tracker import QueueTracker

logger = logging.getLogger(__name__)


def _float(config: Mapping[str, Any], key: str, default: float) -> float:
    try:
        return float(config.get(key, default))
    except (TypeError, ValueError):
        return default


@dataclass
class PrintQueue:
    store: JobStore
    tracker: QueueTracker
    manager: QueueManager
    drain_loop: DrainLoop
    scheduler: QueueScheduler
    notifier: WebhookNotifier
    recovery: InFlightRecovery
    on_start: Optional[Callable[[], Any]] = None

    def start(self) -> List[str]:
        """
        Recover in-flight leftovers, run the `on_start` hook (the printer
        confirmation ticket), then start the background scheduler.
        Returns the ids moved by recovery.
        """
        moved = self.manager.recover_in_flight(self.recovery)
        if moved:
            logger.warning("Recovered %d interrupted job(s) with policy %s", len(moved), self.recovery.value)
        if self.on_start is not None:
            try:
                self.on_start()
            except Exception as e:
                logger.error("Startup hook failed: %s", e)
        self.scheduler.start()
        return moved

    def stop(self) -> None:
        self.scheduler.stop()
        self.notifier.close()


def build_print_queue(
    root: str | os.PathLike[str],
    config: Mapping[str, Any],
    *,
    render: Optional[RenderFn] = None,
    config_provider: Optional[ConfigProvider] = None,
    notifier: Optional[WebhookNotifier] = None,
    on_start: Optional[Callable[[], Any]] = None,
) -> PrintQueue:
    """
    Assemble a PrintQueue rooted at `root`. The initial reconcile runs here so
    the tracker reflects disk before the first request is served.
    """
    if render is None:
        from ticket_dispatcher.printing.printer import render_job

        render = render_job
    provider: Callable[[], Mapping[str, Any]] = config_provider or (lambda: config)

    store = JobStore(root)
    tracker = QueueTracker(store)
    manager = QueueManager(store, tracker)
    notifier = notifier or WebhookNotifier(config.get("notify_url"), _float(config, "notify_timeout_seconds", 5.0))
    drain_loop = DrainLoop(
        store,
        tracker,
        render,
        provider,
        on_job_completed=notifier.on_job_completed,
        on_job_failed=notifier.on_job_failed,
        inter_job_delay=_float(config, "inter_job_delay_seconds", 0.5),
        render_timeout=_float(config, "render_timeout_seconds", 60.0) or None,
    )
    scheduler = QueueScheduler(
        drain_loop,
        tracker,
        poll_interval=_float(config, "poll_interval_seconds", 2.0),
        reconcile_interval=_float(config, "reconcile_interval_seconds", 5.0),
    )
    tracker.reconcile()
    return PrintQueue(
        store=store,
        tracker=tracker,
        manager=manager,
        drain_loop=drain_loop,
        scheduler=scheduler,
        notifier=notifier,
        recovery=InFlightRecovery.parse(config.get("inflight_recovery", "fail")),
        on_start=on_start,
    )


__all__ = ["PrintQueue", "build_print_queue"]
