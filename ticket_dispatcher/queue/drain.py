"""
Drain loop: print every pending job, one at a time.

A drain invocation lists the pending stage once and works through that batch
in sorted-id order. Jobs enqueued while a batch runs wait for the next
invocation. Only one invocation runs at a time; a second caller returns
immediately with None. After a render timeout the next job waits until the
abandoned render has finished, so the printer only ever sees one job.

Per job:
    pending --move--> in flight --render ok--> deleted, completed += 1
                                 --render fails--> failed stage, failed += 1

Nothing is retried automatically. A failed job stays in the failed stage, with
an `<id>.error.json` sidecar, until an operator requeues or discards it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from ticket_dispatcher.core.logging import current_job_id, job_log_context

from .errors import JobNotClaimable, JobStoreError, RenderTimeout
from .store import JobStore, Stage
from .tracker import QueueTracker

logger = logging.getLogger(__name__)

RenderFn = Callable[[Mapping[str, Any], Dict[str, Any]], bool]
ConfigProvider = Callable[[], Mapping[str, Any]]
CompletedCallback = Callable[[str], Any]
FailedCallback = Callable[[str, str], Any]


@dataclass
class DrainReport:
    listed: int = 0
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    deferred: int = 0


def _call_with_timeout(fn: Callable[[], Any], timeout: Optional[float]) -> Any:
    """
    Run `fn` and return its result, raising RenderTimeout after `timeout` seconds.

    The call runs on a daemon thread that inherits the caller's job log context.
    On timeout the thread is left to finish on its own (a blocked socket write
    cannot be interrupted from outside); it is attached to the RenderTimeout so
    the caller can wait for it before touching the printer again.
    """
    if not timeout or timeout <= 0:
        return fn()

    outcome: Dict[str, Any] = {}
    job_id = current_job_id()

    def _target() -> None:
        try:
            if job_id:
                with job_log_context(job_id):
                    outcome["value"] = fn()
            else:
                outcome["value"] = fn()
        except BaseException as e:  # re-raised on the caller's thread
            outcome["error"] = e

    t = threading.Thread(target=_target, daemon=True, name="ticket-render")
    t.start()
    t.join(timeout)
    if t.is_alive():
        raise RenderTimeout(f"render did not finish within {timeout:g}s", thread=t)
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


class DrainLoop:
    def __init__(
        self,
        store: JobStore,
        tracker: QueueTracker,
        render: RenderFn,
        config_provider: ConfigProvider,
        *,
        on_job_completed: Optional[CompletedCallback] = None,
        on_job_failed: Optional[FailedCallback] = None,
        inter_job_delay: float = 0.5,
        render_timeout: Optional[float] = None,
    ):
        self.store = store
        self.tracker = tracker
        self.render = render
        self.config_provider = config_provider
        self.on_job_completed = on_job_completed
        self.on_job_failed = on_job_failed
        self.inter_job_delay = inter_job_delay
        self.render_timeout = render_timeout
        self._guard = threading.Lock()
        self._stuck_render: Optional[threading.Thread] = None

    @property
    def is_draining(self) -> bool:
        return self._guard.locked()

    def _printer_free(self) -> bool:
        """
        False while a timed-out render is still running. Waits up to one more
        render timeout for it first.
        """
        t = self._stuck_render
        if t is None:
            return True
        t.join(self.render_timeout)
        if t.is_alive():
            logger.warning("A timed-out render is still talking to the printer; holding the queue")
            return False
        self._stuck_render = None
        return True

    def drain(self) -> Optional[DrainReport]:
        """
        Process the current pending batch. Returns None without doing anything if
        another drain is already running.
        """
        if not self._guard.acquire(blocking=False):
            logger.debug("Drain already running; skipping")
            return None
        try:
            return self._drain_batch()
        finally:
            self._guard.release()

    def _drain_batch(self) -> DrainReport:
        report = DrainReport()
        try:
            job_ids = self.store.list(Stage.PENDING)
        except JobStoreError as e:
            logger.error("Cannot list pending jobs; drain aborted: %s", e)
            return report
        report.listed = len(job_ids)
        if not job_ids:
            return report

        try:
            config = self.config_provider()
        except Exception as e:
            logger.error("Cannot load printer config; drain aborted: %s", e)
            return report

        logger.info("Print queue: %d pending job(s)", len(job_ids))
        for idx, job_id in enumerate(job_ids, 1):
            if not self._printer_free():
                report.deferred = len(job_ids) - idx + 1
                logger.info("Drain stopped; %d job(s) left for the next run", report.deferred)
                break
            with job_log_context(job_id):
                logger.info("[%d/%d] processing %s", idx, len(job_ids), job_id)
                self._process_one(job_id, config, report)
        logger.info(
            "Drain finished: %d completed, %d failed, %d skipped",
            report.completed, report.failed, report.skipped,
        )
        return report

    def _process_one(self, job_id: str, config: Mapping[str, Any], report: DrainReport) -> None:
        try:
            self.store.move(job_id, Stage.PENDING, Stage.IN_FLIGHT)
        except JobNotClaimable:
            logger.info("Job %s vanished before it could be claimed; skipping", job_id)
            self.tracker.forget(job_id)
            report.skipped += 1
            return
        except JobStoreError as e:
            logger.error("Could not claim job %s: %s", job_id, e)
            report.skipped += 1
            return

        self.tracker.claim(job_id)
        report.claimed += 1

        started = time.monotonic()
        try:
            payload = self.store.read(Stage.IN_FLIGHT, job_id)
            ok = _call_with_timeout(lambda: self.render(config, payload), self.render_timeout)
            if not ok:
                raise RuntimeError("printing failed")
        except Exception as e:
            if isinstance(e, RenderTimeout) and e.thread is not None:
                self._stuck_render = e.thread
            self._fail(job_id, e, report)
            return

        logger.info("Job %s printed in %dms", job_id, int((time.monotonic() - started) * 1000))
        try:
            self.store.remove(Stage.IN_FLIGHT, job_id)
        except JobStoreError as e:
            # The ticket is out of the printer; a leftover file only means it shows as processing.
            logger.error("Printed job %s could not be deleted: %s", job_id, e)
        self.tracker.mark_completed(job_id)
        report.completed += 1
        self._callback(self.on_job_completed, job_id)

        if self.inter_job_delay > 0:
            time.sleep(self.inter_job_delay)

    def _fail(self, job_id: str, error: BaseException, report: DrainReport) -> None:
        message = str(error) or type(error).__name__
        self.tracker.mark_failed(job_id, message)
        report.failed += 1
        self._callback(self.on_job_failed, job_id, message)

        try:
            self.store.write_error(job_id, message)
        except JobStoreError as e:
            logger.warning("No error detail written for job %s: %s", job_id, e)
        try:
            self.store.move(job_id, Stage.IN_FLIGHT, Stage.FAILED)
            logger.info("Job %s moved to the failed stage", job_id)
        except JobStoreError as e:
            logger.error("DATA LOSS: failed job %s could not be parked: %s", job_id, e)

    def _callback(self, fn: Optional[Callable[..., Any]], *args: Any) -> None:
        if fn is None:
            return
        try:
            fn(*args)
        except Exception:
            logger.exception("Job notification callback failed for %s", args[0])


__all__ = ["DrainLoop", "DrainReport"]
