"""
Queue front door: enqueue new jobs and manage parked (failed) ones.

`enqueue()` is the only way a job enters the pending stage. It returns once the
file is durable and the tracker knows about it, or reports failure without
registering anything.
"""

from __future__ import annotations

import copy
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .errors import JobExistsError, JobStoreError
from .store import JobStore, Stage, new_job_id
from .tracker import QueueSnapshot, QueueTracker

logger = logging.getLogger(__name__)

TEMPLATE_INFO_KEY = "_templateInfo"


class InFlightRecovery(str, enum.Enum):
    """What to do at startup with jobs left in the in-flight stage by a crash."""

    LEAVE = "leave"
    FAIL = "fail"
    REQUEUE = "requeue"

    @classmethod
    def parse(cls, value: Any) -> "InFlightRecovery":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown inflight_recovery %r; using %s", value, cls.FAIL.value)
            return cls.FAIL


@dataclass
class EnqueueResult:
    success: bool
    job_id: Optional[str] = None
    position: int = 0
    total: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {"success": True, "jobId": self.job_id, "position": self.position, "total": self.total}


class QueueManager:
    def __init__(self, store: JobStore, tracker: QueueTracker):
        self.store = store
        self.tracker = tracker

    def enqueue(self, job_id: str, payload: Mapping[str, Any]) -> EnqueueResult:
        """
        Persist a new job in the pending stage. Ids already held by any stage
        are refused; an existing job is never replaced.
        """
        try:
            existing = self.store.stage_of(job_id)
            if existing is not None:
                raise JobExistsError(f"job {job_id} already exists in {existing.name}", job_id)
            self.store.write(Stage.PENDING, job_id, dict(payload), exclusive=True)
        except JobStoreError as e:
            logger.error("Could not enqueue job %s: %s", job_id, e)
            return EnqueueResult(False, job_id=job_id, error=str(e))

        snap = self.tracker.register_enqueued(job_id)
        logger.info("Job %s enqueued at position %d", job_id, snap.pending)
        return EnqueueResult(True, job_id=job_id, position=snap.pending, total=snap.total)

    def submit(self, template_id: str, data: Mapping[str, Any], job_id: Optional[str] = None) -> EnqueueResult:
        """
        Build a job from already-validated ticket data and enqueue it.

        The stored payload is a copy of `data` with `_templateInfo` (template id,
        timestamp, job id) added for the renderer.
        """
        job_id = job_id or new_job_id()
        payload = copy.deepcopy(dict(data))
        payload[TEMPLATE_INFO_KEY] = {
            "id": template_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "jobId": job_id,
        }
        return self.enqueue(job_id, payload)

    def snapshot(self) -> QueueSnapshot:
        return self.tracker.snapshot()

    # ---- failed stage -------------------------------------------------------

    def list_failed(self) -> List[Dict[str, Any]]:
        jobs: List[Dict[str, Any]] = []
        for job_id in self.store.list(Stage.FAILED):
            detail = self.store.read_error(job_id) or {}
            jobs.append({"jobId": job_id, "error": detail.get("error"), "failed_at": detail.get("failed_at")})
        return jobs

    def requeue_failed(self, job_id: str) -> EnqueueResult:
        """
        Move a parked job back to pending. Raises JobNotClaimable if it is not in
        the failed stage.
        """
        self.store.move(job_id, Stage.FAILED, Stage.PENDING)
        self.store.clear_error(job_id)
        snap = self.tracker.register_enqueued(job_id, count=False)
        logger.info("Failed job %s requeued at position %d", job_id, snap.pending)
        return EnqueueResult(True, job_id=job_id, position=snap.pending, total=snap.total)

    def discard_failed(self, job_id: str) -> bool:
        if not self.store.exists(Stage.FAILED, job_id):
            return False
        self.store.remove(Stage.FAILED, job_id)
        logger.info("Failed job %s discarded", job_id)
        return True

    # ---- startup ------------------------------------------------------------

    def recover_in_flight(self, policy: InFlightRecovery) -> List[str]:
        """
        Apply `policy` to jobs found in the in-flight stage, which at startup can
        only be leftovers from a process that died mid-print. Returns the ids
        that were moved.
        """
        self.tracker.reconcile()
        leftovers = self.store.list(Stage.IN_FLIGHT)
        if not leftovers:
            return []
        if policy is InFlightRecovery.LEAVE:
            logger.warning("%d in-flight job(s) left from a previous run; leaving them in place", len(leftovers))
            return []

        moved: List[str] = []
        for job_id in leftovers:
            try:
                if policy is InFlightRecovery.REQUEUE:
                    self.store.move(job_id, Stage.IN_FLIGHT, Stage.PENDING)
                    logger.warning("Requeued interrupted job %s", job_id)
                else:
                    self.store.write_error(job_id, "interrupted: process stopped while the job was printing")
                    self.store.move(job_id, Stage.IN_FLIGHT, Stage.FAILED)
                    self.tracker.mark_failed(job_id, "interrupted by restart")
                moved.append(job_id)
            except JobStoreError as e:
                logger.error("Could not recover in-flight job %s: %s", job_id, e)
        self.tracker.reconcile()
        return moved


__all__ = ["EnqueueResult", "InFlightRecovery", "QueueManager", "TEMPLATE_INFO_KEY"]
