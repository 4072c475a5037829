"""
Durable print queue for Ticket Dispatcher.

- store: one-file-per-job directories (pending / in flight / failed)
- tracker: in-memory occupancy view, counters and snapshot listeners
- manager: enqueue, failed-job maintenance, crash recovery
- drain: single-consumer drain loop
- scheduler: background thread driving drains and reconciles
- notify: best-effort completion/failure webhooks
- service: builds a wired PrintQueue from config

Thread-safety: tracker mutations are serialized by a lock and the drain loop
guards itself with a non-blocking lock, so the queue can be shared between
Flask request threads and the scheduler thread.
"""

from .drain import DrainLoop, DrainReport
from .errors import JobExistsError, JobNotClaimable, JobStoreError, MalformedJobError, QueueError, RenderTimeout
from .manager import EnqueueResult, InFlightRecovery, QueueManager
from .notify import WebhookNotifier
from .scheduler import QueueScheduler
from .service import PrintQueue, build_print_queue
from .store import JobStore, Stage, new_job_id
from .tracker import QueueSnapshot, QueueTracker

__all__ = [
    "DrainLoop",
    "DrainReport",
    "EnqueueResult",
    "InFlightRecovery",
    "JobExistsError",
    "JobNotClaimable",
    "JobStore",
    "JobStoreError",
    "MalformedJobError",
    "PrintQueue",
    "QueueError",
    "QueueManager",
    "QueueScheduler",
    "QueueSnapshot",
    "QueueTracker",
    "RenderTimeout",
    "Stage",
    "WebhookNotifier",
    "build_print_queue",
    "new_job_id",
]
