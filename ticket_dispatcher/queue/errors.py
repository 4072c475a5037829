"""Exceptions raised by the print queue."""

from __future__ import annotations


class QueueError(Exception):
    """Base class for queue failures."""


class JobStoreError(QueueError):
    """A filesystem operation on a job file failed."""

    def __init__(self, message: str, job_id: str | None = None):
        super().__init__(message)
        self.job_id = job_id


class JobNotClaimable(JobStoreError):
    """The job file is gone from its source stage (moved or deleted by someone else)."""


class MalformedJobError(JobStoreError):
    """The job file exists but does not hold a JSON object."""


class JobExistsError(JobStoreError):
    """A job with this id is already stored in some stage."""


class RenderTimeout(QueueError):
    """
    The render collaborator did not return within the configured timeout.

    `thread` is the render thread that was left running, if any.
    """

    def __init__(self, message: str, thread=None):
        super().__init__(message)
        self.thread = thread


__all__ = ["JobExistsError", "JobNotClaimable", "JobStoreError", "MalformedJobError", "QueueError", "RenderTimeout"]
