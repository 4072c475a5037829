from __future__ import annotations

"""
Pydantic schemas for the Ticket Dispatcher API.

Incoming ticket data stays schemaless at this layer (templates decide what is
required); these models cover the envelopes around it: the print response,
the queue snapshot, and printer config updates.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueuePosition(BaseModel):
    position: int = Field(description="1-based rank of the job among pending jobs at enqueue time")
    total: int = Field(description="Pending plus in-flight jobs at enqueue time")
    pending: int
    processing: int


class PrintAcceptedResponse(BaseModel):
    success: bool = True
    message: str = "Print job queued"
    jobId: str
    queueSnapshot: QueuePosition


class QueueSnapshotResponse(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
    total: int
    enqueued: int


class FailedJob(BaseModel):
    jobId: str
    error: Optional[str] = None
    failed_at: Optional[str] = None


class ConfigUpdate(BaseModel):
    """
    Partial printer/queue config update. Unknown keys are kept so older UIs can
    round-trip their own settings; known keys are type-checked.
    """

    model_config = ConfigDict(extra="allow")

    client_id: Optional[str] = Field(default=None, max_length=64)
    business_name: Optional[str] = Field(default=None, max_length=100)
    printer_ip: Optional[str] = Field(default=None, max_length=255)
    printer_port: Optional[int] = Field(default=None, ge=1, le=65535)
    printer_timeout_seconds: Optional[float] = Field(default=None, gt=0, le=120)
    ticket_width: Optional[int] = Field(default=None, ge=16, le=96)
    receipt_width: Optional[int] = Field(default=None, ge=128, le=1024)
    use_header_logo: Optional[bool] = None
    use_footer_logo: Optional[bool] = None
    use_font_ticket: Optional[bool] = None
    print_confirmation: Optional[bool] = None
    font_path: Optional[str] = None
    footer_lines: Optional[List[str]] = None
    inflight_recovery: Optional[str] = None
    render_timeout_seconds: Optional[float] = Field(default=None, ge=0, le=3600)
    inter_job_delay_seconds: Optional[float] = Field(default=None, ge=0, le=30)
    notify_url: Optional[str] = Field(default=None, max_length=2048)

    @field_validator("inflight_recovery")
    @classmethod
    def _known_policy(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in ("leave", "fail", "requeue"):
            raise ValueError("inflight_recovery must be one of: leave, fail, requeue")
        return v

    @field_validator("printer_ip")
    @classmethod
    def _strip_ip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


def first_error_message(exc: Exception) -> str:
    """Concise message from a pydantic ValidationError."""
    try:
        err = exc.errors()[0]  # type: ignore[attr-defined]
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg") or str(exc)
        return f"{loc}: {msg}" if loc else msg
    except Exception:
        return str(exc)


__all__ = [
    "ConfigUpdate",
    "FailedJob",
    "PrintAcceptedResponse",
    "QueuePosition",
    "QueueSnapshotResponse",
    "first_error_message",
]
