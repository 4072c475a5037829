from __future__ import annotations

"""
Health endpoint for Ticket Dispatcher.

`/healthz` reports:
- Overall status ("ok" or "degraded")
- Queue scheduler status and the current queue snapshot
- Whether a printer IP is configured and reachable
"""

from typing import Any, Dict

from flask import Blueprint

from ticket_dispatcher.printing.printer import check_printer
from .context import get_printer_config, get_queue

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    pq = get_queue()
    status: Dict[str, Any] = {"status": "ok"}
    status.update(pq.scheduler.status())
    status["queue"] = pq.tracker.snapshot().to_dict()

    try:
        cfg = get_printer_config()
    except Exception:
        status["status"] = "degraded"
        status["reason"] = "config_unreadable"
        return status, 200

    if status["scheduler_started"] and not status["scheduler_alive"]:
        status["status"] = "degraded"
        status["reason"] = "scheduler_stopped"

    ok, reason = check_printer(cfg)
    status["printer_ok"] = ok
    if not ok:
        status["status"] = "degraded"
        if reason:
            status["reason"] = reason
    return status, 200
