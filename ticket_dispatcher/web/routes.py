from __future__ import annotations

"""
Dashboard routes for Ticket Dispatcher.

- GET  /                          : Queue counters (live via SSE) and failed jobs
- POST /failed/<job_id>/requeue   : Send a failed job back to the queue
- POST /failed/<job_id>/discard   : Delete a failed job
"""

from flask import Blueprint, current_app, flash, redirect, render_template, url_for

from ticket_dispatcher.queue import JobNotClaimable, JobStoreError
from .context import get_printer_config, get_queue, get_templates

web_bp = Blueprint("web", __name__)


@web_bp.get("/")
def dashboard():
    pq = get_queue()
    try:
        failed = pq.manager.list_failed()
    except JobStoreError as e:
        current_app.logger.error("Listing failed jobs failed: %s", e)
        failed = []
    try:
        cfg = get_printer_config()
        printer = f"{cfg.get('printer_ip') or '-'}:{cfg.get('printer_port')}"
    except Exception:
        printer = "config unreadable"
    return render_template(
        "dashboard.html",
        snapshot=pq.tracker.snapshot().to_dict(),
        failed=failed,
        printer=printer,
        templates=sorted(get_templates().all()),
        scheduler=pq.scheduler.status(),
    )


@web_bp.post("/failed/<job_id>/requeue")
def requeue(job_id: str):
    pq = get_queue()
    try:
        result = pq.manager.requeue_failed(job_id)
        pq.scheduler.trigger()
        flash(f"Job {job_id} requeued at position {result.position}.", "success")
    except JobNotClaimable:
        flash(f"Job {job_id} is no longer in the failed list.", "warning")
    except JobStoreError as e:
        current_app.logger.error("Requeue of %s failed: %s", job_id, e)
        flash(f"Could not requeue {job_id}: {e}", "error")
    return redirect(url_for("web.dashboard"))


@web_bp.post("/failed/<job_id>/discard")
def discard(job_id: str):
    try:
        if get_queue().manager.discard_failed(job_id):
            flash(f"Job {job_id} discarded.", "success")
        else:
            flash(f"Job {job_id} is no longer in the failed list.", "warning")
    except JobStoreError as e:
        current_app.logger.error("Discard of %s failed: %s", job_id, e)
        flash(f"Could not discard {job_id}: {e}", "error")
    return redirect(url_for("web.dashboard"))
