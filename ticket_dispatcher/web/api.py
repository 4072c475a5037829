from __future__ import annotations

"""
Print and queue API for Ticket Dispatcher.

Endpoints:
- POST   /api/print                             : Validate ticket data and enqueue it
- GET    /api/print-queue/status                : Current queue snapshot
- GET    /api/print-queue/failed                : Jobs parked in the failed stage
- POST   /api/print-queue/failed/<job_id>/requeue : Move a failed job back to pending
- DELETE /api/print-queue/failed/<job_id>       : Discard a failed job

POST /api/print body: the ticket fields for the chosen template plus an
optional "templateId" (default "receipt"), e.g.
{"templateId": "price-tag", "productName": "Widget", "price": 100}
"""

from flask import Blueprint, current_app, jsonify, request

from ticket_dispatcher import csrf
from ticket_dispatcher.queue import JobNotClaimable, JobStoreError
from . import schemas
from .context import get_queue, get_templates, json_error

api_bp = Blueprint("api", __name__, url_prefix="/api")


@csrf.exempt
@api_bp.post("/print")
def submit_print():
    """
    Validate against the template, enqueue, and wake the drain loop.
    """
    if not request.is_json:
        return json_error("Expected application/json body", 415)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return json_error("invalid JSON payload", 400)

    template_id = str(data.get("templateId") or "receipt")
    current_app.logger.info("Print request received for template %s", template_id)

    result = get_templates().validate(template_id, data)
    if not result.valid:
        return jsonify(
            {
                "error": "Invalid data for template",
                "details": f"Missing fields: {', '.join(result.missing_fields)}",
                "missingFields": result.missing_fields,
            }
        ), 400

    pq = get_queue()
    enq = pq.manager.submit(template_id, data)
    if not enq.success:
        current_app.logger.error("Enqueue failed: %s", enq.error)
        return json_error("Could not queue print job", 500, enq.error)

    pq.scheduler.trigger()
    snap = pq.tracker.snapshot()
    resp = schemas.PrintAcceptedResponse(
        jobId=enq.job_id or "",
        queueSnapshot=schemas.QueuePosition(
            position=enq.position,
            total=enq.total,
            pending=snap.pending,
            processing=snap.processing,
        ),
    )
    return jsonify(resp.model_dump())


@api_bp.get("/print-queue/status")
def queue_status():
    snap = get_queue().tracker.snapshot()
    return jsonify(schemas.QueueSnapshotResponse(**snap.to_dict()).model_dump())


@api_bp.get("/print-queue/failed")
def failed_jobs():
    try:
        jobs = get_queue().manager.list_failed()
    except JobStoreError as e:
        current_app.logger.error("Listing failed jobs failed: %s", e)
        return json_error("Could not list failed jobs", 500, str(e))
    return jsonify([schemas.FailedJob(**j).model_dump() for j in jobs])


@csrf.exempt
@api_bp.post("/print-queue/failed/<job_id>/requeue")
def requeue_failed(job_id: str):
    pq = get_queue()
    try:
        result = pq.manager.requeue_failed(job_id)
    except JobNotClaimable:
        return json_error("not_found", 404)
    except JobStoreError as e:
        current_app.logger.error("Requeue of %s failed: %s", job_id, e)
        return json_error("Could not requeue job", 500, str(e))
    pq.scheduler.trigger()
    return jsonify(result.to_dict())


@csrf.exempt
@api_bp.delete("/print-queue/failed/<job_id>")
def discard_failed(job_id: str):
    try:
        removed = get_queue().manager.discard_failed(job_id)
    except JobStoreError as e:
        current_app.logger.error("Discard of %s failed: %s", job_id, e)
        return json_error("Could not discard job", 500, str(e))
    if not removed:
        return json_error("not_found", 404)
    return jsonify({"success": True})
