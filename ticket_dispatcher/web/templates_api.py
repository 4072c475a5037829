from __future__ import annotations

"""
Ticket templates API.

- GET    /api/templates        : All templates keyed by id
- GET    /api/templates/<id>   : One template (404 if unknown)
- POST   /api/templates        : Create or replace a template
- DELETE /api/templates/<id>   : Delete a custom template (base templates are protected)
- POST   /api/templates/<id>/validate : Check ticket data against a template
"""

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from ticket_dispatcher import csrf
from ticket_dispatcher.core.templates import BASE_TEMPLATE_IDS, TemplateDefinition
from .context import get_templates, json_error
from .schemas import first_error_message

templates_api_bp = Blueprint("templates_api", __name__, url_prefix="/api/templates")


@templates_api_bp.get("")
def list_templates():
    return jsonify(get_templates().all())


@templates_api_bp.get("/<template_id>")
def get_template(template_id: str):
    tpl = get_templates().get(template_id)
    if tpl is None:
        return json_error("Template not found", 404, f"No template with id: {template_id}")
    return jsonify(tpl.to_dict())


@csrf.exempt
@templates_api_bp.post("")
def save_template():
    if not request.is_json:
        return json_error("Expected application/json body", 415)
    data = request.get_json(silent=True) or {}
    try:
        tpl = TemplateDefinition.model_validate(data)
    except ValidationError as e:
        return json_error("Invalid template", 400, first_error_message(e))
    try:
        get_templates().save(tpl)
    except OSError as e:
        current_app.logger.exception("Saving template %s failed", tpl.id)
        return json_error("Could not save template", 500, str(e))
    return jsonify({"success": True, "message": f"Template {tpl.id} saved", "template": tpl.to_dict()})


@csrf.exempt
@templates_api_bp.delete("/<template_id>")
def delete_template(template_id: str):
    if template_id in BASE_TEMPLATE_IDS:
        return json_error("Base templates cannot be deleted", 400)
    try:
        deleted = get_templates().delete(template_id)
    except OSError as e:
        current_app.logger.exception("Deleting template %s failed", template_id)
        return json_error("Could not delete template", 500, str(e))
    if not deleted:
        return json_error("Template not found", 404, f"No template with id: {template_id}")
    return jsonify({"success": True, "message": f"Template {template_id} deleted"})


@csrf.exempt
@templates_api_bp.post("/<template_id>/validate")
def validate_template_data(template_id: str):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return json_error("invalid JSON payload", 400)
    return jsonify(get_templates().validate(template_id, data).to_dict())
