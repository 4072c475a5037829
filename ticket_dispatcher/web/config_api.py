from __future__ import annotations

"""
Printer configuration endpoints.

- GET  /api/config        : Saved config merged over defaults
- POST /api/config        : Merge a partial update into config.json
- GET  /api/ping-printer  : TCP reachability check (optional ?ip=&port= override)
- POST /api/test-print    : Print the confirmation ticket now

Changing the printer address through POST /api/config prints the confirmation
ticket on the new printer when `print_confirmation` is on.
"""

from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from ticket_dispatcher import csrf
from ticket_dispatcher.core.config import load_config, save_config
from ticket_dispatcher.printing.printer import check_printer, print_confirmation_if_enabled, print_test_ticket
from .context import get_printer_config, json_error
from .schemas import ConfigUpdate, first_error_message

config_bp = Blueprint("config", __name__, url_prefix="/api")

PRINTER_KEYS = ("printer_ip", "printer_port", "printer_profile")


def _confirm_printer() -> Optional[str]:
    """
    Print the confirmation ticket if enabled. Returns an error message on failure.
    """
    try:
        print_confirmation_if_enabled(get_printer_config())
    except Exception as e:
        current_app.logger.warning("Confirmation ticket failed: %s", e)
        return str(e) or type(e).__name__
    return None


@config_bp.get("/config")
def read_config():
    try:
        return jsonify(dict(get_printer_config()))
    except Exception as e:
        current_app.logger.error("Reading config failed: %s", e)
        return json_error("Could not read config", 500, str(e))


@csrf.exempt
@config_bp.post("/config")
def update_config():
    if not request.is_json:
        return json_error("Expected application/json body", 415)
    try:
        update = ConfigUpdate.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return json_error("Invalid config", 400, first_error_message(e))

    path = current_app.config["CONFIG_PATH"]
    changes = update.changes()
    try:
        current = load_config(path) or {}
        printer_changed = any(k in changes and changes[k] != current.get(k) for k in PRINTER_KEYS)
        current.update(changes)
        save_config(current, path=path)
    except (OSError, ValueError) as e:
        current_app.logger.exception("Saving config failed")
        return json_error("Could not save config", 500, str(e))
    # Queue timing (poll/reconcile/delay) is read at startup; printer settings apply to the next job.
    current_app.logger.info("Config updated: %s", ", ".join(sorted(changes)) or "no changes")
    body = {"success": True, "message": "Config saved"}
    if printer_changed:
        error = _confirm_printer()
        if error:
            body["confirmationError"] = error
    return jsonify(body)


@config_bp.get("/ping-printer")
def ping_printer():
    cfg = dict(get_printer_config())
    ip = (request.args.get("ip") or cfg.get("printer_ip") or "").strip()
    if not ip:
        return json_error("Printer IP not set", 400)
    cfg["printer_ip"] = ip
    try:
        cfg["printer_port"] = int(request.args.get("port") or cfg.get("printer_port") or 9100)
    except ValueError:
        return json_error("Invalid port", 400)
    cfg["printer_timeout_seconds"] = min(float(cfg.get("printer_timeout_seconds") or 3), 3.0)

    ok, reason = check_printer(cfg)
    current_app.logger.info("Ping %s:%s -> %s", ip, cfg["printer_port"], "ok" if ok else reason)
    return jsonify({"ok": ok, "ip": ip, "port": cfg["printer_port"], "reason": reason})


@csrf.exempt
@config_bp.post("/test-print")
def test_print():
    try:
        print_test_ticket(get_printer_config())
    except Exception as e:
        current_app.logger.error("Test print failed: %s", e)
        return json_error("Test print failed", 500, str(e) or type(e).__name__)
    return jsonify({"success": True, "message": "Test ticket printed"})
