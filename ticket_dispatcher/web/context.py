"""
Accessors for the per-app objects created by `create_app()`.
"""

from __future__ import annotations

from typing import Any, Mapping

from flask import current_app, jsonify

from ticket_dispatcher.core.templates import TemplateRegistry
from ticket_dispatcher.queue import PrintQueue


def _state() -> dict:
    from ticket_dispatcher import EXTENSION_KEY

    return current_app.extensions[EXTENSION_KEY]


def get_queue() -> PrintQueue:
    return _state()["queue"]


def get_templates() -> TemplateRegistry:
    return _state()["templates"]


def get_printer_config() -> Mapping[str, Any]:
    return _state()["config_provider"]()


def json_error(msg: str, code: int = 400, details: Any = None):
    body = {"error": msg}
    if details is not None:
        body["details"] = details
    return jsonify(body), code


__all__ = ["get_printer_config", "get_queue", "get_templates", "json_error"]
