"""
Ticket Dispatcher package

Application factory wiring:
- Configures logging via ticket_dispatcher.core.logging
- Creates a Flask app serving the JSON API and the queue dashboard
- Initializes CSRF protection for dashboard forms (API views are exempt)
- Builds the durable print queue and template registry for this app
- Optionally recovers interrupted jobs, prints the confirmation ticket and
  starts the queue scheduler
"""

from __future__ import annotations

import functools
import importlib
import logging
import os
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from flask import Flask, g, request
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf
from jinja2 import StrictUndefined

csrf = CSRFProtect()

EXTENSION_KEY = "ticket_dispatcher"

DEFAULT_BLUEPRINTS: Sequence[tuple[str, str]] = (
    ("ticket_dispatcher.web.routes", "web_bp"),  # dashboard
    ("ticket_dispatcher.web.health", "health_bp"),  # /healthz
    ("ticket_dispatcher.web.api", "api_bp"),  # print + queue API
    ("ticket_dispatcher.web.events", "events_bp"),  # SSE queue updates
    ("ticket_dispatcher.web.templates_api", "templates_api_bp"),  # templates CRUD
    ("ticket_dispatcher.web.config_api", "config_bp"),  # printer config
    ("ticket_dispatcher.web.assets_api", "assets_bp"),  # logo and font uploads
)


def _default_secret_key() -> str:
    return os.environ.get("TICKETDISPATCH_SECRET_KEY", "ticketdispatch_dev_secret_key")


def _register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    mod = importlib.import_module(import_path)
    app.register_blueprint(getattr(mod, attr))
    app.logger.debug("Registered blueprint: %s.%s", import_path, attr)


def _set_csrf_cookie(response):
    """
    Ensure a CSRF cookie is present for dashboard scripts that POST with fetch().
    """
    try:
        token = generate_csrf()
        response.set_cookie("csrf_token", token, secure=False, httponly=False, samesite="Lax")
    except Exception:
        pass
    return response


def create_app(
    config_overrides: Optional[Dict[str, Any]] = None,
    blueprints: Optional[Sequence[tuple[str, str]]] = None,
    register_worker: bool = True,
    render: Optional[Callable[..., bool]] = None,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values injected into app.config before the queue is built
      (DATA_PATH and CONFIG_PATH relocate the queue directories and config.json)
    - blueprints: optional list of (import_path, attribute) tuples to register
    - register_worker: if True, recover interrupted jobs and start the queue scheduler
    - render: render collaborator override (defaults to the ESC/POS renderer)

    Returns:
    - Flask app instance, with its PrintQueue in app.extensions["ticket_dispatcher"]
    """
    from ticket_dispatcher.core.config import _env_int, ensure_dir, get_config_path, get_data_path, load_config_with_defaults
    from ticket_dispatcher.core.logging import configure_logging
    from ticket_dispatcher.core.templates import TemplateRegistry
    from ticket_dispatcher.printing.printer import print_confirmation_if_enabled, render_job
    from ticket_dispatcher.queue import build_print_queue

    pkg_dir = Path(__file__).resolve().parent
    app = Flask("ticket_dispatcher", template_folder=str(pkg_dir / "web" / "html"))
    app.jinja_env.undefined = StrictUndefined

    app.secret_key = _default_secret_key()
    app.config["MAX_CONTENT_LENGTH"] = _env_int("TICKETDISPATCH_MAX_CONTENT_LENGTH", 1024 * 1024)
    if config_overrides:
        app.config.update(config_overrides)

    csrf.init_app(app)
    configure_logging()
    app.url_map.strict_slashes = False

    data_path = ensure_dir(str(app.config.get("DATA_PATH") or get_data_path()))
    config_path = str(app.config.get("CONFIG_PATH") or get_config_path())
    app.config["DATA_PATH"] = data_path
    app.config["CONFIG_PATH"] = config_path

    def _printer_config() -> Mapping[str, Any]:
        return load_config_with_defaults(config_path)

    try:
        startup_cfg = _printer_config()
    except Exception as e:
        app.logger.error("Config %s unreadable (%s); starting with defaults", config_path, e)
        from ticket_dispatcher.core.config import DEFAULT_CONFIG

        startup_cfg = dict(DEFAULT_CONFIG)

    registry = TemplateRegistry(Path(data_path) / "templates.json")
    print_queue = build_print_queue(
        data_path,
        startup_cfg,
        render=render or functools.partial(render_job, registry=registry),
        config_provider=_printer_config,
        on_start=lambda: print_confirmation_if_enabled(_printer_config()),
    )
    app.extensions[EXTENSION_KEY] = {
        "queue": print_queue,
        "templates": registry,
        "config_provider": _printer_config,
    }

    @app.before_request
    def _before_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def _after_request(response):
        if request.method in ("GET", "HEAD", "OPTIONS") or (300 <= response.status_code < 400):
            return _set_csrf_cookie(response)
        return response

    for import_path, attr in blueprints or DEFAULT_BLUEPRINTS:
        _register_blueprint(app, import_path, attr)

    if register_worker:
        print_queue.start()
        app.logger.info("Print queue scheduler running for %s", data_path)

    app.logger.info("Ticket Dispatcher app created (data=%s)", data_path)
    return app


__all__ = ["EXTENSION_KEY", "create_app", "csrf"]
