"""
Web module for Ticket Dispatcher.

Exposes blueprints for:
- Dashboard: web_bp
- Print + queue API: api_bp
- Queue SSE stream: events_bp
- Templates API: templates_api_bp
- Printer config API: config_bp
- Logo and font assets API: assets_bp
- Health endpoint: health_bp
"""

from .api import api_bp
from .assets_api import assets_bp
from .config_api import config_bp
from .events import events_bp
from .health import health_bp
from .routes import web_bp
from .templates_api import templates_api_bp

__all__ = ["api_bp", "assets_bp", "config_bp", "events_bp", "health_bp", "templates_api_bp", "web_bp"]
