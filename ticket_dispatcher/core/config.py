"""
Config utilities for Ticket Dispatcher.

Responsibilities:
- Resolve config/data paths with environment and XDG support
- Provide JSON load/save helpers for the dispatcher's config
- Merge saved printer settings over a set of defaults
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CONFIG: Dict[str, Any] = {
    "client_id": "cliente-default",
    "business_name": "Mi Negocio",
    "printer_ip": "",
    "printer_port": 9100,
    "printer_profile": None,
    "printer_timeout_seconds": 10,
    "ticket_width": 48,
    "receipt_width": 512,
    "use_header_logo": True,
    "use_footer_logo": True,
    "header_logo_path": None,
    "footer_logo_path": None,
    "use_font_ticket": False,
    "font_path": None,
    "footer_lines": ["Absolute Soluciones Empresariales", "CONABSOLUTE.COM"],
    "print_confirmation": True,
    # queue behaviour
    "inflight_recovery": "fail",
    "render_timeout_seconds": 60,
    "inter_job_delay_seconds": 0.5,
    "poll_interval_seconds": 2.0,
    "reconcile_interval_seconds": 5.0,
    "notify_url": None,
    "notify_timeout_seconds": 5.0,
}

# Keys accepted from older config files (camelCase written by the web UI).
_LEGACY_KEYS = {
    "clienteId": "client_id",
    "businessName": "business_name",
    "printerIP": "printer_ip",
    "printerPort": "printer_port",
    "ticketWidth": "ticket_width",
    "useHeaderLogo": "use_header_logo",
    "useFooterLogo": "use_footer_logo",
    "useFontTicket": "use_font_ticket",
    "useLogo": "use_header_logo",
}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/ticketdispatch/config.json
    2) ~/.config/ticketdispatch/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "ticketdispatch" / "config.json")
    return str(Path.home() / ".config" / "ticketdispatch" / "config.json")


def default_data_path() -> str:
    """
    Resolve the default data path (queue directories, templates.json) using:
    1) $XDG_DATA_HOME/ticketdispatch
    2) ~/.local/share/ticketdispatch
    """
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return str(Path(xdg) / "ticketdispatch")
    return str(Path.home() / ".local" / "share" / "ticketdispatch")


def get_config_path() -> str:
    """
    Return the config path honoring TICKETDISPATCH_CONFIG_PATH override.
    """
    return os.environ.get("TICKETDISPATCH_CONFIG_PATH", default_config_path())


def get_data_path() -> str:
    """
    Return the data path honoring TICKETDISPATCH_DATA_PATH override.
    """
    return os.environ.get("TICKETDISPATCH_DATA_PATH", default_data_path())


def ensure_dir(path: str) -> str:
    """
    Ensure a directory exists and return the path.
    """
    Path(path).mkdir(parents=True, exist_ok=True)
    return path


def load_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    The path is resolved at call time so tests and the setup API can point
    TICKETDISPATCH_CONFIG_PATH somewhere else after import.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: Dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


def normalize_config(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Return DEFAULT_CONFIG overlaid with `raw`, translating legacy camelCase keys.
    """
    merged = dict(DEFAULT_CONFIG)
    for key, value in (raw or {}).items():
        target = _LEGACY_KEYS.get(key, key)
        if key in _LEGACY_KEYS and target in (raw or {}):
            # an explicit snake_case key wins over its legacy alias
            continue
        merged[target] = value
    if not merged.get("printer_port"):
        merged["printer_port"] = DEFAULT_CONFIG["printer_port"]
    return merged


def load_config_with_defaults(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the saved config merged over defaults. A missing file yields the defaults.
    """
    return normalize_config(load_config(path))


__all__ = [
    "DEFAULT_CONFIG",
    "default_config_path",
    "default_data_path",
    "ensure_dir",
    "get_config_path",
    "get_data_path",
    "load_config",
    "load_config_with_defaults",
    "normalize_config",
    "save_config",
]
