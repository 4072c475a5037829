"""
Core utilities for Ticket Dispatcher.

This package groups non-Flask helpers used across the app:
- config: paths, JSON load/save, printer/queue defaults
- logging: request/job aware logging filters/formatters and root logger config
- templates: ticket template registry and payload validation
"""

from .config import (
    DEFAULT_CONFIG,
    default_config_path,
    default_data_path,
    ensure_dir,
    get_config_path,
    get_data_path,
    load_config,
    load_config_with_defaults,
    normalize_config,
    save_config,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    configure_logging,
    job_log_context,
)
from .templates import (
    TemplateDefinition,
    TemplateRegistry,
    ValidationResult,
)

__all__ = [
    # config
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
    # logging
    "JsonFormatter",
    "RequestIdFilter",
    "configure_logging",
    "job_log_context",
    # templates
    "TemplateDefinition",
    "TemplateRegistry",
    "ValidationResult",
]
