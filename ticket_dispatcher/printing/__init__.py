"""
Printing subsystem for Ticket Dispatcher.

- render: Pillow text/logo rasterization for ESC/POS printers
- printer: ticket layouts and the `render_job` collaborator used by the queue
"""

from .printer import check_printer, format_currency, print_confirmation_if_enabled, print_test_ticket, render_job
from .render import load_logo, render_text_image, resolve_font

__all__ = [
    "check_printer",
    "format_currency",
    "load_logo",
    "print_confirmation_if_enabled",
    "print_test_ticket",
    "render_job",
    "render_text_image",
    "resolve_font",
]
