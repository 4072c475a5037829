"""
ESC/POS ticket rendering for Ticket Dispatcher.

`render_job(config, payload)` is the render collaborator the drain loop calls:
it connects to the networked thermal printer, lays out the ticket for the
payload's template (`receipt` or `price-tag`), cuts, and returns True. It
returns False for payloads it cannot print (invalid data, unknown layout) and
lets connection/printer errors propagate, which the drain loop counts as failures.

The payload is treated as read-only.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ticket_dispatcher.core.config import get_data_path

from .render import load_logo, render_text_image

logger = logging.getLogger(__name__)

HEADER_LOGO_WIDTH = 400
FOOTER_LOGO_WIDTH = 100

# One ticket on the wire at a time: queue jobs and confirmation tickets share it.
_printer_lock = threading.Lock()


def format_currency(amount: Any) -> str:
    """
    `$` + whole amount with `.` as thousands separator (es-AR style, no decimals).
    """
    try:
        value = int(round(float(amount)))
    except (TypeError, ValueError):
        value = 0
    return "$" + f"{value:,}".replace(",", ".")


def _capitalize(text: Any) -> str:
    s = str(text or "").strip()
    return s[:1].upper() + s[1:].lower() if s else s


def _connect_printer(config: Mapping[str, Any]):
    """
    Create an ESC/POS network printer from the dispatcher config.
    """
    from escpos.printer import Network

    ip = str(config.get("printer_ip") or "").strip()
    if not ip:
        raise RuntimeError("printer_ip is not configured")
    port = int(config.get("printer_port") or 9100)
    timeout = float(config.get("printer_timeout_seconds") or 10)
    profile = config.get("printer_profile") or None
    if profile:
        return Network(ip, port=port, timeout=timeout, profile=profile)
    return Network(ip, port=port, timeout=timeout)


def check_printer(config: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Connect to the configured printer and close immediately.

    Returns (ok, reason) where reason is a short code on failure.
    """
    if not str(config.get("printer_ip") or "").strip():
        return False, "printer_not_configured"
    try:
        p = _connect_printer(config)
        if hasattr(p, "open"):
            p.open()
        try:
            p.close()
        except Exception:
            pass
        return True, None
    except Exception as e:
        return False, f"printer_unreachable: {type(e).__name__}"


def resolve_logo_path(config: Mapping[str, Any], which: str) -> Optional[str]:
    """
    Logo lookup order: explicit `<which>_logo_path`, per-client
    `<data>/logos/<client_id>/<which>.png`, legacy `<data>/logo-<which>.png`.
    """
    explicit = config.get(f"{which}_logo_path")
    if explicit and os.path.isfile(str(explicit)):
        return str(explicit)
    data = Path(get_data_path())
    client = str(config.get("client_id") or "cliente-default").strip()
    for candidate in (data / "logos" / client / f"{which}.png", data / f"logo-{which}.png"):
        if candidate.is_file():
            return str(candidate)
    return None


class _TicketWriter:
    """
    Thin layer over an escpos printer: prints a line either as native text or,
    with `use_font_ticket`, as a rasterized image in the configured TTF.
    """

    def __init__(self, p, config: Mapping[str, Any]):
        self.p = p
        self.config = config
        self.use_font = bool(config.get("use_font_ticket"))

    def line(self, text: str, *, align: str = "center", bold: bool = False, font_size: int = 28, big: bool = False) -> None:
        if self.use_font:
            try:
                img = render_text_image(text, self.config, font_size=font_size, center=align == "center", bold=bold)
                self.p.set(align=align)
                self.p.image(img)
                return
            except Exception as e:
                logger.warning("Font rendering failed, using printer font: %s", e)
        self.p.set(align=align, bold=bold, double_width=big, double_height=big)
        self.p.text(f"{text}\n")
        self.p.set(align="left", bold=False, normal_textsize=True)

    def feed(self, lines: int = 1) -> None:
        if lines > 0:
            self.p.text("\n" * lines)

    def logo(self, which: str, width: int) -> None:
        flag = self.config.get(f"use_{which}_logo", True)
        if not flag:
            return
        path = resolve_logo_path(self.config, which)
        if not path:
            return
        img = load_logo(path, width)
        if img is None:
            return
        try:
            self.p.set(align="center")
            self.p.image(img)
        except Exception as e:
            logger.warning("Could not print %s logo: %s", which, e)

    def footer(self) -> None:
        self.logo("footer", FOOTER_LOGO_WIDTH)
        for text in self.config.get("footer_lines") or []:
            self.line(str(text), bold=True)

    def cut(self) -> None:
        self.feed(2)
        self.p.cut()


def _print_receipt(w: _TicketWriter, order: Mapping[str, Any]) -> None:
    w.logo("header", HEADER_LOGO_WIDTH)
    w.feed()
    business = order.get("businessName")
    if business:
        w.line(str(business), bold=True, font_size=32)
    if order.get("id"):
        w.line(f"Pedido #{order['id']}")
    stamp = " ".join(str(order[k]) for k in ("fecha", "hora") if order.get(k))
    if stamp:
        w.line(stamp)

    for item in order.get("detallePedido") or []:
        name = _capitalize(item.get("nombre") or item.get("name") or "Producto sin nombre")
        qty = item.get("cantidad") or item.get("quantity") or 1
        price = item.get("precio") or item.get("price") or 0
        w.line(f"{qty}x {name}: {format_currency(price * qty)}", bold=True)
        if item.get("aclaraciones"):
            w.line(f"   {item['aclaraciones']}", align="left")
    w.feed()

    subtotal = order.get("subTotal")
    if subtotal and subtotal != order.get("total"):
        w.line(f"SUBTOTAL: {format_currency(subtotal)}", align="right")
    envio = order.get("envio")
    if isinstance(envio, (int, float)) and envio > 0:
        w.line(f"ENVÍO: {format_currency(envio)}", align="right")

    w.line(f"TOTAL: {format_currency(order.get('total'))} en {order.get('metodoPago')}", bold=True, font_size=32)
    w.feed()
    w.line(f"Tel: {order.get('telefono')}", align="left")
    if order.get("direccion"):
        w.line(f"Dirección: {order['direccion']}", align="left")
    if order.get("aclaraciones"):
        w.line(f"Aclaraciones: {order['aclaraciones']}", align="left")
    w.feed()
    w.footer()
    w.cut()


def _print_price_tag(w: _TicketWriter, data: Mapping[str, Any]) -> None:
    w.logo("header", HEADER_LOGO_WIDTH)
    w.feed()
    if data.get("header"):
        w.line(str(data["header"]), bold=True, font_size=120, big=True)
        width = int(w.config.get("ticket_width") or 48)
        w.line("_" * max(1, width // 3))
        w.feed(2)
    if data.get("category"):
        w.line(str(data["category"]))

    w.line(_capitalize(data.get("productName") or "Producto sin nombre"), bold=True, font_size=40)
    w.feed()

    offer = data.get("offerPrice")
    if isinstance(offer, (int, float)) and not isinstance(offer, bool):
        w.line(f"Antes {format_currency(data.get('price'))}")
        w.line(format_currency(offer), bold=True, font_size=160, big=True)
    else:
        w.line(format_currency(data.get("price")), bold=True, font_size=160, big=True)
    if data.get("validUntil"):
        w.line(f"Válido hasta {data['validUntil']}")
    if data.get("barcode"):
        try:
            w.p.set(align="center")
            w.p.barcode(str(data["barcode"]), "CODE128", function_type="B")
        except Exception as e:
            logger.warning("Barcode %r not printed: %s", data["barcode"], e)
    w.feed()
    w.footer()
    w.cut()


_LAYOUTS = {
    "receipt": _print_receipt,
    "price-tag": _print_price_tag,
}


def template_id_of(payload: Mapping[str, Any]) -> str:
    info = payload.get("_templateInfo")
    if isinstance(info, Mapping) and info.get("id"):
        return str(info["id"])
    return str(payload.get("templateId") or "receipt")


def render_job(config: Mapping[str, Any], payload: Dict[str, Any], registry=None) -> bool:
    """
    Print one job. `registry`, when given, re-validates the payload against its
    template before connecting.
    """
    template_id = template_id_of(payload)
    layout = _LAYOUTS.get(template_id)
    if layout is None:
        logger.error("No printable layout for template %r", template_id)
        return False
    if registry is not None:
        result = registry.validate(template_id, payload)
        if not result.valid:
            logger.error("Invalid data for template %s: %s", template_id, ", ".join(result.missing_fields))
            return False

    logger.info("Printing %s ticket on %s:%s", template_id, config.get("printer_ip"), config.get("printer_port"))
    with _printer_lock:
        p = _connect_printer(config)
        try:
            layout(_TicketWriter(p, config), payload)
        finally:
            try:
                p.close()
            except Exception:
                pass
    return True


def print_test_ticket(config: Mapping[str, Any]) -> bool:
    """
    Print a short "printer connected" confirmation ticket (on startup and after
    the printer settings change).
    """
    logger.info("Printing confirmation ticket on %s:%s", config.get("printer_ip"), config.get("printer_port"))
    with _printer_lock:
        p = _connect_printer(config)
        try:
            w = _TicketWriter(p, config)
            w.logo("header", HEADER_LOGO_WIDTH)
            w.feed(2)
            w.line("Impresora conectada correctamente", bold=True)
            w.feed()
            w.footer()
            w.cut()
        finally:
            try:
                p.close()
            except Exception:
                pass
    return True


def print_confirmation_if_enabled(config: Mapping[str, Any]) -> bool:
    """
    Print the confirmation ticket when `print_confirmation` is on and a printer
    is configured. Returns True if a ticket was printed.
    """
    if not config.get("print_confirmation") or not str(config.get("printer_ip") or "").strip():
        return False
    return print_test_ticket(config)


__all__ = [
    "check_printer",
    "format_currency",
    "print_confirmation_if_enabled",
    "print_test_ticket",
    "render_job",
    "resolve_logo_path",
    "template_id_of",
]
