from typing import Any, Dict, List

import pytest
from PIL import Image

from ticket_dispatcher.core.templates import TemplateRegistry
from ticket_dispatcher.printing import printer
from ticket_dispatcher.printing.render import clear_font_cache, load_logo, render_text_image, resolve_font, wrap_text


class FakePrinter:
    def __init__(self):
        self.text_calls: List[str] = []
        self.images = 0
        self.cut_calls = 0
        self.barcodes: List[str] = []
        self.closed = False

    def text(self, s: str):
        self.text_calls.append(s)

    def set(self, **kwargs):
        return None

    def image(self, img):
        self.images += 1

    def barcode(self, code, bc, **kwargs):
        self.barcodes.append(code)

    def cut(self):
        self.cut_calls += 1

    def close(self):
        self.closed = True


def _cfg(**overrides) -> Dict[str, Any]:
    cfg = {"printer_ip": "192.168.1.50", "printer_port": 9100, "use_font_ticket": False, "footer_lines": ["Gracias!"]}
    cfg.update(overrides)
    return cfg


@pytest.fixture
def fake(monkeypatch, tmp_path):
    monkeypatch.setenv("TICKETDISPATCH_DATA_PATH", str(tmp_path))
    p = FakePrinter()
    monkeypatch.setattr(printer, "_connect_printer", lambda cfg: p)
    return p


def _printed(p: FakePrinter) -> str:
    return "".join(p.text_calls)


@pytest.mark.parametrize(
    "amount, expected",
    [(100, "$100"), (1234, "$1.234"), (1234567.6, "$1.234.568"), ("n/a", "$0"), (None, "$0")],
)
def test_format_currency(amount, expected):
    assert printer.format_currency(amount) == expected


def test_price_tag_layout(fake):
    payload = {
        "productName": "widget",
        "price": 100,
        "offerPrice": 80,
        "barcode": "779123",
        "_templateInfo": {"id": "price-tag", "jobId": "j1", "timestamp": "t"},
    }
    assert printer.render_job(_cfg(), payload) is True

    out = _printed(fake)
    assert "Widget\n" in out
    assert "Antes $100\n" in out
    assert "$80\n" in out
    assert "Gracias!\n" in out
    assert fake.barcodes == ["779123"]
    assert fake.cut_calls == 1
    assert fake.closed


def test_receipt_layout(fake):
    payload = {
        "detallePedido": [{"nombre": "EMPANADA", "cantidad": 3, "precio": 1500}],
        "subTotal": 4500,
        "envio": 500,
        "total": 5000,
        "metodoPago": "efectivo",
        "telefono": "1122334455",
        "direccion": "Calle 123",
        "_templateInfo": {"id": "receipt"},
    }
    assert printer.render_job(_cfg(), payload) is True

    out = _printed(fake)
    assert "3x Empanada: $4.500\n" in out
    assert "ENVÍO: $500\n" in out
    assert "TOTAL: $5.000 en efectivo\n" in out
    assert "Tel: 1122334455\n" in out
    assert "Dirección: Calle 123\n" in out


def test_render_does_not_mutate_payload(fake):
    payload = {"productName": "x", "price": 1, "_templateInfo": {"id": "price-tag"}}
    before = repr(payload)
    printer.render_job(_cfg(), payload)
    assert repr(payload) == before


def test_unknown_layout_and_invalid_data_return_false(fake, tmp_path):
    assert printer.render_job(_cfg(), {"_templateInfo": {"id": "kitchen"}}) is False

    registry = TemplateRegistry(tmp_path / "templates.json")
    bad = {"productName": "x", "_templateInfo": {"id": "price-tag"}}
    assert printer.render_job(_cfg(), bad, registry=registry) is False
    assert fake.text_calls == []


def test_connection_errors_propagate(monkeypatch):
    def _refuse(cfg):
        raise ConnectionRefusedError("no route")

    monkeypatch.setattr(printer, "_connect_printer", _refuse)
    with pytest.raises(ConnectionRefusedError):
        printer.render_job(_cfg(), {"productName": "x", "price": 1, "_templateInfo": {"id": "price-tag"}})


def test_printer_closed_after_layout_error(fake, monkeypatch):
    def _jam():
        raise OSError("paper jam")

    monkeypatch.setattr(fake, "cut", _jam)
    with pytest.raises(OSError):
        printer.render_job(_cfg(), {"productName": "x", "price": 1, "_templateInfo": {"id": "price-tag"}})
    assert fake.closed


def test_font_ticket_prints_images(fake):
    printer.render_job(_cfg(use_font_ticket=True), {"productName": "x", "price": 1, "_templateInfo": {"id": "price-tag"}})
    assert fake.images >= 2
    assert "$1\n" not in _printed(fake)


def test_check_printer(monkeypatch):
    assert printer.check_printer({}) == (False, "printer_not_configured")

    monkeypatch.setattr(printer, "_connect_printer", lambda cfg: FakePrinter())
    assert printer.check_printer(_cfg()) == (True, None)

    def _timeout(cfg):
        raise TimeoutError()

    monkeypatch.setattr(printer, "_connect_printer", _timeout)
    assert printer.check_printer(_cfg()) == (False, "printer_unreachable: TimeoutError")


def test_template_id_of():
    assert printer.template_id_of({"_templateInfo": {"id": "price-tag"}}) == "price-tag"
    assert printer.template_id_of({"templateId": "receipt"}) == "receipt"
    assert printer.template_id_of({}) == "receipt"


def test_render_text_image_width_and_wrap():
    clear_font_cache()
    img = render_text_image("una linea bastante larga " * 8, {"receipt_width": 200}, font_size=20)
    assert img.mode == "L"
    assert img.width == 200

    font = resolve_font({}, 20)
    lines = wrap_text("a\nb c", font, 1000)
    assert lines == ["a", "b c"]


def test_load_logo_scales_and_flattens(tmp_path):
    path = tmp_path / "header.png"
    Image.new("RGBA", (800, 200), (0, 0, 0, 0)).save(path)

    img = load_logo(str(path), 400)
    assert img.mode == "L"
    assert img.size == (400, 100)
    # transparent pixels become white
    assert img.getpixel((0, 0)) == 255

    assert load_logo(str(tmp_path / "missing.png"), 400) is None


def test_header_logo_from_data_dir(fake, tmp_path):
    logos = tmp_path / "logos" / "shop1"
    logos.mkdir(parents=True)
    Image.new("L", (100, 50), 0).save(logos / "header.png")

    cfg = _cfg(client_id="shop1")
    assert printer.resolve_logo_path(cfg, "header") == str(logos / "header.png")
    printer.render_job(cfg, {"productName": "x", "price": 1, "_templateInfo": {"id": "price-tag"}})
    assert fake.images == 1


def test_print_test_ticket(fake):
    assert printer.print_test_ticket(_cfg()) is True
    assert "Impresora conectada correctamente\n" in _printed(fake)
    assert fake.cut_calls == 1
    assert fake.closed


def test_confirmation_ticket_only_when_enabled(fake):
    assert printer.print_confirmation_if_enabled(_cfg(print_confirmation=False)) is False
    assert printer.print_confirmation_if_enabled(_cfg(print_confirmation=True, printer_ip=" ")) is False
    assert fake.text_calls == []

    assert printer.print_confirmation_if_enabled(_cfg(print_confirmation=True)) is True
    assert "Impresora conectada correctamente\n" in _printed(fake)
