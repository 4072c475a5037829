import glob
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from ticket_dispatcher.core.config import load_config


def _png(size=(800, 200), color=(0, 0, 0, 255)) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _upload(client, url, field, content: bytes, filename: str):
    return client.post(url, data={field: (BytesIO(content), filename)}, content_type="multipart/form-data")


def _system_ttf():
    for pattern in ("/usr/share/fonts/**/*.ttf", "/usr/local/share/fonts/**/*.ttf", "/Library/Fonts/*.ttf"):
        found = sorted(glob.glob(pattern, recursive=True))
        if found:
            return found[0]
    return None


def test_header_logo_upload_scales_and_enables(app_factory, tmp_path):
    client = app_factory().test_client()

    resp = _upload(client, "/api/upload-logo-header", "logo", _png(), "Mi Logo.png")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True

    stored = tmp_path / "data" / "logos" / "cliente-default" / "header.png"
    assert body["path"] == str(stored)
    with Image.open(stored) as img:
        assert img.mode == "L"
        assert img.size == (600, 150)

    cfg = load_config(str(tmp_path / "config.json"))
    assert cfg["header_logo_path"] == str(stored)
    assert cfg["use_header_logo"] is True
    # untouched keys survive
    assert cfg["printer_ip"] == "192.168.1.50"

    exists = client.get("/api/logo-exists").get_json()
    assert exists["headerExists"] is True
    assert exists["footerExists"] is False

    resp = client.get("/api/logo-header")
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"


def test_footer_logo_is_narrower(app_factory, tmp_path):
    client = app_factory().test_client()
    assert _upload(client, "/api/upload-logo-footer", "logo", _png((400, 400)), "f.png").status_code == 200

    with Image.open(tmp_path / "data" / "logos" / "cliente-default" / "footer.png") as img:
        assert img.size == (200, 200)


def test_logo_delete_disables(app_factory, tmp_path):
    client = app_factory().test_client()
    _upload(client, "/api/upload-logo-header", "logo", _png(), "h.png")

    resp = client.delete("/api/logo-header")
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Header logo deleted"

    cfg = load_config(str(tmp_path / "config.json"))
    assert cfg["header_logo_path"] is None
    assert cfg["use_header_logo"] is False
    assert client.get("/api/logo-header").status_code == 404
    assert client.delete("/api/logo-header").get_json()["message"] == "There was no header logo to delete"


def test_logo_upload_errors(app_factory):
    client = app_factory().test_client()

    assert client.post("/api/upload-logo-header", data={}, content_type="multipart/form-data").status_code == 400

    resp = _upload(client, "/api/upload-logo-header", "logo", b"not an image", "x.png")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Unsupported image"

    assert _upload(client, "/api/upload-logo-sidebar", "logo", _png(), "x.png").status_code == 404


def test_font_rejects_bad_uploads(app_factory, tmp_path):
    client = app_factory().test_client()

    resp = _upload(client, "/api/upload-font", "font", b"\x00\x01", "font.woff")
    assert resp.status_code == 400
    assert "TTF" in resp.get_json()["error"]

    resp = _upload(client, "/api/upload-font", "font", b"garbage bytes", "font.ttf")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Font could not be loaded"

    fonts = tmp_path / "data" / "fonts" / "cliente-default"
    assert not fonts.exists() or list(fonts.iterdir()) == []
    assert load_config(str(tmp_path / "config.json")).get("font_path") is None


def test_font_info_preview_and_delete_without_font(app_factory):
    client = app_factory().test_client()

    assert client.get("/api/font-info").get_json() == {"fontInfo": None, "useFontTicket": False}
    assert client.get("/api/font-preview?text=hola").status_code == 404

    body = client.delete("/api/delete-font").get_json()
    assert body == {"success": False, "message": "There was no font to delete"}


def test_font_upload_preview_delete(app_factory, tmp_path):
    ttf = _system_ttf()
    if ttf is None:
        pytest.skip("no TrueType font installed")
    client = app_factory().test_client()

    resp = _upload(client, "/api/upload-font", "font", Path(ttf).read_bytes(), "MiFuente.ttf")
    assert resp.status_code == 200
    stored = tmp_path / "data" / "fonts" / "cliente-default" / "font.ttf"
    assert resp.get_json()["path"] == str(stored)

    cfg = load_config(str(tmp_path / "config.json"))
    assert cfg["font_path"] == str(stored)
    assert cfg["use_font_ticket"] is True

    info = client.get("/api/font-info").get_json()
    assert info["useFontTicket"] is True
    assert info["fontInfo"]["size"] == stored.stat().st_size

    resp = client.get("/api/font-preview?text=Hola")
    assert resp.status_code == 200
    with Image.open(BytesIO(resp.data)) as img:
        assert img.format == "PNG"

    assert client.delete("/api/delete-font").get_json()["success"] is True
    assert not stored.exists()
    assert load_config(str(tmp_path / "config.json"))["use_font_ticket"] is False
