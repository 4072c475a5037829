from __future__ import annotations

"""
Logo and font management for printed tickets.

- GET    /api/logo-exists                 : Which logos are present
- GET    /api/logo-<header|footer>        : The stored logo (PNG)
- POST   /api/upload-logo-<header|footer> : Upload a logo (multipart field "logo")
- DELETE /api/logo-<header|footer>        : Remove a logo and disable it
- POST   /api/upload-font                 : Upload a TTF (multipart field "font")
- GET    /api/font-info                   : Current custom font, if any
- GET    /api/font-preview?text=          : PNG preview rendered with the font
- DELETE /api/delete-font                 : Remove the custom font

Files live under the data directory, per client:
<data>/logos/<client_id>/{header,footer}.png and <data>/fonts/<client_id>/font.ttf.
Uploads also update config.json so the printer picks them up on the next job.
"""

import io
import os
from pathlib import Path
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, send_file
from PIL import Image, ImageFont, ImageOps, UnidentifiedImageError
from werkzeug.utils import secure_filename

from ticket_dispatcher import csrf
from ticket_dispatcher.core.config import load_config, save_config
from ticket_dispatcher.printing.render import clear_font_cache, render_text_image
from .context import get_printer_config, json_error

assets_bp = Blueprint("assets", __name__, url_prefix="/api")

LOGO_WIDTHS = {"header": 600, "footer": 200}
FONT_EXTS = (".ttf",)
LOGO_WHICH = "<any(header, footer):which>"


def _client_dir(kind: str) -> Path:
    client = secure_filename(str(get_printer_config().get("client_id") or "")) or "cliente-default"
    return Path(current_app.config["DATA_PATH"]) / kind / client


def _logo_path(which: str) -> Path:
    return _client_dir("logos") / f"{which}.png"


def _font_path() -> Path:
    return _client_dir("fonts") / "font.ttf"


def _update_config(changes: Dict[str, Any]) -> None:
    path = current_app.config["CONFIG_PATH"]
    current = load_config(path) or {}
    current.update(changes)
    save_config(current, path=path)


def _unlink(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


# ---- logos -------------------------------------------------------------------


@assets_bp.get("/logo-exists")
def logo_exists():
    header, footer = _logo_path("header"), _logo_path("footer")
    return jsonify(
        {
            "headerExists": header.is_file(),
            "footerExists": footer.is_file(),
            "headerPath": str(header),
            "footerPath": str(footer),
        }
    )


@assets_bp.get(f"/logo-{LOGO_WHICH}")
def get_logo(which: str):
    path = _logo_path(which)
    if not path.is_file():
        return json_error(f"No {which} logo", 404)
    return send_file(str(path), mimetype="image/png")


@csrf.exempt
@assets_bp.post(f"/upload-logo-{LOGO_WHICH}")
def upload_logo(which: str):
    file = request.files.get("logo")
    if file is None or not file.filename:
        return json_error("No image received", 400)
    try:
        with Image.open(file.stream) as src:
            src.load()
            img = src.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        return json_error("Unsupported image", 400, str(e))

    # flatten transparency onto white, greyscale, fit the ticket width
    bg = Image.new("RGBA", img.size, (255, 255, 255, 255))
    bg.alpha_composite(img)
    out = bg.convert("L")
    width = LOGO_WIDTHS[which]
    if out.width > width:
        out = ImageOps.contain(out, (width, max(1, int(out.height * width / out.width))))

    path = _logo_path(which)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".png.tmp")
        out.save(tmp, format="PNG")
        os.replace(tmp, path)
        _update_config({f"{which}_logo_path": str(path), f"use_{which}_logo": True})
    except (OSError, ValueError) as e:
        current_app.logger.exception("Saving %s logo failed", which)
        return json_error("Could not save logo", 500, str(e))
    current_app.logger.info("%s logo uploaded to %s (%dx%d)", which.capitalize(), path, out.width, out.height)
    return jsonify({"success": True, "message": f"{which.capitalize()} logo uploaded", "path": str(path)})


@csrf.exempt
@assets_bp.delete(f"/logo-{LOGO_WHICH}")
def delete_logo(which: str):
    try:
        existed = _unlink(_logo_path(which))
        _update_config({f"{which}_logo_path": None, f"use_{which}_logo": False})
    except (OSError, ValueError) as e:
        current_app.logger.exception("Deleting %s logo failed", which)
        return json_error("Could not delete logo", 500, str(e))
    message = f"{which.capitalize()} logo deleted" if existed else f"There was no {which} logo to delete"
    return jsonify({"success": True, "message": message})


# ---- font --------------------------------------------------------------------


@csrf.exempt
@assets_bp.post("/upload-font")
def upload_font():
    file = request.files.get("font")
    if file is None or not file.filename:
        return json_error("No font file received", 400)
    if not secure_filename(file.filename).lower().endswith(FONT_EXTS):
        return json_error("Invalid font file; only TTF is supported", 400)

    path = _font_path()
    tmp = path.with_suffix(".ttf.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file.save(str(tmp))
        try:
            ImageFont.truetype(str(tmp), 12)
        except OSError as e:
            _unlink(tmp)
            return json_error("Font could not be loaded", 400, str(e))
        os.replace(tmp, path)
        _update_config({"font_path": str(path), "use_font_ticket": True})
    except (OSError, ValueError) as e:
        current_app.logger.exception("Saving font failed")
        return json_error("Could not save font", 500, str(e))
    clear_font_cache()
    current_app.logger.info("Custom font uploaded to %s", path)
    return jsonify({"success": True, "message": "Font uploaded", "path": str(path)})


@assets_bp.get("/font-info")
def font_info():
    cfg = get_printer_config()
    path = _font_path()
    info = None
    if path.is_file():
        info = {"path": str(path), "name": file_font_name(path), "size": path.stat().st_size}
    return jsonify({"fontInfo": info, "useFontTicket": bool(cfg.get("use_font_ticket"))})


def file_font_name(path: Path) -> str:
    try:
        family, style = ImageFont.truetype(str(path), 12).getname()
        return f"{family} {style}".strip()
    except OSError:
        return path.name


@assets_bp.get("/font-preview")
def font_preview():
    path = _font_path()
    if not path.is_file():
        return json_error("No custom font configured", 404)
    text = (request.args.get("text") or "Texto de ejemplo")[:200]
    cfg = dict(get_printer_config())
    cfg["font_path"] = str(path)
    img = render_text_image(text, cfg, font_size=28, center=True)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return send_file(buf, mimetype="image/png")


@csrf.exempt
@assets_bp.delete("/delete-font")
def delete_font():
    try:
        deleted = _unlink(_font_path())
        _update_config({"font_path": None, "use_font_ticket": False})
    except (OSError, ValueError) as e:
        current_app.logger.exception("Deleting font failed")
        return json_error("Could not delete font", 500, str(e))
    clear_font_cache()
    return jsonify({"success": deleted, "message": "Font deleted" if deleted else "There was no font to delete"})
