"""
Text and logo rasterization for Ticket Dispatcher.

- Resolve a TTF font from config/env/common locations (cached per path and size)
- Render wrapped text into a grayscale Pillow image for ESC/POS printing
- Load and scale logo images to a target width
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, List, Optional

from PIL import Image, ImageDraw, ImageFont, ImageOps

logger = logging.getLogger(__name__)

COMMON_FONTS: Sequence[str] = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/TTF/DejaVuSans.ttf",
    "C:/Windows/Fonts/arial.ttf",
)

FontT = ImageFont.FreeTypeFont | ImageFont.ImageFont


def _measure_text(font: FontT, text: str) -> tuple[int, int]:
    """
    Text size via getbbox(), falling back to getmask() for bitmap fonts.
    """
    try:
        bbox = font.getbbox(text)
        return int(bbox[2] - bbox[0]), int(bbox[3] - bbox[1])
    except Exception:
        try:
            mask = font.getmask(text)  # type: ignore[attr-defined]
            return int(mask.size[0]), int(mask.size[1])
        except Exception:
            return 0, 0


@lru_cache(maxsize=64)
def _load_truetype(path: str, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(path, size)


def clear_font_cache() -> None:
    _load_truetype.cache_clear()


def resolve_font(config: Optional[Mapping[str, Any]], font_size: int) -> FontT:
    """
    Resolve the ticket font, preferring:
    1) config["font_path"]
    2) TICKETDISPATCH_FONT_PATH
    3) common system font locations
    Falls back to Pillow's default font.
    """
    candidates: List[str] = []
    cfg_path = (config or {}).get("font_path")
    if isinstance(cfg_path, str) and cfg_path.strip():
        candidates.append(cfg_path.strip())
    env_path = os.environ.get("TICKETDISPATCH_FONT_PATH")
    if env_path and env_path not in candidates:
        candidates.append(env_path)
    candidates.extend(p for p in COMMON_FONTS if p not in candidates)

    for pth in candidates:
        try:
            return _load_truetype(pth, font_size)
        except OSError:
            continue

    logger.warning("No TTF font found; using Pillow default font")
    try:
        return ImageFont.load_default(size=font_size)
    except TypeError:
        return ImageFont.load_default()


def wrap_text(text: str, font: FontT, max_width: int) -> List[str]:
    """
    Greedy word wrap to `max_width` pixels. Words wider than a line are split
    by character. Explicit newlines are kept.
    """
    lines: List[str] = []
    for paragraph in (text or "").split("\n"):
        current = ""
        for word in paragraph.split():
            candidate = f"{current} {word}" if current else word
            if _measure_text(font, candidate)[0] <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            if _measure_text(font, word)[0] <= max_width:
                current = word
                continue
            current = ""
            for ch in word:
                if current and _measure_text(font, current + ch)[0] > max_width:
                    lines.append(current)
                    current = ch
                else:
                    current += ch
        lines.append(current)
    return lines or [""]


def render_text_image(
    text: str,
    config: Optional[Mapping[str, Any]],
    *,
    font_size: int = 28,
    center: bool = True,
    bold: bool = False,
    width: Optional[int] = None,
) -> Image.Image:
    """
    Render `text` into a white, receipt-wide grayscale image.

    Bold is simulated with a 1px stroke so it works with any regular TTF.
    """
    max_width = int(width or (config or {}).get("receipt_width", 512))
    font = resolve_font(config, font_size)
    lines = wrap_text(text, font, max_width)

    ascent, descent = font.getmetrics() if hasattr(font, "getmetrics") else (font_size, 0)
    line_h = int(ascent + descent) + 4
    stroke = 1 if bold else 0
    img = Image.new("L", (max_width, max(line_h * len(lines), 1)), 255)
    draw = ImageDraw.Draw(img)
    y = 0
    for line in lines:
        w, _ = _measure_text(font, line)
        x = max(0, (max_width - w) // 2) if center else 0
        draw.text((x, y), line, fill=0, font=font, stroke_width=stroke, stroke_fill=0)
        y += line_h
    return img


def load_logo(path: str, width: int) -> Optional[Image.Image]:
    """
    Load an image file, flatten transparency onto white, and scale it to fit
    `width` pixels (never upscaled). Returns None when the file is missing or unreadable.
    """
    if not path or not os.path.isfile(path):
        return None
    try:
        with Image.open(path) as src:
            src.load()
            if src.mode in ("RGBA", "LA") or (src.mode == "P" and "transparency" in src.info):
                rgba = src.convert("RGBA")
                bg = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
                bg.alpha_composite(rgba)
                img = bg.convert("L")
            else:
                img = src.convert("L")
        if img.width > width:
            img = ImageOps.contain(img, (width, max(1, int(img.height * width / img.width))))
        return img
    except Exception as e:
        logger.warning("Logo %s could not be loaded: %s", path, e)
        return None


__all__ = ["clear_font_cache", "load_logo", "render_text_image", "resolve_font", "wrap_text"]
