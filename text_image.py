"""Rendering of inline text designs to raster images.

Text designs travel as ``data:text/plain,<percent-encoded text>`` URLs with a
``.txt`` filename and are drawn locally instead of being fetched.
"""

from __future__ import annotations

import base64
import io
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import quote, unquote

from PIL import Image, ImageDraw, ImageFont

from layout_constraints import DesignFile
from settings import get_settings


TEXT_URL_PREFIX = "data:text/plain"
MAX_FONT_SIZE = 48
FONT_HEIGHT_RATIO = 0.6
LINE_SPACING = 1.2


@dataclass
class TextLayout:
    font_size: float
    line_height: float
    lines: List[str]
    centers: List[Tuple[float, float]]


def is_text_design(design: DesignFile) -> bool:
    return design.filename.endswith(".txt") and design.url.startswith(TEXT_URL_PREFIX)


def text_data_url(text: str) -> str:
    return f"{TEXT_URL_PREFIX},{quote(text)}"


def decode_text_payload(url: str) -> str:
    header, _, payload = url.partition(",")
    if header.endswith(";base64"):
        return base64.b64decode(payload).decode("utf-8")
    return unquote(payload)


def layout_text_lines(text: str, width: float, height: float) -> TextLayout:
    """Centre every line of ``text`` inside a ``width`` x ``height`` box."""
    font_size = min(height * FONT_HEIGHT_RATIO, MAX_FONT_SIZE)
    line_height = font_size * LINE_SPACING
    lines = text.split("\n")
    start_y = height / 2 - ((len(lines) - 1) * line_height) / 2
    centers = [(width / 2, start_y + i * line_height) for i in range(len(lines))]
    return TextLayout(font_size=font_size, line_height=line_height, lines=lines, centers=centers)


def load_font(size: float, font: Optional[str] = None) -> ImageFont.ImageFont:
    px = max(1, int(round(size)))
    name = font or get_settings().TEXT_FONT
    for candidate in (name, "DejaVuSans.ttf", "arial.ttf"):
        try:
            return ImageFont.truetype(candidate, px)
        except OSError:
            continue
    return ImageFont.load_default(size=px)


def render_text_block(
    text: str,
    width: int,
    height: int,
    font: Optional[str] = None,
    color: str = "#000000",
) -> Image.Image:
    """Transparent RGBA image of exactly ``width`` x ``height`` holding ``text``."""
    width = max(1, int(round(width)))
    height = max(1, int(round(height)))
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    layout = layout_text_lines(text, width, height)
    face = load_font(layout.font_size, font)
    draw = ImageDraw.Draw(canvas)
    for line, (cx, cy) in zip(layout.lines, layout.centers):
        if line:
            draw.text((cx, cy), line, fill=color, font=face, anchor="mm")
    return canvas


def render_text_design(design: DesignFile, font: Optional[str] = None) -> Image.Image:
    pos = design.position
    return render_text_block(decode_text_payload(design.url), pos.width, pos.height, font=font)


def convert_text_to_image(
    text: str,
    font_size: int = MAX_FONT_SIZE,
    font: Optional[str] = None,
    color: str = "#000000",
    background: Optional[str] = None,
    align: str = "center",
    auto_size: bool = True,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> bytes:
    """Render ``text`` as a standalone PNG graphic.

    With ``auto_size`` the canvas hugs the text plus 20% of the font size as
    padding; otherwise ``width``/``height`` (or generous defaults) are used.
    """
    if align not in {"left", "center", "right"}:
        raise ValueError("align must be 'left', 'center' or 'right'")
    face = load_font(font_size, font)
    lines = text.split("\n")
    line_height = font_size * LINE_SPACING

    if auto_size:
        measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        max_w = max((measure.textlength(line, font=face) for line in lines), default=0)
        padding = font_size * 0.2
        canvas_w = max_w + padding * 2
        canvas_h = len(lines) * line_height + padding * 2
    else:
        padding = 20
        canvas_w = width or max(800, len(text) * font_size * 0.6)
        canvas_h = height or max(200, font_size * 2)

    size = (max(1, math.ceil(canvas_w)), max(1, math.ceil(canvas_h)))
    canvas = Image.new("RGBA", size, background or (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)

    if align == "left":
        x, anchor = padding, "la"
    elif align == "right":
        x, anchor = size[0] - padding, "ra"
    else:
        x, anchor = size[0] / 2, "ma"
    for i, line in enumerate(lines):
        if line:
            draw.text((x, padding + i * line_height), line, fill=color, font=face, anchor=anchor)

    buf = io.BytesIO()
    canvas.save(buf, format="PNG")
    return buf.getvalue()
