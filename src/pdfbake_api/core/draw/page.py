from __future__ import annotations

import math
from io import BytesIO

import fitz
from PIL import Image, UnidentifiedImageError

from pdfbake_api.core.errors import resource_unavailable
from pdfbake_api.core.fonts.embed import FontCache
from pdfbake_api.schemas.common import WHITE, Color, Rect
from pdfbake_api.schemas.overlay import TextFormat


LINE_HEIGHT = 1.2
DESCENT_RATIO = 0.25
UNDERLINE_OFFSET = 0.12
STRIKE_OFFSET = 0.3

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_JPEG_SIGNATURE = b"\xff\xd8\xff"


def to_page_point(page: fitz.Page, x: float, y: float) -> fitz.Point:
    """Document space (bottom-left origin) -> PyMuPDF page space."""
    return fitz.Point(x, y) * page.transformation_matrix


def to_page_rect(page: fitz.Page, rect: Rect) -> fitz.Rect:
    matrix = page.transformation_matrix
    corners = [
        fitz.Point(rect.x, rect.y) * matrix,
        fitz.Point(rect.x + rect.width, rect.y + rect.height) * matrix,
    ]
    return fitz.Rect(
        min(point.x for point in corners),
        min(point.y for point in corners),
        max(point.x for point in corners),
        max(point.y for point in corners),
    )


def fill_rect(page: fitz.Page, rect: Rect, color: Color = WHITE, opacity: float = 1.0) -> None:
    page.draw_rect(
        to_page_rect(page, rect),
        color=None,
        fill=color.as_tuple(),
        width=0,
        fill_opacity=opacity,
        overlay=True,
    )


def stroke_rect(page: fitz.Page, rect: Rect, color: Color, width: float) -> None:
    page.draw_rect(to_page_rect(page, rect), color=color.as_tuple(), fill=None, width=width, overlay=True)


def _alignment_offset(alignment: str, available: float, line_width: float) -> float:
    if alignment == "center":
        return max(0.0, (available - line_width) / 2)
    if alignment == "right":
        return max(0.0, available - line_width)
    return 0.0


def draw_text(
    page: fitz.Page,
    fonts: FontCache,
    text: str,
    x: float,
    y: float,
    font_name: str | None,
    font_size: float,
    color: Color,
    text_format: TextFormat | None = None,
    box_width: float = 0.0,
    box_height: float = 0.0,
) -> str:
    """Draw ``text`` with its first baseline at document-space ``(x, y)``.

    Lines split on newlines step down by ``LINE_HEIGHT * font_size``.
    Alignment is computed against ``box_width`` (or the widest line when no
    box is given); justify falls back to left. Returns the font key used.
    """
    fmt = text_format or TextFormat()
    resolution = fonts.resolve(font_name, fmt.bold, fmt.italic)
    font_key = fonts.use(page, resolution.key)
    lines = text.split("\n")
    line_height = font_size * LINE_HEIGHT
    widths = [fonts.text_width(line, font_key, font_size) for line in lines]
    block_width = max(widths) if widths else 0.0
    available = box_width if box_width > 0 else block_width

    if fmt.background_color is not None:
        block_height = max(box_height, line_height * len(lines))
        bottom = y - (len(lines) - 1) * line_height - font_size * DESCENT_RATIO
        fill_rect(page, Rect(x=x, y=bottom, width=max(available, block_width), height=block_height), fmt.background_color)

    rgb = color.as_tuple()
    decoration_width = max(0.5, font_size / 15)
    for index, (line, line_width) in enumerate(zip(lines, widths)):
        baseline = y - index * line_height
        start_x = x + _alignment_offset(fmt.alignment, available, line_width)
        if line:
            page.insert_text(
                to_page_point(page, start_x, baseline),
                line,
                fontname=font_key,
                fontsize=font_size,
                color=rgb,
                overlay=True,
            )
        if line_width <= 0:
            continue
        if fmt.underline:
            offset = baseline - font_size * UNDERLINE_OFFSET
            page.draw_line(
                to_page_point(page, start_x, offset),
                to_page_point(page, start_x + line_width, offset),
                color=rgb,
                width=decoration_width,
            )
        if fmt.strikethrough:
            offset = baseline + font_size * STRIKE_OFFSET
            page.draw_line(
                to_page_point(page, start_x, offset),
                to_page_point(page, start_x + line_width, offset),
                color=rgb,
                width=decoration_width,
            )
    return font_key


def check_image_bytes(data: bytes, image_type: str) -> None:
    if not data:
        raise resource_unavailable("image_missing", "Image bytes are empty")
    signature = _PNG_SIGNATURE if image_type == "png" else _JPEG_SIGNATURE
    if not data.startswith(signature):
        raise resource_unavailable(
            "image_unreadable",
            f"Image bytes are not a valid {image_type.upper()} stream",
            image_type=image_type,
        )


def _rotated_bounds(rect: Rect, rotation: float) -> Rect:
    theta = math.radians(rotation)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    corners = [(0.0, 0.0), (rect.width, 0.0), (rect.width, rect.height), (0.0, rect.height)]
    xs = [cx * cos_t - cy * sin_t for cx, cy in corners]
    ys = [cx * sin_t + cy * cos_t for cx, cy in corners]
    return Rect(
        x=rect.x + min(xs),
        y=rect.y + min(ys),
        width=max(xs) - min(xs),
        height=max(ys) - min(ys),
    )


def _prepare_image(data: bytes, rect: Rect, rotation: float, opacity: float) -> bytes:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise resource_unavailable("image_unreadable", "Image could not be decoded") from exc
    image = image.convert("RGBA")
    if rect.width > 0 and rect.height > 0:
        # Match the target aspect before rotating so the rotated box is not skewed.
        target_height = max(1, round(image.width * rect.height / rect.width))
        image = image.resize((image.width, target_height))
    if opacity < 1.0:
        alpha = image.getchannel("A").point(lambda value: round(value * opacity))
        image.putalpha(alpha)
    if rotation % 360:
        image = image.rotate(rotation, expand=True, resample=Image.Resampling.BICUBIC)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def draw_image(
    page: fitz.Page,
    rect: Rect,
    data: bytes,
    image_type: str,
    rotation: float = 0.0,
    opacity: float = 1.0,
) -> None:
    """Draw an encoded PNG/JPEG scaled into ``rect``.

    ``rotation`` turns the image counter-clockwise about the bottom-left
    corner of ``rect``; the rotated image is placed in its bounding box.
    """
    check_image_bytes(data, image_type)
    if rotation % 360 == 0 and opacity >= 1.0:
        stream = data
        target = rect
    else:
        stream = _prepare_image(data, rect, rotation, opacity)
        target = _rotated_bounds(rect, rotation) if rotation % 360 else rect
    try:
        page.insert_image(to_page_rect(page, target), stream=stream, keep_proportion=False, overlay=True)
    except (RuntimeError, ValueError) as exc:
        raise resource_unavailable("image_unreadable", "Image could not be embedded", image_type=image_type) from exc
