from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import logging
from typing import Callable, Sequence

import fitz

from pdfbake_api.core.draw.page import draw_image, draw_text, fill_rect, stroke_rect, to_page_point
from pdfbake_api.core.draw.paths import stroke_path
from pdfbake_api.core.draw.shapes import shape_to_path
from pdfbake_api.core.errors import invalid_input
from pdfbake_api.core.fonts.embed import CustomFont, FontCache
from pdfbake_api.schemas.common import Rect
from pdfbake_api.schemas.overlay import (
    DrawingOverlay,
    ImageOverlay,
    Overlay,
    RectangleOverlay,
    ShapeOverlay,
    TextOverlay,
)
from pdfbake_api.services.pdf_ops import open_document, serialize
from pdfbake_api.settings import get_settings


CUSTOM_FONT_NAME = "custom"

logger = logging.getLogger("pdfbake_api")


@dataclass
class BakeReport:
    drawn: Counter = field(default_factory=Counter)
    skipped: list[int] = field(default_factory=list)
    font_keys: list[str] = field(default_factory=list)


def _draw_text(page: fitz.Page, overlay: TextOverlay, fonts: FontCache) -> None:
    draw_text(
        page,
        fonts,
        overlay.text,
        overlay.x,
        overlay.y,
        overlay.font_family,
        overlay.font_size,
        overlay.color,
        overlay.text_format,
        box_width=overlay.width,
        box_height=overlay.height,
    )


def _draw_image(page: fitz.Page, overlay: ImageOverlay, fonts: FontCache) -> None:
    rect = Rect(x=overlay.x, y=overlay.y, width=overlay.width, height=overlay.height)
    draw_image(page, rect, overlay.image_bytes, overlay.image_type, overlay.rotation, overlay.opacity)


def _draw_rectangle(page: fitz.Page, overlay: RectangleOverlay, fonts: FontCache) -> None:
    fill_rect(page, overlay.rect, overlay.color, overlay.opacity)


def _stroke(page: fitz.Page, path: str, overlay: DrawingOverlay | ShapeOverlay) -> None:
    stroke_path(
        page,
        path,
        lambda x, y: to_page_point(page, x, y),
        overlay.color.as_tuple(),
        overlay.line_width,
    )


def _draw_path(page: fitz.Page, overlay: DrawingOverlay, fonts: FontCache) -> None:
    _stroke(page, overlay.svg_path, overlay)


def _draw_shape(page: fitz.Page, overlay: ShapeOverlay, fonts: FontCache) -> None:
    if overlay.shape_kind == "rect":
        rect = Rect(x=overlay.x, y=overlay.y, width=overlay.width, height=overlay.height)
        stroke_rect(page, rect, overlay.color, overlay.line_width)
        return
    _stroke(page, shape_to_path(overlay.shape_kind, overlay.x, overlay.y, overlay.width, overlay.height), overlay)


_ROUTINES: dict[type, Callable[[fitz.Page, Overlay, FontCache], None]] = {
    TextOverlay: _draw_text,
    ImageOverlay: _draw_image,
    RectangleOverlay: _draw_rectangle,
    DrawingOverlay: _draw_path,
    ShapeOverlay: _draw_shape,
}


def bake_with_report(
    original_bytes: bytes,
    overlays: Sequence[Overlay],
    custom_font_bytes: bytes | None = None,
    *,
    strict: bool | None = None,
) -> tuple[bytes, BakeReport]:
    """Composite ``overlays`` into the document in a single load/serialize pass.

    Overlays are painted in the order given, so later entries cover earlier
    ones on the same page. Overlays pointing at a page the document does not
    have are skipped with a warning, or rejected when ``strict`` is set
    (defaults to ``BAKE_STRICT_PAGE_INDEX``).
    """
    if strict is None:
        strict = get_settings().BAKE_STRICT_PAGE_INDEX
    custom_font = CustomFont(CUSTOM_FONT_NAME, custom_font_bytes) if custom_font_bytes is not None else None
    report = BakeReport()

    with open_document(original_bytes) as doc:
        page_count = doc.page_count
        if strict:
            stale = [index for index, overlay in enumerate(overlays) if overlay.page_index >= page_count]
            if stale:
                raise invalid_input(
                    "page_out_of_range",
                    "Overlays reference pages that do not exist",
                    overlay_indexes=stale,
                    page_count=page_count,
                )

        fonts = FontCache(custom_font)
        pages: dict[int, fitz.Page] = {}
        for position, overlay in enumerate(overlays):
            if overlay.page_index >= page_count:
                logger.warning(
                    "Skipping overlay position=%s type=%s page_index=%s page_count=%s",
                    position,
                    overlay.type,
                    overlay.page_index,
                    page_count,
                )
                report.skipped.append(position)
                continue
            page = pages.get(overlay.page_index)
            if page is None:
                page = pages[overlay.page_index] = doc[overlay.page_index]
            routine = _ROUTINES.get(type(overlay))
            if routine is None:
                raise TypeError(f"No drawing routine for overlay {type(overlay).__name__}")
            routine(page, overlay, fonts)
            report.drawn[overlay.type] += 1

        report.font_keys = fonts.keys
        payload = serialize(doc)

    logger.info(
        "Bake complete overlays=%s drawn=%s skipped=%s fonts=%s",
        len(overlays),
        dict(report.drawn),
        len(report.skipped),
        ",".join(report.font_keys) or "-",
    )
    return payload, report


def bake(
    original_bytes: bytes,
    overlays: Sequence[Overlay],
    custom_font_bytes: bytes | None = None,
    *,
    strict: bool | None = None,
) -> bytes:
    payload, _ = bake_with_report(original_bytes, overlays, custom_font_bytes, strict=strict)
    return payload


def bake_highlights(pdf_bytes: bytes, highlights: Sequence[RectangleOverlay]) -> bytes:
    return bake(pdf_bytes, list(highlights))
