from __future__ import annotations

import logging

from pdfbake_api.core.transform import (
    decode_image_data_url,
    flip_path_y,
    hex_to_normalized_color,
    points_to_path_string,
    screen_rect_to_document_rect,
)
from pdfbake_api.schemas.export import ExportRequest
from pdfbake_api.schemas.overlay import (
    DrawingOverlay,
    ImageOverlay,
    Overlay,
    RectangleOverlay,
    ShapeOverlay,
    TextOverlay,
)


# Used when an item points past the last page; the compositor skips those anyway.
FALLBACK_PAGE_HEIGHT = 842.0

logger = logging.getLogger("pdfbake_api")


def build_overlays(request: ExportRequest, page_heights: list[float]) -> list[Overlay]:
    """Turn screen-side editor state into document-space overlays.

    Paint order is text, images, highlights, strokes, then shapes.
    """

    def _height(page_index: int) -> float:
        if 0 <= page_index < len(page_heights):
            return page_heights[page_index]
        return FALLBACK_PAGE_HEIGHT

    zoom = request.zoom
    overlays: list[Overlay] = []

    for item in request.text_items:
        overlays.append(
            TextOverlay(
                page_index=item.page_index,
                x=item.x,
                y=item.y,
                text=item.text,
                font_family=item.font_family,
                font_size=item.font_size,
                color=hex_to_normalized_color(item.color),
                bold=item.bold,
                italic=item.italic,
                underline=item.underline,
                strikethrough=item.strikethrough,
                alignment=item.alignment,
                background_color=hex_to_normalized_color(item.background_color) if item.background_color else None,
                width=item.width,
                height=item.height,
            )
        )

    for item in request.image_items:
        decoded = decode_image_data_url(item.data_url)
        overlays.append(
            ImageOverlay(
                page_index=item.page_index,
                x=item.x,
                y=item.y,
                width=item.width,
                height=item.height,
                image_bytes=decoded.data,
                image_type=decoded.image_type,
                rotation=item.rotation,
                opacity=item.opacity,
            )
        )

    for item in request.highlights:
        rect = screen_rect_to_document_rect(item.x, item.y, item.width, item.height, _height(item.page_index), zoom)
        overlays.append(
            RectangleOverlay(
                page_index=item.page_index,
                x=rect.x,
                y=rect.y,
                width=rect.width,
                height=rect.height,
                color=hex_to_normalized_color(item.color),
                opacity=item.opacity,
            )
        )

    for stroke in request.strokes:
        if not stroke.points:
            continue
        raw_path = points_to_path_string([(point.x / zoom, point.y / zoom) for point in stroke.points])
        overlays.append(
            DrawingOverlay(
                page_index=stroke.page_index,
                svg_path=flip_path_y(raw_path, _height(stroke.page_index)),
                color=hex_to_normalized_color(stroke.color),
                line_width=stroke.line_width,
            )
        )

    for item in request.shapes:
        rect = screen_rect_to_document_rect(item.x, item.y, item.width, item.height, _height(item.page_index), zoom)
        overlays.append(
            ShapeOverlay(
                page_index=item.page_index,
                shape_kind=item.shape_kind,
                x=rect.x,
                y=rect.y,
                width=rect.width,
                height=rect.height,
                color=hex_to_normalized_color(item.color),
                line_width=item.line_width,
            )
        )

    logger.debug("Built overlays count=%s zoom=%s", len(overlays), zoom)
    return overlays
