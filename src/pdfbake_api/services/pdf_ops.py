from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Iterator, Sequence

import fitz

from pdfbake_api.core.draw.page import check_image_bytes, draw_image, draw_text, fill_rect
from pdfbake_api.core.errors import CannotDeleteLastPageError, invalid_input
from pdfbake_api.core.fonts.embed import CustomFont, FontCache
from pdfbake_api.schemas.common import BLACK, WHITE, Color, Rect
from pdfbake_api.schemas.overlay import ImageType, TextFormat


A4_WIDTH_PT = 595.28
A4_HEIGHT_PT = 841.89
REPLACE_PADDING_RATIO = 0.35
REPLACE_BASELINE_RATIO = 0.15

logger = logging.getLogger("pdfbake_api")


@contextmanager
def open_document(data: bytes, *, allow_empty: bool = False) -> Iterator[fitz.Document]:
    """Open PDF bytes for the duration of the block.

    Documents without pages are rejected unless ``allow_empty`` is set.
    """
    if not data:
        raise invalid_input("invalid_document", "Document bytes are empty")
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # FileDataError or a raw MuPDF error depending on version
        raise invalid_input("invalid_document", "Bytes are not a readable PDF document") from exc
    try:
        if not doc.is_pdf:
            raise invalid_input("invalid_document", "Bytes are not a PDF document")
        if doc.page_count == 0 and not allow_empty:
            raise invalid_input("invalid_document", "Document has no pages")
        yield doc
    finally:
        doc.close()


def serialize(doc: fitz.Document, *, compress: bool = False) -> bytes:
    if compress:
        return doc.tobytes(garbage=4, deflate=True, clean=True)
    return doc.tobytes(garbage=1, deflate=True)


def get_page(doc: fitz.Document, page_index: int) -> fitz.Page:
    if page_index < 0 or page_index >= doc.page_count:
        raise invalid_input(
            "page_out_of_range",
            f"Page index {page_index} is out of range",
            page_index=page_index,
            page_count=doc.page_count,
        )
    return doc[page_index]


def page_count(pdf_bytes: bytes, *, allow_empty: bool = False) -> int:
    with open_document(pdf_bytes, allow_empty=allow_empty) as doc:
        return doc.page_count


def page_sizes(pdf_bytes: bytes, *, allow_empty: bool = False) -> list[tuple[float, float]]:
    """Unrotated (width, height) of every page in document units."""
    with open_document(pdf_bytes, allow_empty=allow_empty) as doc:
        return [(page.mediabox.width, page.mediabox.height) for page in doc]


def merge_documents(first: bytes, second: bytes) -> bytes:
    with open_document(first) as doc_a, open_document(second) as doc_b:
        merged = fitz.open()
        try:
            merged.insert_pdf(doc_a)
            merged.insert_pdf(doc_b)
            return serialize(merged)
        finally:
            merged.close()


def reorder_pages(pdf_bytes: bytes, order: Sequence[int]) -> bytes:
    """Rebuild the document with pages in ``order`` (1-based page numbers)."""
    with open_document(pdf_bytes) as doc:
        count = doc.page_count
        out_of_range = [number for number in order if number < 1 or number > count]
        if out_of_range:
            raise invalid_input(
                "page_out_of_range",
                "Page order references pages that do not exist",
                invalid=out_of_range,
                page_count=count,
            )
        if sorted(order) != list(range(1, count + 1)):
            raise invalid_input(
                "invalid_page_order",
                "Page order must list every page exactly once",
                order=list(order),
                page_count=count,
            )
        doc.select([number - 1 for number in order])
        return serialize(doc)


def insert_blank_page(pdf_bytes: bytes, after_index: int) -> bytes:
    with open_document(pdf_bytes, allow_empty=True) as doc:
        count = doc.page_count
        width, height = A4_WIDTH_PT, A4_HEIGHT_PT
        if 0 <= after_index < count:
            reference = doc[after_index].mediabox
            width, height = reference.width, reference.height
        insert_at = min(max(after_index + 1, 0), count)
        doc.new_page(pno=insert_at if insert_at < count else -1, width=width, height=height)
        return serialize(doc)


def delete_page(pdf_bytes: bytes, page_index: int) -> bytes:
    with open_document(pdf_bytes) as doc:
        if doc.page_count <= 1:
            raise CannotDeleteLastPageError(
                status_code=409,
                code="cannot_delete_last_page",
                message="Cannot delete the only page in the document",
                details={"page_count": doc.page_count},
            )
        get_page(doc, page_index)
        doc.delete_page(page_index)
        return serialize(doc)


def rotate_page(pdf_bytes: bytes, page_index: int, delta_degrees: int) -> bytes:
    if delta_degrees % 90:
        raise invalid_input(
            "invalid_rotation",
            "Rotation must be a multiple of 90 degrees",
            delta_degrees=delta_degrees,
        )
    with open_document(pdf_bytes) as doc:
        page = get_page(doc, page_index)
        page.set_rotation((page.rotation + delta_degrees) % 360)
        return serialize(doc)


def replace_text_region(
    pdf_bytes: bytes,
    page_index: int,
    rect: Rect,
    new_text: str,
    font_name: str | None,
    font_size: float,
    color: Color = BLACK,
    text_format: TextFormat | None = None,
    custom_font: CustomFont | None = None,
) -> bytes:
    """White out ``rect`` (padded for ascenders and descenders) and draw ``new_text`` over it.

    Whitespace-only text erases without drawing anything.
    """
    fmt = text_format or TextFormat()
    with open_document(pdf_bytes) as doc:
        page = get_page(doc, page_index)
        fonts = FontCache(custom_font)
        padding = font_size * REPLACE_PADDING_RATIO
        fill_rect(page, rect.expanded(padding), fmt.background_color or WHITE)
        if new_text.strip():
            draw_text(
                page,
                fonts,
                new_text,
                rect.x,
                rect.y + font_size * REPLACE_BASELINE_RATIO,
                font_name,
                font_size,
                color,
                fmt.model_copy(update={"background_color": None}),
                box_width=rect.width,
            )
        return serialize(doc)


def erase_area(pdf_bytes: bytes, page_index: int, rect: Rect) -> bytes:
    with open_document(pdf_bytes) as doc:
        fill_rect(get_page(doc, page_index), rect, WHITE)
        return serialize(doc)


def add_text(
    pdf_bytes: bytes,
    page_index: int,
    x: float,
    y: float,
    text: str,
    font_family: str | None,
    font_size: float,
    color: Color = BLACK,
    text_format: TextFormat | None = None,
    width: float = 0.0,
    height: float = 0.0,
    custom_font: CustomFont | None = None,
) -> bytes:
    with open_document(pdf_bytes) as doc:
        page = get_page(doc, page_index)
        draw_text(
            page,
            FontCache(custom_font),
            text,
            x,
            y,
            font_family,
            font_size,
            color,
            text_format,
            box_width=width,
            box_height=height,
        )
        return serialize(doc)


def replace_image(
    pdf_bytes: bytes,
    page_index: int,
    rect: Rect,
    image_bytes: bytes,
    image_type: ImageType,
) -> bytes:
    check_image_bytes(image_bytes, image_type)
    with open_document(pdf_bytes) as doc:
        page = get_page(doc, page_index)
        fill_rect(page, rect, WHITE)
        draw_image(page, rect, image_bytes, image_type)
        return serialize(doc)


def delete_image(pdf_bytes: bytes, page_index: int, rect: Rect) -> bytes:
    return erase_area(pdf_bytes, page_index, rect)


def add_image(
    pdf_bytes: bytes,
    page_index: int,
    x: float,
    y: float,
    width: float,
    height: float,
    image_bytes: bytes,
    image_type: ImageType,
) -> bytes:
    check_image_bytes(image_bytes, image_type)
    with open_document(pdf_bytes) as doc:
        page = get_page(doc, page_index)
        draw_image(page, Rect(x=x, y=y, width=width, height=height), image_bytes, image_type)
        return serialize(doc)


def compress_document(pdf_bytes: bytes) -> bytes:
    with open_document(pdf_bytes) as doc:
        payload = serialize(doc, compress=True)
    logger.info("Compressed document before=%s after=%s", len(pdf_bytes), len(payload))
    return payload
