from __future__ import annotations

import fitz
import pytest

from pdfbake_api.core.errors import (
    CannotDeleteLastPageError,
    InvalidInputError,
    ResourceUnavailableError,
    StructuralConstraintError,
)
from pdfbake_api.core.fonts.embed import CustomFont
from pdfbake_api.core.fonts.resolve import CUSTOM_FONT_KEY
from pdfbake_api.schemas.common import Rect
from pdfbake_api.schemas.overlay import TextFormat
from pdfbake_api.services import pdf_ops
from tests.pdf_factory import (
    make_empty_pdf_bytes,
    make_font_bytes,
    make_jpeg_bytes,
    make_letter_pdf_bytes,
    make_multipage_pdf_bytes,
    make_png_bytes,
    page_labels,
)


def _open(pdf_bytes: bytes) -> fitz.Document:
    return fitz.open(stream=pdf_bytes, filetype="pdf")


def test_open_document_rejects_garbage():
    for payload in (b"", b"definitely not a pdf"):
        with pytest.raises(InvalidInputError) as exc_info:
            pdf_ops.page_count(payload)
        assert exc_info.value.code == "invalid_document"


def test_delete_last_page_is_refused_before_index_check():
    single = make_letter_pdf_bytes()
    with pytest.raises(CannotDeleteLastPageError) as exc_info:
        pdf_ops.delete_page(single, 7)
    assert isinstance(exc_info.value, StructuralConstraintError)
    assert exc_info.value.status_code == 409
    assert exc_info.value.code == "cannot_delete_last_page"


def test_delete_page():
    result = pdf_ops.delete_page(make_multipage_pdf_bytes(), 1)
    assert page_labels(result) == ["Page 1", "Page 3"]

    with pytest.raises(InvalidInputError) as exc_info:
        pdf_ops.delete_page(result, 5)
    assert exc_info.value.code == "page_out_of_range"


def test_reorder_pages_uses_one_based_order():
    result = pdf_ops.reorder_pages(make_multipage_pdf_bytes(), [3, 1, 2])
    assert page_labels(result) == ["Page 3", "Page 1", "Page 2"]


@pytest.mark.parametrize(("order", "code"), [([1, 1, 2], "invalid_page_order"), ([0, 1, 2], "page_out_of_range"), ([1, 2], "invalid_page_order")])
def test_reorder_pages_requires_permutation(order, code):
    with pytest.raises(InvalidInputError) as exc_info:
        pdf_ops.reorder_pages(make_multipage_pdf_bytes(), order)
    assert exc_info.value.code == code


def test_insert_blank_page_copies_reference_size():
    source = make_multipage_pdf_bytes([(400, 600), (595, 842)])
    result = pdf_ops.insert_blank_page(source, 0)
    assert page_labels(result) == ["Page 1", "", "Page 2"]
    assert pdf_ops.page_sizes(result)[1] == (400, 600)

    at_front = pdf_ops.insert_blank_page(source, -1)
    assert page_labels(at_front) == ["", "Page 1", "Page 2"]
    assert pdf_ops.page_sizes(at_front)[0] == pytest.approx((pdf_ops.A4_WIDTH_PT, pdf_ops.A4_HEIGHT_PT))

    at_end = pdf_ops.insert_blank_page(source, 1)
    assert page_labels(at_end) == ["Page 1", "Page 2", ""]


def test_insert_blank_page_into_empty_document_uses_a4():
    empty = make_empty_pdf_bytes()
    assert pdf_ops.page_count(empty, allow_empty=True) == 0
    with pytest.raises(InvalidInputError):
        pdf_ops.page_count(empty)

    result = pdf_ops.insert_blank_page(empty, -1)
    assert pdf_ops.page_count(result) == 1
    assert pdf_ops.page_sizes(result)[0] == pytest.approx((pdf_ops.A4_WIDTH_PT, pdf_ops.A4_HEIGHT_PT))
    assert pdf_ops.page_count(pdf_ops.insert_blank_page(empty, 5)) == 1


def test_page_operations_still_refuse_empty_documents():
    with pytest.raises(InvalidInputError) as exc_info:
        pdf_ops.rotate_page(make_empty_pdf_bytes(), 0, 90)
    assert exc_info.value.code == "invalid_document"


def test_rotate_page_accumulates_modulo_360():
    once = pdf_ops.rotate_page(make_letter_pdf_bytes(), 0, 90)
    twice = pdf_ops.rotate_page(once, 0, 270)
    with _open(once) as doc:
        assert doc[0].rotation == 90
    with _open(twice) as doc:
        assert doc[0].rotation == 0
    with pytest.raises(InvalidInputError) as exc_info:
        pdf_ops.rotate_page(once, 0, 45)
    assert exc_info.value.code == "invalid_rotation"


def test_merge_documents_appends_pages():
    merged = pdf_ops.merge_documents(make_letter_pdf_bytes(), make_multipage_pdf_bytes())
    assert pdf_ops.page_count(merged) == 4
    assert page_labels(merged)[1:] == ["Page 1", "Page 2", "Page 3"]


def test_replace_text_region_draws_new_text():
    rect = Rect(x=70, y=765, width=120, height=16)
    result = pdf_ops.replace_text_region(
        make_multipage_pdf_bytes(),
        0,
        rect,
        "Replaced heading",
        "Arial-BoldMT",
        14,
        text_format=TextFormat(underline=True),
    )
    with _open(result) as doc:
        assert "Replaced heading" in doc[0].get_text()
        assert doc.page_count == 3


def test_replace_text_region_with_custom_font():
    rect = Rect(x=70, y=765, width=200, height=16)
    result = pdf_ops.replace_text_region(
        make_multipage_pdf_bytes(),
        0,
        rect,
        "Uploaded face",
        "AnyFamily",
        14,
        custom_font=CustomFont("brand.otf", make_font_bytes()),
    )
    with _open(result) as doc:
        assert "Uploaded face" in doc[0].get_text()
        assert CUSTOM_FONT_KEY in [entry[4] for entry in doc[0].get_fonts()]


def test_replace_text_region_with_blank_text_only_erases():
    source = make_multipage_pdf_bytes()
    result = pdf_ops.replace_text_region(source, 0, Rect(x=70, y=765, width=120, height=16), "   ", None, 12)
    with _open(result) as doc, _open(source) as original:
        assert doc[0].get_text() == original[0].get_text()
        assert len(doc[0].get_drawings()) > len(original[0].get_drawings())


def test_erase_area_is_repeatable():
    rect = Rect(x=100, y=600, width=160, height=100)
    once = pdf_ops.erase_area(make_multipage_pdf_bytes(), 0, rect)
    twice = pdf_ops.erase_area(once, 0, rect)
    for payload in (once, twice):
        assert pdf_ops.page_count(payload) == 3
        assert pdf_ops.page_sizes(payload)[0] == (595, 842)
        with _open(payload) as doc:
            pix = doc[0].get_pixmap(clip=fitz.Rect(102, 144, 258, 240))
            assert set(pix.samples) == {255}


def test_add_text():
    result = pdf_ops.add_text(make_letter_pdf_bytes(), 0, 72, 400, "Added line\nSecond line", "Times", 12)
    with _open(result) as doc:
        text = doc[0].get_text()
    assert "Added line" in text
    assert "Second line" in text


def test_add_and_replace_image():
    source = make_letter_pdf_bytes()
    added = pdf_ops.add_image(source, 0, 72, 500, 50, 50, make_png_bytes(), "png")
    with _open(added) as doc:
        added_images = len(doc[0].get_images())
    assert added_images >= 1

    replaced = pdf_ops.replace_image(added, 0, Rect(x=72, y=500, width=50, height=50), make_jpeg_bytes(), "jpg")
    with _open(replaced) as doc:
        assert len(doc[0].get_images()) > added_images


def test_image_bytes_must_match_declared_type():
    with pytest.raises(ResourceUnavailableError) as exc_info:
        pdf_ops.add_image(make_letter_pdf_bytes(), 0, 0, 0, 10, 10, make_jpeg_bytes(), "png")
    assert exc_info.value.code == "image_unreadable"

    with pytest.raises(ResourceUnavailableError) as exc_info:
        pdf_ops.add_image(make_letter_pdf_bytes(), 0, 0, 0, 10, 10, b"", "png")
    assert exc_info.value.code == "image_missing"


def test_compress_document_keeps_pages():
    source = make_multipage_pdf_bytes()
    result = pdf_ops.compress_document(source)
    assert result[:4] == b"%PDF"
    assert page_labels(result) == page_labels(source)
