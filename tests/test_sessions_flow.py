from __future__ import annotations

import fitz

from pdfbake_api.core.fonts.resolve import CUSTOM_FONT_KEY
from tests.pdf_factory import data_url, make_font_bytes, make_letter_pdf_bytes, make_png_bytes, page_labels


def test_upload_and_download(client, upload_pdf):
    response = upload_pdf("multipage")
    assert response.status_code == 200
    payload = response.json()
    assert payload["filename"] == "multipage.pdf"
    assert payload["page_count"] == 3
    assert payload["page_sizes"][0] == {"width": 595, "height": 842}
    assert payload["history"]["can_undo"] is False

    session_id = payload["session_id"]
    meta = client.get(f"/v1/sessions/{session_id}")
    assert meta.status_code == 200
    assert meta.json()["size_bytes"] == payload["size_bytes"]

    download = client.get(f"/v1/sessions/{session_id}/download")
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/pdf"
    assert 'filename="multipage.pdf"' in download.headers["content-disposition"]
    assert page_labels(download.content) == ["Page 1", "Page 2", "Page 3"]


def test_upload_rejects_non_pdf(client):
    response = client.post("/v1/sessions", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_media_type"


def test_upload_rejects_unreadable_pdf(client):
    response = client.post("/v1/sessions", files={"file": ("broken.pdf", b"%PDF-garbage", "application/pdf")})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_document"


def test_unknown_session(client):
    response = client.get("/v1/sessions/doesnotexist")
    assert response.status_code == 404
    payload = response.json()
    assert payload["error"] == "session_not_found"
    assert payload["request_id"]


def test_page_operations_and_history(client, session_id):
    original = client.get(f"/v1/sessions/{session_id}/download").content

    rotate = client.post(f"/v1/sessions/{session_id}/pages/0/rotate", json={"deltaDegrees": 180})
    assert rotate.status_code == 200
    reorder = client.post(f"/v1/sessions/{session_id}/reorder", json={"order": [3, 2, 1]})
    assert reorder.status_code == 200
    insert = client.post(f"/v1/sessions/{session_id}/pages/insert", json={"afterIndex": 0})
    assert insert.status_code == 200
    assert insert.json()["page_count"] == 4
    delete = client.post(f"/v1/sessions/{session_id}/pages/1/delete")
    assert delete.status_code == 200

    current = client.get(f"/v1/sessions/{session_id}/download").content
    assert page_labels(current) == ["Page 3", "Page 2", "Page 1"]

    history = client.get(f"/v1/sessions/{session_id}/history").json()
    assert [item["description"] for item in history["undo"]] == [
        "Delete page 1",
        "Insert blank page after 0",
        "Reorder pages",
        "Rotate page 0 by 180",
    ]

    for _ in range(4):
        assert client.post(f"/v1/sessions/{session_id}/undo").status_code == 200
    assert client.get(f"/v1/sessions/{session_id}/download").content == original

    redo = client.post(f"/v1/sessions/{session_id}/redo")
    assert redo.json()["applied"] == "Rotate page 0 by 180"
    assert redo.json()["history"]["can_redo"] is True

    exhausted = client.post(f"/v1/sessions/{session_id}/undo")
    exhausted = client.post(f"/v1/sessions/{session_id}/undo")
    assert exhausted.json()["applied"] is None


def test_rotate_defaults_to_quarter_turn(client, session_id):
    response = client.post(f"/v1/sessions/{session_id}/pages/2/rotate")
    assert response.status_code == 200
    doc = fitz.open(stream=client.get(f"/v1/sessions/{session_id}/download").content, filetype="pdf")
    assert doc[2].rotation == 90
    doc.close()


def test_cannot_delete_last_page(client, upload_pdf):
    session_id = upload_pdf("letter").json()["session_id"]
    response = client.post(f"/v1/sessions/{session_id}/pages/0/delete")
    assert response.status_code == 409
    assert response.json()["error"] == "cannot_delete_last_page"
    history = client.get(f"/v1/sessions/{session_id}/history").json()
    assert history["can_undo"] is False


def test_merge(client, session_id):
    response = client.post(
        f"/v1/sessions/{session_id}/merge",
        files={"file": ("letter.pdf", make_letter_pdf_bytes(), "application/pdf")},
    )
    assert response.status_code == 200
    assert response.json()["page_count"] == 4


def test_text_and_image_editing(client, session_id):
    replace = client.post(
        f"/v1/sessions/{session_id}/text/replace",
        json={
            "pageIndex": 0,
            "rect": {"x": 70, "y": 765, "width": 120, "height": 16},
            "newText": "Cover page",
            "fontName": "ABCDEF+Arial-BoldMT",
            "fontSize": 14,
            "textFormat": {"isItalic": True, "alignment": "center"},
        },
    )
    assert replace.status_code == 200

    add = client.post(
        f"/v1/sessions/{session_id}/text/add",
        json={"pageIndex": 1, "x": 72, "y": 500, "text": "Reviewed", "color": {"r": 1, "g": 0, "b": 0}},
    )
    assert add.status_code == 200

    erase = client.post(
        f"/v1/sessions/{session_id}/erase",
        json={"pageIndex": 2, "rect": {"x": 100, "y": 600, "width": 160, "height": 100}},
    )
    assert erase.status_code == 200

    image = data_url(make_png_bytes(16, 16))
    add_image = client.post(
        f"/v1/sessions/{session_id}/images/add",
        json={"pageIndex": 0, "x": 300, "y": 300, "width": 50, "height": 50, "imageDataUrl": image},
    )
    assert add_image.status_code == 200
    replace_image = client.post(
        f"/v1/sessions/{session_id}/images/replace",
        json={"pageIndex": 0, "rect": {"x": 300, "y": 300, "width": 50, "height": 50}, "imageDataUrl": image},
    )
    assert replace_image.status_code == 200
    delete_image = client.post(
        f"/v1/sessions/{session_id}/images/delete",
        json={"pageIndex": 0, "rect": {"x": 300, "y": 300, "width": 50, "height": 50}},
    )
    assert delete_image.status_code == 200

    compress = client.post(f"/v1/sessions/{session_id}/compress")
    assert compress.status_code == 200
    assert compress.json()["history"]["undo"][0]["description"] == "Compress document"

    doc = fitz.open(stream=client.get(f"/v1/sessions/{session_id}/download").content, filetype="pdf")
    assert "Cover page" in doc[0].get_text()
    assert "Reviewed" in doc[1].get_text()
    doc.close()


def test_bad_image_data_url(client, session_id):
    response = client.post(
        f"/v1/sessions/{session_id}/images/add",
        json={"pageIndex": 0, "x": 0, "y": 0, "width": 10, "height": 10, "imageDataUrl": "data:image/gif;base64,AAAA"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_image_format"


def test_out_of_range_page(client, session_id):
    response = client.post(
        f"/v1/sessions/{session_id}/erase",
        json={"pageIndex": 7, "rect": {"x": 0, "y": 0, "width": 10, "height": 10}},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "page_out_of_range"


def test_validation_error_shape(client, session_id):
    response = client.post(f"/v1/sessions/{session_id}/reorder", json={"order": []})
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_custom_font_upload_rejects_garbage(client, session_id):
    response = client.post(
        f"/v1/sessions/{session_id}/font",
        files={"file": ("broken.ttf", b"not a font", "font/ttf")},
    )
    assert response.status_code == 422
    assert response.json()["error"] == "font_unreadable"

    cleared = client.delete(f"/v1/sessions/{session_id}/font")
    assert cleared.status_code == 200
    assert cleared.json()["custom_font"] is None


def test_custom_font_upload_drives_text_replacement(client, session_id):
    uploaded = client.post(
        f"/v1/sessions/{session_id}/font",
        files={"file": ("brand.otf", make_font_bytes(), "font/otf")},
    )
    assert uploaded.status_code == 200
    assert uploaded.json()["custom_font"] == "brand.otf"

    replaced = client.post(
        f"/v1/sessions/{session_id}/text/replace",
        json={
            "pageIndex": 0,
            "rect": {"x": 70, "y": 765, "width": 200, "height": 16},
            "newText": "Branded heading",
            "fontName": "Arial",
            "fontSize": 14,
        },
    )
    assert replaced.status_code == 200

    download = client.get(f"/v1/sessions/{session_id}/download")
    doc = fitz.open(stream=download.content, filetype="pdf")
    try:
        assert "Branded heading" in doc[0].get_text()
        assert CUSTOM_FONT_KEY in [entry[4] for entry in doc[0].get_fonts()]
    finally:
        doc.close()


def test_delete_session(client, session_id):
    deleted = client.delete(f"/v1/sessions/{session_id}")
    assert deleted.status_code == 204

    for path in ("", "/download", "/history"):
        response = client.get(f"/v1/sessions/{session_id}{path}")
        assert response.status_code == 404
        assert response.json()["error"] == "session_not_found"

    assert client.delete(f"/v1/sessions/{session_id}").status_code == 404
