from __future__ import annotations

import os
import sys

import fitz
import httpx


def _make_smoke_pdf() -> bytes:
    doc = fitz.open()
    for label in ("Smoke page one", "Smoke page two"):
        page = doc.new_page(width=400, height=400)
        page.draw_rect(fitz.Rect(50, 50, 350, 200), color=(0.1, 0.3, 0.6), fill=(0.1, 0.3, 0.6))
        page.insert_text((70, 110), label, fontsize=14, color=(1, 1, 1))
    payload = doc.tobytes()
    doc.close()
    return payload


def main() -> int:
    base_url = os.getenv("BAKE_SMOKE_API_BASE_URL", "http://localhost:8000").rstrip("/")
    client = httpx.Client(base_url=base_url, timeout=30)

    upload = client.post(
        "/v1/sessions",
        files={"file": ("smoke.pdf", _make_smoke_pdf(), "application/pdf")},
    )
    upload.raise_for_status()
    session_id = upload.json()["session_id"]

    client.post(f"/v1/sessions/{session_id}/pages/1/rotate").raise_for_status()
    client.post(
        f"/v1/sessions/{session_id}/text/replace",
        json={
            "pageIndex": 0,
            "rect": {"x": 68, "y": 286, "width": 200, "height": 18},
            "newText": "Smoke OK",
            "fontName": "Helvetica-Bold",
            "fontSize": 14,
        },
    ).raise_for_status()
    client.post(f"/v1/sessions/{session_id}/undo").raise_for_status()
    client.post(f"/v1/sessions/{session_id}/redo").raise_for_status()

    bake = client.post(
        f"/v1/sessions/{session_id}/bake",
        json={
            "overlays": [
                {"type": "RECTANGLE", "pageIndex": 0, "x": 60, "y": 60, "width": 120, "height": 30, "color": {"r": 1, "g": 1, "b": 0}, "opacity": 0.4},
                {"type": "SHAPE", "pageIndex": 1, "shapeKind": "star", "x": 150, "y": 250, "width": 60, "height": 60},
            ]
        },
    )
    bake.raise_for_status()
    if not bake.content.startswith(b"%PDF"):
        print("Bake did not return a PDF", file=sys.stderr)
        return 1

    baked = fitz.open(stream=bake.content, filetype="pdf")
    try:
        if "Smoke OK" not in baked[0].get_text():
            print("Replaced text missing from baked PDF", file=sys.stderr)
            return 1
        print(f"smoke ok session_id={session_id} pages={baked.page_count} bytes={len(bake.content)}")
    finally:
        baked.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
