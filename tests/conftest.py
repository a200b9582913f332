from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from pdfbake_api.main import app
from pdfbake_api.services.session import get_session_registry
from pdfbake_api.settings import get_settings
from tests.pdf_factory import make_letter_pdf_bytes, make_multipage_pdf_bytes


@pytest.fixture(autouse=True)
def fresh_settings(tmp_path: Path) -> Iterator[None]:
    os.environ["BAKE_STORAGE_DRIVER"] = "local"
    os.environ["BAKE_STORAGE_LOCAL_DIR"] = str(tmp_path / ".data")
    os.environ.pop("BAKE_STRICT_PAGE_INDEX", None)
    get_settings.cache_clear()
    get_session_registry.cache_clear()
    yield
    get_settings.cache_clear()
    get_session_registry.cache_clear()


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def upload_pdf(client: TestClient):
    def _upload(kind: str = "letter"):
        if kind == "letter":
            data = make_letter_pdf_bytes()
            filename = "letter.pdf"
        elif kind == "multipage":
            data = make_multipage_pdf_bytes()
            filename = "multipage.pdf"
        else:
            raise ValueError("Unknown PDF fixture")
        return client.post(
            "/v1/sessions",
            files={"file": (filename, data, "application/pdf")},
        )

    return _upload


@pytest.fixture()
def session_id(upload_pdf) -> str:
    response = upload_pdf("multipage")
    assert response.status_code == 200
    return response.json()["session_id"]
