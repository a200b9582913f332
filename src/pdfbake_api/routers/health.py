from __future__ import annotations

from fastapi import APIRouter

from pdfbake_api.settings import get_settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str | bool | int]:
    settings = get_settings()
    return {
        "status": "ok",
        "build_version": settings.BAKE_BUILD_VERSION or "dev",
        "storage_driver": settings.BAKE_STORAGE_DRIVER,
        "history_limit": settings.BAKE_HISTORY_LIMIT,
        "strict_page_index": settings.BAKE_STRICT_PAGE_INDEX,
    }
