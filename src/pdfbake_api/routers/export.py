from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import Response

from pdfbake_api.routers.sessions import pdf_response
from pdfbake_api.schemas.api import BakeRequest
from pdfbake_api.schemas.export import ExportRequest
from pdfbake_api.services.export import build_overlays
from pdfbake_api.services.session import get_session_registry

router = APIRouter(prefix="/v1/sessions", tags=["export"])
logger = logging.getLogger("pdfbake_api")


@router.post("/{session_id}/bake")
async def bake(session_id: str, payload: BakeRequest) -> Response:
    session = await get_session_registry().get(session_id)
    result = await session.bake(payload.overlays, strict=payload.strict)
    logger.info("Bake served session_id=%s overlays=%s size_bytes=%s", session_id, len(payload.overlays), len(result))
    return pdf_response(result, payload.filename, "attachment")


@router.post("/{session_id}/export")
async def export(session_id: str, payload: ExportRequest) -> Response:
    session = await get_session_registry().get(session_id)
    heights = [size.height for size in session.meta.page_sizes]
    overlays = build_overlays(payload, heights)
    result = await session.bake(overlays)
    logger.info("Export served session_id=%s overlays=%s size_bytes=%s", session_id, len(overlays), len(result))
    return pdf_response(result, payload.filename, "attachment")
