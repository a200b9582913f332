from __future__ import annotations

from fastapi import APIRouter

from pdfbake_api.core.fonts.resolve import resolve_font
from pdfbake_api.schemas.api import FontResolveRequest, FontResolveResponse

router = APIRouter(prefix="/v1/fonts", tags=["fonts"])


@router.post("/resolve", response_model=FontResolveResponse)
def resolve(payload: FontResolveRequest) -> FontResolveResponse:
    resolution = resolve_font(payload.font_name, payload.bold, payload.italic)
    return FontResolveResponse(
        raw=payload.font_name,
        key=resolution.key,
        family=resolution.family,
        bold=resolution.bold,
        italic=resolution.italic,
        reason=resolution.reason,
    )
