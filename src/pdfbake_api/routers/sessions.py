from __future__ import annotations

from io import BytesIO
import logging

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import Response, StreamingResponse

from pdfbake_api.core.errors import APIError, invalid_input
from pdfbake_api.core.transform import decode_image_data_url
from pdfbake_api.schemas.api import (
    AddImageRequest,
    AddTextRequest,
    AreaRequest,
    HistoryActionResponse,
    InsertPageRequest,
    ReorderRequest,
    ReplaceImageRequest,
    ReplaceTextRequest,
    RotatePageRequest,
    SessionMeta,
    SessionResponse,
)
from pdfbake_api.schemas.history import HistoryState
from pdfbake_api.schemas.rpc import (
    AddImageCall,
    AddTextCall,
    CompressDocumentCall,
    DeleteImageCall,
    DeletePageCall,
    EraseAreaCall,
    InsertBlankPageCall,
    MergeDocumentsCall,
    ReorderPagesCall,
    ReplaceImageCall,
    ReplaceTextRegionCall,
    RotatePageCall,
)
from pdfbake_api.services.session import EditSession, get_session_registry
from pdfbake_api.settings import get_settings

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])
logger = logging.getLogger("pdfbake_api")

_PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


async def _read_upload(file: UploadFile, max_mb: int, kind: str) -> bytes:
    content = await file.read()
    if not content:
        raise invalid_input(f"empty_{kind}", f"Uploaded {kind} is empty")
    if len(content) > max_mb * 1024 * 1024:
        raise APIError(
            status_code=413,
            code="upload_too_large",
            message=f"Uploaded {kind} exceeds the {max_mb} MB limit",
            details={"size_bytes": len(content)},
        )
    return content


async def _read_pdf_upload(file: UploadFile) -> bytes:
    if file.content_type not in _PDF_CONTENT_TYPES:
        raise invalid_input("unsupported_media_type", "Only PDF files are supported", content_type=file.content_type)
    return await _read_upload(file, get_settings().BAKE_MAX_UPLOAD_MB, "document")


async def _session(session_id: str) -> EditSession:
    return await get_session_registry().get(session_id)


def _response(session: EditSession) -> SessionResponse:
    return SessionResponse(**session.meta.model_dump(), history=session.history_state())


def pdf_response(payload: bytes, filename: str, disposition: str = "inline") -> Response:
    return StreamingResponse(
        BytesIO(payload),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'{disposition}; filename="{filename}"',
            "Content-Length": str(len(payload)),
        },
    )


@router.post("", response_model=SessionResponse)
async def create_session(file: UploadFile = File(...)) -> SessionResponse:
    content = await _read_pdf_upload(file)
    session = await get_session_registry().create(content, file.filename or "uploaded.pdf")
    return _response(session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    return _response(await _session(session_id))


@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str) -> Response:
    await get_session_registry().delete(session_id)
    return Response(status_code=204)


@router.get("/{session_id}/download")
async def download_session(session_id: str) -> Response:
    session = await _session(session_id)
    return pdf_response(await session.current_bytes(), session.meta.filename, "attachment")


@router.post("/{session_id}/merge", response_model=SessionResponse)
async def merge(session_id: str, file: UploadFile = File(...)) -> SessionResponse:
    session = await _session(session_id)
    second = await _read_pdf_upload(file)
    await session.apply(
        f"Merge {file.filename or 'document'}",
        lambda current: MergeDocumentsCall(first=current, second=second),
    )
    return _response(session)


@router.post("/{session_id}/reorder", response_model=SessionResponse)
async def reorder(session_id: str, payload: ReorderRequest) -> SessionResponse:
    session = await _session(session_id)
    await session.apply(
        "Reorder pages",
        lambda current: ReorderPagesCall(document=current, order=payload.order),
    )
    return _response(session)


@router.post("/{session_id}/pages/insert", response_model=SessionResponse)
async def insert_page(session_id: str, payload: InsertPageRequest) -> SessionResponse:
    session = await _session(session_id)
    await session.apply(
        f"Insert blank page after {payload.after_index}",
        lambda current: InsertBlankPageCall(document=current, after_index=payload.after_index),
    )
    return _response(session)


@router.post("/{session_id}/pages/{page_index}/delete", response_model=SessionResponse)
async def delete_page(session_id: str, page_index: int) -> SessionResponse:
    session = await _session(session_id)
    await session.apply(
        f"Delete page {page_index}",
        lambda current: DeletePageCall(document=current, page_index=page_index),
    )
    return _response(session)


@router.post("/{session_id}/pages/{page_index}/rotate", response_model=SessionResponse)
async def rotate_page(session_id: str, page_index: int, payload: RotatePageRequest | None = None) -> SessionResponse:
    session = await _session(session_id)
    delta = payload.delta_degrees if payload is not None else 90
    await session.apply(
        f"Rotate page {page_index} by {delta}",
        lambda current: RotatePageCall(document=current, page_index=page_index, delta_degrees=delta),
    )
    return _response(session)


@router.post("/{session_id}/text/replace", response_model=SessionResponse)
async def replace_text(session_id: str, payload: ReplaceTextRequest) -> SessionResponse:
    session = await _session(session_id)
    font = await session.get_custom_font()
    await session.apply(
        f"Replace text on page {payload.page_index}",
        lambda current: ReplaceTextRegionCall(
            document=current,
            page_index=payload.page_index,
            rect=payload.rect,
            new_text=payload.new_text,
            font_name=payload.font_name,
            font_size=payload.font_size,
            color=payload.color,
            text_format=payload.text_format,
            custom_font=font.outline_bytes if font is not None else None,
        ),
    )
    return _response(session)


@router.post("/{session_id}/text/add", response_model=SessionResponse)
async def add_text(session_id: str, payload: AddTextRequest) -> SessionResponse:
    session = await _session(session_id)
    font = await session.get_custom_font()
    await session.apply(
        f"Add text on page {payload.page_index}",
        lambda current: AddTextCall(
            document=current,
            page_index=payload.page_index,
            x=payload.x,
            y=payload.y,
            text=payload.text,
            font_family=payload.font_family,
            font_size=payload.font_size,
            color=payload.color,
            text_format=payload.text_format,
            width=payload.width,
            height=payload.height,
            custom_font=font.outline_bytes if font is not None else None,
        ),
    )
    return _response(session)


@router.post("/{session_id}/erase", response_model=SessionResponse)
async def erase(session_id: str, payload: AreaRequest) -> SessionResponse:
    session = await _session(session_id)
    await session.apply(
        f"Erase area on page {payload.page_index}",
        lambda current: EraseAreaCall(document=current, page_index=payload.page_index, rect=payload.rect),
    )
    return _response(session)


@router.post("/{session_id}/images/replace", response_model=SessionResponse)
async def replace_image(session_id: str, payload: ReplaceImageRequest) -> SessionResponse:
    session = await _session(session_id)
    image = decode_image_data_url(payload.image_data_url)
    await session.apply(
        f"Replace image on page {payload.page_index}",
        lambda current: ReplaceImageCall(
            document=current,
            page_index=payload.page_index,
            rect=payload.rect,
            image=image.data,
            image_type=image.image_type,
        ),
    )
    return _response(session)


@router.post("/{session_id}/images/delete", response_model=SessionResponse)
async def delete_image(session_id: str, payload: AreaRequest) -> SessionResponse:
    session = await _session(session_id)
    await session.apply(
        f"Delete image on page {payload.page_index}",
        lambda current: DeleteImageCall(document=current, page_index=payload.page_index, rect=payload.rect),
    )
    return _response(session)


@router.post("/{session_id}/images/add", response_model=SessionResponse)
async def add_image(session_id: str, payload: AddImageRequest) -> SessionResponse:
    session = await _session(session_id)
    image = decode_image_data_url(payload.image_data_url)
    await session.apply(
        f"Add image on page {payload.page_index}",
        lambda current: AddImageCall(
            document=current,
            page_index=payload.page_index,
            x=payload.x,
            y=payload.y,
            width=payload.width,
            height=payload.height,
            image=image.data,
            image_type=image.image_type,
        ),
    )
    return _response(session)


@router.post("/{session_id}/compress", response_model=SessionResponse)
async def compress(session_id: str) -> SessionResponse:
    session = await _session(session_id)
    await session.apply("Compress document", lambda current: CompressDocumentCall(document=current))
    return _response(session)


@router.post("/{session_id}/font", response_model=SessionMeta)
async def upload_font(session_id: str, file: UploadFile = File(...)) -> SessionMeta:
    session = await _session(session_id)
    content = await _read_upload(file, get_settings().BAKE_MAX_FONT_MB, "font")
    await session.set_custom_font(file.filename or "custom-font", content)
    return session.meta


@router.delete("/{session_id}/font", response_model=SessionMeta)
async def delete_font(session_id: str) -> SessionMeta:
    session = await _session(session_id)
    await session.clear_custom_font()
    return session.meta


@router.get("/{session_id}/history", response_model=HistoryState)
async def history(session_id: str) -> HistoryState:
    return (await _session(session_id)).history_state()


@router.post("/{session_id}/undo", response_model=HistoryActionResponse)
async def undo(session_id: str) -> HistoryActionResponse:
    session = await _session(session_id)
    entry = await session.undo()
    return HistoryActionResponse(
        applied=entry.description if entry is not None else None,
        history=session.history_state(),
    )


@router.post("/{session_id}/redo", response_model=HistoryActionResponse)
async def redo(session_id: str) -> HistoryActionResponse:
    session = await _session(session_id)
    entry = await session.redo()
    return HistoryActionResponse(
        applied=entry.description if entry is not None else None,
        history=session.history_state(),
    )
