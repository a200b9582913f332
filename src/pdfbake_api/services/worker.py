from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
import logging
from typing import Any, Callable, TypeVar

from pdfbake_api.core.errors import APIError, invalid_input
from pdfbake_api.core.fonts.embed import CustomFont
from pdfbake_api.core.request_context import new_correlation_id
from pdfbake_api.schemas.rpc import (
    AddImageCall,
    AddTextCall,
    BakeCall,
    BakeHighlightsCall,
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
    RpcCall,
    RpcResponse,
)
from pdfbake_api.services import compositor, pdf_ops


logger = logging.getLogger("pdfbake_api")

T = TypeVar("T")


@dataclass
class WorkerCallError(APIError):
    """A call that failed inside the worker, rebuilt from its error response."""

    request_id: str | None = field(default=None)


def _custom_font(payload: bytes | None) -> CustomFont | None:
    if payload is None:
        return None
    return CustomFont(compositor.CUSTOM_FONT_NAME, payload)


def execute(call: RpcCall) -> bytes:
    """Run one request variant to completion and return the new document bytes."""
    if isinstance(call, MergeDocumentsCall):
        return pdf_ops.merge_documents(call.first, call.second)
    if isinstance(call, ReorderPagesCall):
        return pdf_ops.reorder_pages(call.document, call.order)
    if isinstance(call, InsertBlankPageCall):
        return pdf_ops.insert_blank_page(call.document, call.after_index)
    if isinstance(call, DeletePageCall):
        return pdf_ops.delete_page(call.document, call.page_index)
    if isinstance(call, RotatePageCall):
        return pdf_ops.rotate_page(call.document, call.page_index, call.delta_degrees)
    if isinstance(call, ReplaceTextRegionCall):
        return pdf_ops.replace_text_region(
            call.document,
            call.page_index,
            call.rect,
            call.new_text,
            call.font_name,
            call.font_size,
            call.color,
            call.text_format,
            _custom_font(call.custom_font),
        )
    if isinstance(call, EraseAreaCall):
        return pdf_ops.erase_area(call.document, call.page_index, call.rect)
    if isinstance(call, ReplaceImageCall):
        return pdf_ops.replace_image(call.document, call.page_index, call.rect, call.image, call.image_type)
    if isinstance(call, DeleteImageCall):
        return pdf_ops.delete_image(call.document, call.page_index, call.rect)
    if isinstance(call, AddTextCall):
        return pdf_ops.add_text(
            call.document,
            call.page_index,
            call.x,
            call.y,
            call.text,
            call.font_family,
            call.font_size,
            call.color,
            call.text_format,
            call.width,
            call.height,
            _custom_font(call.custom_font),
        )
    if isinstance(call, AddImageCall):
        return pdf_ops.add_image(
            call.document,
            call.page_index,
            call.x,
            call.y,
            call.width,
            call.height,
            call.image,
            call.image_type,
        )
    if isinstance(call, BakeHighlightsCall):
        return compositor.bake_highlights(call.document, call.highlights)
    if isinstance(call, CompressDocumentCall):
        return pdf_ops.compress_document(call.document)
    if isinstance(call, BakeCall):
        return compositor.bake(call.document, call.overlays, call.custom_font, strict=call.strict)
    raise TypeError(f"Unsupported worker call {type(call).__name__}")


def handle(request_id: str, call: RpcCall) -> RpcResponse:
    try:
        return RpcResponse(id=request_id, result=execute(call))
    except APIError as exc:
        logger.info(
            "Worker call failed request_id=%s method=%s code=%s",
            request_id,
            call.method,
            exc.code,
        )
        return RpcResponse(id=request_id, error=exc.message, code=exc.code, status_code=exc.status_code)
    except Exception as exc:
        logger.exception("Worker call crashed request_id=%s method=%s", request_id, call.method)
        return RpcResponse(id=request_id, error=str(exc) or exc.__class__.__name__, code="internal_error", status_code=500)


class PdfWorker:
    """Single-writer execution context for document operations.

    Requests are queued and run one at a time, in arrival order, on a
    dedicated thread so the event loop stays responsive. Any number of
    requests may be in flight; each response is matched to its request by
    id. There is no cancellation and no timeout.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdfbake-worker")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[str, RpcCall]] | None = None
        self._pending: dict[str, asyncio.Future[RpcResponse]] = {}
        self._task: asyncio.Task[None] | None = None

    def _ensure_started(self) -> asyncio.Queue[tuple[str, RpcCall]]:
        loop = asyncio.get_running_loop()
        queue = self._queue
        if queue is None or self._loop is not loop or self._task is None or self._task.done():
            # Bound to the running loop; a new loop (e.g. a new test client) gets a fresh consumer.
            queue = asyncio.Queue()
            self._loop = loop
            self._queue = queue
            self._pending = {}
            self._task = loop.create_task(self._consume(loop, queue))
        return queue

    async def _consume(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[tuple[str, RpcCall]]) -> None:
        while True:
            request_id, call = await queue.get()
            try:
                response = await loop.run_in_executor(self._executor, handle, request_id, call)
            finally:
                queue.task_done()
            future = self._pending.pop(request_id, None)
            if future is not None and not future.done():
                future.set_result(response)

    async def submit(self, call: RpcCall, request_id: str | None = None) -> RpcResponse:
        queue = self._ensure_started()
        request_id = request_id or new_correlation_id()
        if request_id in self._pending:
            raise invalid_input("duplicate_request_id", "A request with this id is already in flight", request_id=request_id)
        future: asyncio.Future[RpcResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        await queue.put((request_id, call))
        return await future

    async def call(self, call: RpcCall, request_id: str | None = None) -> bytes:
        response = await self.submit(call, request_id)
        if response.error is not None or response.result is None:
            raise WorkerCallError(
                status_code=response.status_code or 500,
                code=response.code or "internal_error",
                message=response.error or "Worker returned no result",
                request_id=response.id,
            )
        return response.result

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a document helper on the worker thread, outside the request queue.

        The executor has a single thread, so the helper never overlaps a
        queued call.
        """
        return await asyncio.get_running_loop().run_in_executor(self._executor, fn, *args)

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


@lru_cache
def get_worker() -> PdfWorker:
    return PdfWorker()
