from __future__ import annotations

from fastapi import APIRouter, Request

from pdfbake_api.core.request_context import get_request_id
from pdfbake_api.schemas.rpc import RpcRequest, RpcResponse
from pdfbake_api.services.worker import get_worker

router = APIRouter(prefix="/v1", tags=["rpc"])


@router.post("/rpc", response_model=RpcResponse)
async def rpc(payload: RpcRequest, request: Request) -> RpcResponse:
    """Run one document operation on the worker; failures come back in ``error``."""
    request_id = payload.id or get_request_id(request)
    return await get_worker().submit(payload.call, request_id)
