from __future__ import annotations

from uuid import uuid4

from fastapi import Request


def new_correlation_id() -> str:
    return uuid4().hex


def get_request_id(request: Request | None) -> str:
    if request is not None:
        for header in ("x-request-id", "x-correlation-id"):
            value = request.headers.get(header)
            if value:
                return value
    return new_correlation_id()
