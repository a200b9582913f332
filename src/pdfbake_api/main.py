from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pdfbake_api.core.errors import APIError
from pdfbake_api.core.request_context import get_request_id
from pdfbake_api.routers.export import router as export_router
from pdfbake_api.routers.fonts import router as fonts_router
from pdfbake_api.routers.health import router as health_router
from pdfbake_api.routers.rpc import router as rpc_router
from pdfbake_api.routers.sessions import router as sessions_router
from pdfbake_api.services.worker import get_worker
from pdfbake_api.settings import get_settings


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger("pdfbake_api")


# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------
def _cors_origins() -> list[str]:
    settings = get_settings()
    if settings.WEB_ORIGIN:
        return [origin.strip() for origin in settings.WEB_ORIGIN.split(",") if origin.strip()]
    if settings.BAKE_ENV.lower() == "production":
        return []
    return [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
app = FastAPI(title="PDF Bake API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    request_id = get_request_id(request)
    logger.error(
        "Unhandled exception on %s %s request_id=%s\n%s",
        request.method,
        request.url.path,
        request_id,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Unexpected server error",
            "path": request.url.path,
            "request_id": request_id,
        },
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    request_id = get_request_id(request)
    logger.warning(
        "Handled API error on %s %s request_id=%s code=%s",
        request.method,
        request.url.path,
        request_id,
        exc.code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "details": jsonable_encoder(exc.details),
            "request_id": request_id,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = get_request_id(request)
    logger.info(
        "Validation error on %s %s request_id=%s",
        request.method,
        request.url.path,
        request_id,
    )
    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "Invalid request payload",
            "details": jsonable_encoder(exc.errors()),
            "request_id": request_id,
        },
    )


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------
@app.on_event("startup")
async def startup_event():
    settings = get_settings()
    logger.info("PDF Bake API starting")
    logger.info("BAKE_ENV=%s", settings.BAKE_ENV)
    logger.info("STORAGE_DRIVER=%s", settings.BAKE_STORAGE_DRIVER)
    logger.info("S3_BUCKET=%s", settings.BAKE_S3_BUCKET)
    logger.info(
        "HISTORY_LIMIT=%s MAX_SESSIONS=%s STRICT_PAGE_INDEX=%s",
        settings.BAKE_HISTORY_LIMIT,
        settings.BAKE_MAX_SESSIONS,
        settings.BAKE_STRICT_PAGE_INDEX,
    )


@app.on_event("shutdown")
async def shutdown_event():
    await get_worker().stop()
    logger.info("PDF Bake API stopped")


# -----------------------------------------------------------------------------
# Routers
# -----------------------------------------------------------------------------
app.include_router(health_router)
app.include_router(sessions_router)
app.include_router(export_router)
app.include_router(fonts_router)
app.include_router(rpc_router)
