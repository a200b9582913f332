from __future__ import annotations

import asyncio
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
import json
import logging
from typing import AsyncIterator, Callable, Sequence
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError

from pdfbake_api.core.errors import SessionNotFoundError, StorageError
from pdfbake_api.core.fonts.embed import CustomFont, load_custom_font
from pdfbake_api.schemas.api import PageSize, SessionMeta
from pdfbake_api.schemas.history import HistoryEntry, HistoryState
from pdfbake_api.schemas.overlay import Overlay
from pdfbake_api.schemas.rpc import BakeCall, RpcCall
from pdfbake_api.services import pdf_ops
from pdfbake_api.services.history import DEFAULT_HISTORY_LIMIT, HistoryManager
from pdfbake_api.services.storage import StorageDriver, get_or_none, get_storage
from pdfbake_api.services.worker import PdfWorker, get_worker
from pdfbake_api.settings import get_settings


DEFAULT_MAX_SESSIONS = 64

logger = logging.getLogger("pdfbake_api")

_STORAGE_ERRORS = (OSError, ClientError, BotoCoreError)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _session_prefix(session_id: str) -> str:
    return f"sessions/{session_id}"


def _not_found(session_id: str, message: str = "Session not found") -> SessionNotFoundError:
    return SessionNotFoundError(
        status_code=404,
        code="session_not_found",
        message=message,
        details={"session_id": session_id},
    )


def _storage_error(action: str, key: str, exc: Exception) -> StorageError:
    logger.error("Storage failure action=%s key=%s error=%s", action, key, exc.__class__.__name__)
    return StorageError(
        status_code=502,
        code="storage_error",
        message=f"Storage {action} failed",
        details={"key": key},
    )


# Both helpers run on the worker thread; only plain data comes back.
def _describe_document(pdf_bytes: bytes) -> tuple[int, list[PageSize]]:
    sizes = pdf_ops.page_sizes(pdf_bytes)
    return len(sizes), [PageSize(width=width, height=height) for width, height in sizes]


def _check_font(font: CustomFont) -> None:
    load_custom_font(font)


class EditSession:
    """One user's editing session: the current document, its history and custom font.

    Document bytes live in the storage driver; history snapshots live in
    memory and are lost when the process restarts. Mutations are serialized
    per session. Everything that touches PyMuPDF goes through ``worker``,
    and storage calls run in a thread so the event loop never blocks.
    """

    def __init__(
        self,
        session_id: str,
        storage: StorageDriver,
        worker: PdfWorker,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        meta: SessionMeta | None = None,
    ) -> None:
        self.session_id = session_id
        self.storage = storage
        self.worker = worker
        self.history = HistoryManager(history_limit)
        self._meta = meta
        self._custom_font: CustomFont | None = None
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    @property
    def current_key(self) -> str:
        return f"{_session_prefix(self.session_id)}/current.pdf"

    @property
    def original_key(self) -> str:
        return f"{_session_prefix(self.session_id)}/original.pdf"

    @property
    def meta_key(self) -> str:
        return f"{_session_prefix(self.session_id)}/meta.json"

    @property
    def font_key(self) -> str:
        return f"{_session_prefix(self.session_id)}/font.bin"

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        async with self._lock:
            yield

    async def _read(self, key: str) -> bytes | None:
        try:
            return await asyncio.to_thread(get_or_none, self.storage, key)
        except _STORAGE_ERRORS as exc:
            raise _storage_error("read", key, exc) from exc

    async def _write(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self.storage.put_bytes, key, data, content_type)
        except _STORAGE_ERRORS as exc:
            raise _storage_error("write", key, exc) from exc

    async def _delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.storage.delete, key)
        except _STORAGE_ERRORS as exc:
            raise _storage_error("delete", key, exc) from exc

    async def _save_meta(self, meta: SessionMeta) -> None:
        payload = json.dumps(meta.model_dump(mode="json"), sort_keys=True).encode("utf-8")
        await self._write(self.meta_key, payload, "application/json")
        self._meta = meta

    async def _store_current(self, pdf_bytes: bytes) -> None:
        page_count, sizes = await self.worker.run(_describe_document, pdf_bytes)
        await self._write(self.current_key, pdf_bytes, "application/pdf")
        await self._save_meta(
            self.meta.model_copy(
                update={
                    "size_bytes": len(pdf_bytes),
                    "page_count": page_count,
                    "page_sizes": sizes,
                    "updated_at": _now(),
                }
            )
        )

    async def initialize(self, pdf_bytes: bytes, filename: str) -> SessionMeta:
        page_count, sizes = await self.worker.run(_describe_document, pdf_bytes)
        created_at = _now()
        meta = SessionMeta(
            session_id=self.session_id,
            filename=filename,
            size_bytes=len(pdf_bytes),
            page_count=page_count,
            page_sizes=sizes,
            created_at=created_at,
            updated_at=created_at,
        )
        await self._write(self.original_key, pdf_bytes, "application/pdf")
        await self._write(self.current_key, pdf_bytes, "application/pdf")
        await self._save_meta(meta)
        return meta

    async def load_meta(self) -> bool:
        raw = await self._read(self.meta_key)
        if raw is None:
            return False
        self._meta = SessionMeta.model_validate(json.loads(raw))
        return True

    @property
    def meta(self) -> SessionMeta:
        if self._meta is None:
            raise _not_found(self.session_id)
        return self._meta

    async def get_custom_font(self) -> CustomFont | None:
        if self._custom_font is None and self.meta.custom_font:
            data = await self._read(self.font_key)
            if data is not None:
                self._custom_font = CustomFont(self.meta.custom_font, data)
        return self._custom_font

    async def current_bytes(self) -> bytes:
        data = await self._read(self.current_key)
        if data is None:
            raise _not_found(self.session_id, "Session document is missing")
        return data

    def history_state(self) -> HistoryState:
        return self.history.state()

    async def apply(self, description: str, build_call: Callable[[bytes], RpcCall]) -> bytes:
        """Run ``build_call(current)`` through the worker and make the result current.

        The bytes current before the call become the snapshot of the new
        history entry. Nothing changes if the call fails.
        """
        async with self._guard():
            prior = await self.current_bytes()
            result = await self.worker.call(build_call(prior))
            await self._store_current(result)
            self.history.commit(HistoryEntry(description=description, snapshot=prior))
        logger.info(
            "Session edit applied session_id=%s action=%s size_bytes=%s",
            self.session_id,
            description,
            len(result),
        )
        return result

    async def note(self, description: str) -> None:
        """Record an action that has no document snapshot to restore."""
        async with self._guard():
            self.history.commit(HistoryEntry(description=description))

    async def undo(self) -> HistoryEntry | None:
        async with self._guard():
            entry = self.history.peek_undo()
            if entry is None:
                return None
            if entry.snapshot is not None:
                leaving = await self.current_bytes()
                await self._store_current(entry.snapshot)
                self.history.undo(HistoryEntry(description=entry.description, snapshot=leaving))
            else:
                self.history.undo()
        logger.info("Session undo session_id=%s action=%s", self.session_id, entry.description)
        return entry

    async def redo(self) -> HistoryEntry | None:
        async with self._guard():
            entry = self.history.peek_redo()
            if entry is None:
                return None
            if entry.snapshot is not None:
                leaving = await self.current_bytes()
                await self._store_current(entry.snapshot)
                self.history.redo(HistoryEntry(description=entry.description, snapshot=leaving))
            else:
                self.history.redo()
        logger.info("Session redo session_id=%s action=%s", self.session_id, entry.description)
        return entry

    async def set_custom_font(self, name: str, data: bytes) -> None:
        font = CustomFont(name, data)
        await self.worker.run(_check_font, font)
        async with self._guard():
            await self._write(self.font_key, data, "application/octet-stream")
            self._custom_font = font
            await self._save_meta(self.meta.model_copy(update={"custom_font": name, "updated_at": _now()}))
            self.history.commit(HistoryEntry(description=f"Set custom font {name}"))
        logger.info("Custom font set session_id=%s font=%s size_bytes=%s", self.session_id, name, len(data))

    async def clear_custom_font(self) -> bool:
        async with self._guard():
            if self.meta.custom_font is None:
                return False
            await self._delete(self.font_key)
            self._custom_font = None
            await self._save_meta(self.meta.model_copy(update={"custom_font": None, "updated_at": _now()}))
            self.history.commit(HistoryEntry(description="Clear custom font"))
        logger.info("Custom font cleared session_id=%s", self.session_id)
        return True

    async def bake(self, overlays: Sequence[Overlay], strict: bool | None = None) -> bytes:
        """Composite ``overlays`` onto the current document without changing it."""
        font = await self.get_custom_font()
        call = BakeCall(
            document=await self.current_bytes(),
            overlays=list(overlays),
            custom_font=font.outline_bytes if font is not None else None,
            strict=strict,
        )
        return await self.worker.call(call)

    async def discard(self) -> None:
        """Remove every stored object of the session and release its snapshots."""
        async with self._guard():
            for key in (self.current_key, self.original_key, self.font_key, self.meta_key):
                await self._delete(key)
            self.history.clear()
            self._custom_font = None
            self._meta = None


class SessionRegistry:
    """Process-local LRU of live sessions.

    At most ``max_sessions`` sessions (and their in-memory history) are
    kept; the least recently used one is evicted past that. Sessions missing
    from memory are rebuilt from their stored metadata with an empty history.
    """

    def __init__(
        self,
        storage: StorageDriver,
        worker: PdfWorker,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("Session limit must be at least 1")
        self.storage = storage
        self.worker = worker
        self.history_limit = history_limit
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, EditSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _new_session(self, session_id: str) -> EditSession:
        return EditSession(session_id, self.storage, self.worker, self.history_limit)

    def _remember(self, session: EditSession) -> None:
        self._sessions[session.session_id] = session
        self._sessions.move_to_end(session.session_id)
        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Session evicted from memory session_id=%s", evicted_id)

    async def create(self, pdf_bytes: bytes, filename: str) -> EditSession:
        session = self._new_session(uuid4().hex)
        meta = await session.initialize(pdf_bytes, filename)
        self._remember(session)
        logger.info(
            "Session created session_id=%s filename=%s pages=%s size_bytes=%s",
            session.session_id,
            filename,
            meta.page_count,
            meta.size_bytes,
        )
        return session

    async def get(self, session_id: str) -> EditSession:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            return session
        if not session_id.isalnum():
            raise _not_found(session_id)
        restored = self._new_session(session_id)
        if not await restored.load_meta():
            raise _not_found(session_id)
        # Another request may have restored it while storage was read.
        session = self._sessions.get(session_id, restored)
        self._remember(session)
        if session is restored:
            logger.info("Session restored from storage session_id=%s", session_id)
        return session

    def drop(self, session_id: str) -> EditSession | None:
        return self._sessions.pop(session_id, None)

    async def delete(self, session_id: str) -> None:
        session = await self.get(session_id)
        self.drop(session_id)
        await session.discard()
        logger.info("Session deleted session_id=%s", session_id)


@lru_cache
def get_session_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(get_storage(), get_worker(), settings.BAKE_HISTORY_LIMIT, settings.BAKE_MAX_SESSIONS)
