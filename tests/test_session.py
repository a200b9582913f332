from __future__ import annotations

import asyncio
import threading

import pytest

from pdfbake_api.core.errors import InvalidInputError, ResourceUnavailableError, SessionNotFoundError
from pdfbake_api.schemas.overlay import TextOverlay
from pdfbake_api.schemas.rpc import DeletePageCall, InsertBlankPageCall, RotatePageCall
from pdfbake_api.services import pdf_ops, session as session_module
from pdfbake_api.services.session import SessionRegistry
from pdfbake_api.services.storage import MemoryStorageDriver
from pdfbake_api.services.worker import PdfWorker, WorkerCallError
from tests.pdf_factory import (
    make_empty_pdf_bytes,
    make_font_bytes,
    make_letter_pdf_bytes,
    make_multipage_pdf_bytes,
)


def _run(scenario, **registry_options):
    async def _wrapped():
        worker = PdfWorker()
        registry = SessionRegistry(MemoryStorageDriver(), worker, history_limit=20, **registry_options)
        try:
            return await scenario(registry)
        finally:
            await worker.stop()
            worker.shutdown()

    return asyncio.run(_wrapped())


def test_create_stores_original_and_meta():
    source = make_multipage_pdf_bytes()

    async def scenario(registry):
        session = await registry.create(source, "doc.pdf")
        assert await session.current_bytes() == source
        assert registry.storage.get_bytes(session.original_key) == source
        assert session.meta.page_count == 3
        assert session.meta.filename == "doc.pdf"

    _run(scenario)


def test_commit_commit_undo_redo_restores_exact_bytes():
    source = make_multipage_pdf_bytes()

    async def scenario(registry):
        session = await registry.create(source, "doc.pdf")
        first = await session.apply(
            "Rotate page 0",
            lambda current: RotatePageCall(document=current, page_index=0),
        )
        second = await session.apply(
            "Delete page 2",
            lambda current: DeletePageCall(document=current, page_index=2),
        )
        assert session.meta.page_count == 2

        undone = await session.undo()
        assert undone.description == "Delete page 2"
        assert await session.current_bytes() == first
        assert session.meta.page_count == 3

        await session.redo()
        assert await session.current_bytes() == second

        await session.undo()
        await session.undo()
        assert await session.current_bytes() == source
        assert await session.undo() is None
        return session.history_state()

    state = _run(scenario)
    assert [item.description for item in state.redo] == ["Rotate page 0", "Delete page 2"]


def test_failed_apply_changes_nothing():
    source = make_letter_pdf_bytes()

    async def scenario(registry):
        session = await registry.create(source, "single.pdf")
        with pytest.raises(WorkerCallError):
            await session.apply(
                "Delete page 0",
                lambda current: DeletePageCall(document=current, page_index=0),
            )
        assert await session.current_bytes() == source
        assert not session.history.can_undo

    _run(scenario)


def test_empty_documents_only_take_a_blank_page():
    async def scenario(registry):
        with pytest.raises(InvalidInputError):
            await registry.create(make_empty_pdf_bytes(), "empty.pdf")
        assert len(registry) == 0
        return await registry.worker.call(InsertBlankPageCall(document=make_empty_pdf_bytes(), after_index=-1))

    sizes = pdf_ops.page_sizes(_run(scenario))
    assert len(sizes) == 1
    assert sizes[0] == pytest.approx((pdf_ops.A4_WIDTH_PT, pdf_ops.A4_HEIGHT_PT))


def test_document_work_stays_on_worker_thread(monkeypatch):
    seen: list[str] = []
    describe = session_module._describe_document

    def recording_describe(pdf_bytes):
        seen.append(threading.current_thread().name)
        return describe(pdf_bytes)

    check_font = session_module._check_font

    def recording_check_font(font):
        seen.append(threading.current_thread().name)
        check_font(font)

    monkeypatch.setattr(session_module, "_describe_document", recording_describe)
    monkeypatch.setattr(session_module, "_check_font", recording_check_font)

    async def scenario(registry):
        session = await registry.create(make_multipage_pdf_bytes(), "doc.pdf")
        await session.apply("Rotate page 0", lambda current: RotatePageCall(document=current, page_index=0))
        await session.undo()
        await session.set_custom_font("brand.otf", make_font_bytes())

    _run(scenario)
    assert len(seen) == 4
    assert all(name.startswith("pdfbake-worker") for name in seen)


def test_storage_calls_leave_the_event_loop_thread():
    loop_threads: set[str] = set()
    storage_threads: set[str] = set()

    class RecordingStorage(MemoryStorageDriver):
        def put_bytes(self, key, data, content_type=None):
            storage_threads.add(threading.current_thread().name)
            return super().put_bytes(key, data, content_type)

        def get_bytes(self, key):
            storage_threads.add(threading.current_thread().name)
            return super().get_bytes(key)

    async def scenario():
        loop_threads.add(threading.current_thread().name)
        worker = PdfWorker()
        registry = SessionRegistry(RecordingStorage(), worker)
        try:
            session = await registry.create(make_letter_pdf_bytes(), "single.pdf")
            await session.current_bytes()
        finally:
            await worker.stop()
            worker.shutdown()

    asyncio.run(scenario())
    assert storage_threads
    assert not storage_threads & loop_threads


def test_note_commits_snapshotless_entry():
    source = make_letter_pdf_bytes()

    async def scenario(registry):
        session = await registry.create(source, "single.pdf")
        await session.note("Highlight added")
        entry = await session.undo()
        assert entry.restorable is False
        assert await session.current_bytes() == source
        await session.redo()
        assert session.history.can_undo

    _run(scenario)


def test_custom_font_rejects_unreadable_bytes():
    async def scenario(registry):
        session = await registry.create(make_letter_pdf_bytes(), "single.pdf")
        with pytest.raises(ResourceUnavailableError):
            await session.set_custom_font("broken.ttf", b"not a font")
        assert await session.clear_custom_font() is False
        assert await session.get_custom_font() is None

    _run(scenario)


def test_custom_font_survives_restore_and_bakes():
    font_bytes = make_font_bytes()

    async def scenario(registry):
        session = await registry.create(make_letter_pdf_bytes(), "single.pdf")
        await session.set_custom_font("brand.otf", font_bytes)
        assert session.meta.custom_font == "brand.otf"

        registry.drop(session.session_id)
        restored = await registry.get(session.session_id)
        font = await restored.get_custom_font()
        assert font is not None and font.outline_bytes == font_bytes

        overlay = TextOverlay(page_index=0, x=72, y=300, text="Branded caption", font_family="Arial")
        return await restored.bake([overlay])

    baked = _run(scenario)
    with pdf_ops.open_document(baked) as doc:
        assert "Branded caption" in doc[0].get_text()


def test_registry_rebuilds_sessions_from_storage():
    async def scenario(registry):
        session = await registry.create(make_letter_pdf_bytes(), "single.pdf")

        restarted = SessionRegistry(registry.storage, registry.worker)
        restored = await restarted.get(session.session_id)
        assert restored.meta == session.meta
        assert await restored.current_bytes() == await session.current_bytes()
        assert not restored.history.can_undo

        with pytest.raises(SessionNotFoundError) as exc_info:
            await restarted.get("missing")
        assert exc_info.value.status_code == 404
        with pytest.raises(SessionNotFoundError):
            await restarted.get("../escape")

    _run(scenario)


def test_registry_evicts_least_recently_used():
    async def scenario(registry):
        first = await registry.create(make_letter_pdf_bytes(), "one.pdf")
        second = await registry.create(make_letter_pdf_bytes(), "two.pdf")
        await first.apply("Rotate page 0", lambda current: RotatePageCall(document=current, page_index=0))

        await registry.get(first.session_id)
        third = await registry.create(make_letter_pdf_bytes(), "three.pdf")
        assert len(registry) == 2
        assert second.session_id not in registry
        assert first.session_id in registry and third.session_id in registry

        # Evicted sessions come back from storage, without their history.
        restored = await registry.get(second.session_id)
        assert restored is not second
        assert restored.meta.filename == "two.pdf"
        assert not restored.history.can_undo
        assert first.session_id not in registry

    _run(scenario, max_sessions=2)


def test_delete_removes_stored_objects_and_history():
    async def scenario(registry):
        session = await registry.create(make_multipage_pdf_bytes(), "doc.pdf")
        await session.apply("Rotate page 0", lambda current: RotatePageCall(document=current, page_index=0))
        await session.set_custom_font("brand.otf", make_font_bytes())

        await registry.delete(session.session_id)
        assert session.session_id not in registry
        assert not session.history.can_undo
        for key in (session.current_key, session.original_key, session.meta_key, session.font_key):
            assert not registry.storage.exists(key)
        with pytest.raises(SessionNotFoundError):
            await registry.get(session.session_id)

    _run(scenario)
