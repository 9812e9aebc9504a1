"""
DocumentSlotManager: per-slot upload/removal with capacity checks and
exact rollback.
"""
import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from admissions.core.entities.document import DocumentMetadata, DocumentSlots, DocumentType
from admissions.core.entities.draft import Draft
from admissions.core.entities.form_state import ApplicationFormState
from admissions.core.use_cases.document_slots import DocumentOwner, DocumentSlotManager, OwnerKind, SlotError

from tests.conftest import OWNER_EMAIL, OWNER_ID

MB = 1024 * 1024
PHOTO = DocumentType.PASSPORT_PHOTO
ID_DOC = DocumentType.IDENTIFICATION_DOCUMENT
ACADEMIC = DocumentType.ACADEMIC_DOCUMENTS


@pytest.fixture
async def draft(record_store):
    return await record_store.create_draft(Draft(id="", owner_email=OWNER_EMAIL, owner_id=OWNER_ID))


@pytest.fixture
def manager(record_store, blob_store, state, draft):
    state.adopt_draft_id(draft.id)

    async def resolve():
        return DocumentOwner(OwnerKind.DRAFT, draft.id)

    return DocumentSlotManager(record_store, blob_store, state, owner_resolver=resolve)


def reset_counters(*stores):
    for store in stores:
        store.calls.clear()


class TestCapacity:

    @pytest.mark.asyncio
    async def test_over_cap_rejected_before_any_network_call(
        self, manager, state, record_store, blob_store, make_file, make_metadata,
    ):
        state.set_documents(DocumentSlots(academic_documents=[make_metadata(f"t{i}.pdf") for i in range(3)]))
        reset_counters(record_store, blob_store)
        files = [make_file(f"new{i}.pdf", content_type="application/pdf") for i in range(4)]
        result = await manager.upload(ACADEMIC, files)
        assert not result.success
        assert result.code is SlotError.CAPACITY
        assert result.remaining_capacity == 2
        assert blob_store.network_calls == 0
        assert sum(record_store.calls.values()) == 0
        assert state.documents.count(ACADEMIC) == 3

    @pytest.mark.asyncio
    async def test_filling_up_to_the_cap(self, manager, state, make_file, make_metadata, record_store, draft):
        state.set_documents(DocumentSlots(academic_documents=[make_metadata(f"t{i}.pdf") for i in range(3)]))
        files = [make_file(f"new{i}.pdf", content_type="application/pdf") for i in range(2)]
        result = await manager.upload(ACADEMIC, files)
        assert result.success
        assert result.remaining_capacity == 0
        assert [d.file_name for d in result.documents][-2:] == ["new0.pdf", "new1.pdf"]
        assert record_store.drafts[draft.id].documents.count(ACADEMIC) == 5

    @given(existing=st.integers(min_value=0, max_value=8), incoming=st.integers(min_value=1, max_value=8))
    def test_capacity_arithmetic(self, existing, incoming):
        state = ApplicationFormState()
        state.set_documents(DocumentSlots(academic_documents=[
            DocumentMetadata(file_name=f"{i}.pdf", size_bytes=1, url=f"u{i}", owner_id="d") for i in range(existing)
        ]))
        manager = DocumentSlotManager(None, None, state, owner_resolver=None, multi_slot_cap=5)
        remaining = manager.check_capacity(ACADEMIC, incoming)
        if existing + incoming > 5:
            assert remaining == max(0, 5 - existing)
        else:
            assert remaining is None
        assert manager.check_capacity(PHOTO, incoming) is None


class TestFileChecks:

    @pytest.mark.asyncio
    async def test_single_slot_accepts_one_file(self, manager, make_file):
        result = await manager.upload(PHOTO, [make_file("a.jpg"), make_file("b.jpg")])
        assert result.code is SlotError.TOO_MANY_FILES

    @pytest.mark.asyncio
    async def test_photo_size_limit(self, manager, make_file, blob_store):
        result = await manager.upload(PHOTO, make_file("big.jpg", size=5 * MB + 1))
        assert result.code is SlotError.TOO_LARGE
        assert blob_store.network_calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_type(self, manager, make_file):
        result = await manager.upload(PHOTO, make_file("photo.pdf", content_type="application/pdf"))
        assert result.code is SlotError.UNSUPPORTED_TYPE

    @pytest.mark.asyncio
    async def test_empty_file(self, manager, make_file):
        result = await manager.upload(ID_DOC, make_file("id.pdf", size=0, content_type="application/pdf"))
        assert result.code is SlotError.EMPTY_FILE


class TestUpload:

    @pytest.mark.asyncio
    async def test_single_slot_replaces_and_discards_old_blob(self, manager, state, blob_store, make_file):
        first = await manager.upload(PHOTO, make_file("old.jpg"))
        old_url = first.documents[0].url
        second = await manager.upload(PHOTO, make_file("new.png", content_type="image/png"))
        assert second.success
        assert [d.file_name for d in state.documents.get(PHOTO)] == ["new.png"]
        assert len(blob_store.objects) == 1
        assert old_url not in [f"{blob_store.base_url}/{p}" for p in blob_store.objects]

    @pytest.mark.asyncio
    async def test_metadata_persisted_immediately(self, manager, record_store, draft, make_file):
        await manager.upload(ID_DOC, make_file("id.pdf", content_type="application/pdf"))
        stored = record_store.drafts[draft.id].documents.get(ID_DOC)
        assert [d.file_name for d in stored] == ["id.pdf"]
        assert stored[0].storage_path.startswith(f"applications/{draft.id}/documents/identificationDocument_")
        assert record_store.calls["update_draft"] == 1

    @pytest.mark.asyncio
    async def test_blob_failure_rolls_back(self, manager, state, record_store, blob_store, make_file, make_metadata):
        state.set_documents(DocumentSlots(academic_documents=[make_metadata("keep.pdf")]))
        blob_store.fail_next("put_object")
        result = await manager.upload(ACADEMIC, [make_file("a.pdf", content_type="application/pdf")])
        assert not result.success and result.code is SlotError.UPSTREAM
        assert [d.file_name for d in state.documents.academic_documents] == ["keep.pdf"]
        assert record_store.calls["update_draft"] == 0
        assert not manager.slot_state(ACADEMIC).busy

    @pytest.mark.asyncio
    async def test_metadata_failure_rolls_back_and_discards_new_blobs(
        self, manager, state, record_store, blob_store, make_file,
    ):
        record_store.fail_next("update_draft")
        files = [make_file(f"{i}.pdf", content_type="application/pdf") for i in range(2)]
        result = await manager.upload(ACADEMIC, files)
        assert not result.success
        assert state.documents.count(ACADEMIC) == 0
        assert blob_store.objects == {}
        assert blob_store.calls["delete_object"] == 2

    @pytest.mark.asyncio
    async def test_second_operation_on_busy_slot_is_rejected(self, manager, blob_store, make_file):
        blob_store.gate = asyncio.Event()
        first = asyncio.create_task(manager.upload(PHOTO, make_file("a.jpg")))
        await asyncio.sleep(0.01)
        assert manager.slot_state(PHOTO).loading
        second = await manager.upload(PHOTO, make_file("b.jpg"))
        assert second.busy and second.code is SlotError.BUSY
        blob_store.gate.set()
        assert (await first).success

    @pytest.mark.asyncio
    async def test_other_slots_stay_usable_while_one_is_busy(self, manager, state, blob_store, make_file):
        blob_store.gate = asyncio.Event()
        photo = asyncio.create_task(manager.upload(PHOTO, make_file("a.jpg")))
        await asyncio.sleep(0.01)
        ident = asyncio.create_task(manager.upload(ID_DOC, make_file("id.pdf", content_type="application/pdf")))
        await asyncio.sleep(0.01)
        blob_store.gate.set()
        assert (await photo).success and (await ident).success
        assert state.documents.count(PHOTO) == 1
        assert state.documents.count(ID_DOC) == 1


class TestRemove:

    @pytest.mark.asyncio
    async def test_remove_by_index(self, manager, state, record_store, make_file):
        files = [make_file(f"{i}.pdf", content_type="application/pdf") for i in range(3)]
        await manager.upload(ACADEMIC, files)
        result = await manager.remove(ACADEMIC, 1)
        assert result.success
        assert [d.file_name for d in state.documents.academic_documents] == ["0.pdf", "2.pdf"]
        assert record_store.calls["delete_document_metadata"] == 1
        assert result.remaining_capacity == 3

    @pytest.mark.asyncio
    async def test_invalid_index(self, manager, make_file):
        await manager.upload(ACADEMIC, [make_file("a.pdf", content_type="application/pdf")])
        assert (await manager.remove(ACADEMIC, 3)).code is SlotError.INVALID_INDEX
        assert (await manager.remove(ACADEMIC)).code is SlotError.INVALID_INDEX

    @pytest.mark.asyncio
    async def test_nothing_to_remove(self, manager):
        assert (await manager.remove(PHOTO)).code is SlotError.NOTHING_TO_REMOVE

    @pytest.mark.asyncio
    async def test_failed_removal_restores_slot(self, manager, state, record_store, blob_store, make_file):
        await manager.upload(PHOTO, make_file("a.jpg"))
        record_store.fail_next("delete_document_metadata")
        result = await manager.remove(PHOTO)
        assert not result.success
        assert [d.file_name for d in state.documents.get(PHOTO)] == ["a.jpg"]
        assert len(blob_store.objects) == 1

    @pytest.mark.asyncio
    async def test_summary(self, manager, make_file):
        await manager.upload(PHOTO, make_file("a.jpg"))
        summary = {s.doc_type: s for s in manager.slot_summary()}
        assert not summary[PHOTO].missing
        assert summary[ID_DOC].missing
        assert summary[ACADEMIC].remaining_capacity == 5
