"""
SqlRecordStore against a throwaway SQLite database.
"""
import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from admissions.core.entities.application import ApplicationStatus, SubmittedApplication
from admissions.core.entities.document import DocumentSlots, DocumentType
from admissions.core.entities.draft import Draft, DraftStatus, FormSection
from admissions.core.interfaces.record_store import RecordNotFoundError, RecordStoreError
from admissions.infrastructure.db.database import create_db_engine, create_session_factory, init_db, session_scope
from admissions.infrastructure.db.models import DraftRecord
from admissions.infrastructure.db.repository import SqlRecordStore

from tests.conftest import OWNER_EMAIL, OWNER_ID

ACADEMIC = DocumentType.ACADEMIC_DOCUMENTS


@pytest.fixture
def store(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'admissions.db'}")
    init_db(engine)
    yield SqlRecordStore(create_session_factory(engine))
    engine.dispose()


def new_draft(**kwargs) -> Draft:
    return Draft(id="", owner_email=kwargs.pop("owner_email", OWNER_EMAIL), owner_id=OWNER_ID, **kwargs)


class TestDrafts:

    @pytest.mark.asyncio
    async def test_create_and_load(self, store):
        created = await store.create_draft(new_draft(form_data={"firstName": "Amina"}))
        loaded = await store.get_draft_by_owner_email("  Amina.Amin@Example.com ")
        assert loaded.id == created.id
        assert loaded.form_data == {"firstName": "Amina"}
        assert loaded.status is DraftStatus.DRAFT

    @pytest.mark.asyncio
    async def test_one_open_draft_per_owner(self, store):
        first = await store.create_draft(new_draft())
        second = await store.create_draft(new_draft(form_data={"x": 1}))
        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_concurrent_creates_converge(self, store):
        results = await asyncio.gather(*(store.create_draft(new_draft()) for _ in range(4)))
        assert len({d.id for d in results}) == 1

    @pytest.mark.asyncio
    async def test_update_fields(self, store, make_metadata):
        draft = await store.create_draft(new_draft())
        saved_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        await store.update_draft(draft.id, {
            "form_data": {"firstName": "Amina", "phone": "+254 712 345 678"},
            "active_section": FormSection.PROGRAM,
            "last_saved_at": saved_at,
        })
        await store.update_draft(draft.id, {"document_slot": (ACADEMIC, [make_metadata("t.pdf", draft.id)])})
        loaded = await store.get_draft_by_owner_email(OWNER_EMAIL)
        assert loaded.active_section is FormSection.PROGRAM
        assert loaded.last_saved_at == saved_at
        assert loaded.form_data["phone"] == "+254 712 345 678"
        assert [d.file_name for d in loaded.documents.academic_documents] == ["t.pdf"]

    @pytest.mark.asyncio
    async def test_update_unknown_draft(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.update_draft("nope", {"form_data": {}})


class TestApplications:

    @pytest.mark.asyncio
    async def test_promotion_is_idempotent(self, store, make_metadata):
        draft = await store.create_draft(new_draft(form_data={"firstName": "Amina"}))
        await store.update_draft(draft.id, {"documents": DocumentSlots(academic_documents=[make_metadata("t.pdf")])})

        first = await store.promote_draft_to_submitted(draft.id, {"formData": {"firstName": "Amina"}})
        second = await store.promote_draft_to_submitted(draft.id, {"formData": {"firstName": "Other"}})
        assert first.id == second.id
        assert first.draft_id == draft.id
        assert first.documents.count(ACADEMIC) == 1
        assert await store.get_draft_by_owner_email(OWNER_EMAIL) is None
        assert len(await store.get_submitted_by_email(OWNER_EMAIL)) == 1

    @pytest.mark.asyncio
    async def test_new_draft_allowed_after_promotion(self, store):
        draft = await store.create_draft(new_draft())
        await store.promote_draft_to_submitted(draft.id, {})
        fresh = await store.create_draft(new_draft())
        assert fresh.id != draft.id

    @pytest.mark.asyncio
    async def test_promote_unknown_draft(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.promote_draft_to_submitted("missing", {})

    @pytest.mark.asyncio
    async def test_listing_is_newest_first(self, store):
        for day in (1, 3, 2):
            await store.create_submitted(SubmittedApplication(
                id="",
                owner_email=OWNER_EMAIL,
                owner_id=OWNER_ID,
                form_data={"day": day},
                submitted_at=datetime(2026, 1, day, tzinfo=timezone.utc),
            ))
        await store.create_submitted(SubmittedApplication(id="", owner_email="else@example.com", owner_id="u2"))
        listed = await store.get_submitted_by_email(OWNER_EMAIL)
        assert [a.form_data["day"] for a in listed] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_update_submitted_fields(self, store):
        app = await store.create_submitted(SubmittedApplication(id="", owner_email=OWNER_EMAIL, owner_id=OWNER_ID))
        await store.update_submitted_fields(app.id, {
            "status": ApplicationStatus.MISSING_DOCUMENT,
            "missing_documents": ["passportPhoto"],
            "form_data": {"modeOfStudy": "part-time"},
        })
        (loaded,) = await store.get_submitted_by_email(OWNER_EMAIL)
        assert loaded.status is ApplicationStatus.MISSING_DOCUMENT
        assert loaded.missing_documents == ["passportPhoto"]
        assert loaded.form_data == {"modeOfStudy": "part-time"}
        assert loaded.updated_at >= app.updated_at


class TestDocumentMetadata:

    @pytest.mark.asyncio
    async def test_delete_by_index(self, store, make_metadata):
        draft = await store.create_draft(new_draft())
        docs = [make_metadata(n, draft.id) for n in ("a.pdf", "b.pdf", "c.pdf")]
        await store.update_draft(draft.id, {"document_slot": (ACADEMIC, docs)})
        await store.delete_document_metadata(draft.id, ACADEMIC, 1)
        loaded = await store.get_draft_by_owner_email(OWNER_EMAIL)
        assert [d.file_name for d in loaded.documents.academic_documents] == ["a.pdf", "c.pdf"]

    @pytest.mark.asyncio
    async def test_delete_single_slot_on_application(self, store, make_metadata):
        app = await store.create_submitted(SubmittedApplication(
            id="", owner_email=OWNER_EMAIL, owner_id=OWNER_ID,
            documents=DocumentSlots(passport_photo=make_metadata("me.jpg")),
        ))
        await store.delete_document_metadata(app.id, DocumentType.PASSPORT_PHOTO)
        (loaded,) = await store.get_submitted_by_email(OWNER_EMAIL)
        assert loaded.documents.passport_photo is None

    @pytest.mark.asyncio
    async def test_delete_bad_index(self, store):
        draft = await store.create_draft(new_draft())
        with pytest.raises(RecordNotFoundError):
            await store.delete_document_metadata(draft.id, ACADEMIC, 0)


@pytest.mark.asyncio
async def test_driver_errors_become_record_store_errors(tmp_path):
    # tables never created
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = SqlRecordStore(sessionmaker(bind=engine))
    with pytest.raises(RecordStoreError):
        await store.get_draft_by_owner_email(OWNER_EMAIL)
    engine.dispose()


class TestSessionScope:

    def test_error_rolls_back_the_unit_of_work(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'scope.db'}")
        init_db(engine)
        init_db(engine)  # idempotent
        factory = create_session_factory(engine)
        with pytest.raises(RuntimeError):
            with session_scope(factory) as db:
                db.add(DraftRecord(owner_email=OWNER_EMAIL, owner_id=OWNER_ID))
                db.flush()
                raise RuntimeError("boom")
        with session_scope(factory) as db:
            assert db.query(DraftRecord).count() == 0
        engine.dispose()

    def test_commits_on_success(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'scope.db'}")
        init_db(engine)
        factory = create_session_factory(engine)
        with session_scope(factory) as db:
            db.add(DraftRecord(owner_email=OWNER_EMAIL, owner_id=OWNER_ID))
        with session_scope(factory) as db:
            assert db.query(DraftRecord).count() == 1
        engine.dispose()
