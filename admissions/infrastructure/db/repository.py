"""
SQL Record Store: drafts and submitted applications.

Handles:
  - one open draft per owner (enforced by a partial unique index)
  - draft autosave and per-slot document metadata
  - idempotent draft → application promotion
  - submitted-application edits

Sessions are blocking; every public coroutine runs its work in a worker
thread via asyncio.to_thread.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admissions.core.entities.application import ApplicationStatus, SubmittedApplication
from admissions.core.entities.document import DocumentSlots, DocumentType
from admissions.core.entities.draft import Draft, DraftStatus, FormSection
from admissions.core.interfaces.record_store import IRecordStore, RecordNotFoundError, RecordStoreError
from admissions.infrastructure.db.database import session_scope
from admissions.infrastructure.db.models import ApplicationRecord, DraftRecord

logger = logging.getLogger(__name__)


class SqlRecordStore(IRecordStore):
    """Record store backed by SQLAlchemy (SQLite or PostgreSQL)."""

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    # ── Port ──────────────────────────────────────────
    async def get_draft_by_owner_email(self, owner_email: str) -> Draft | None:
        return await self._run(self._get_draft_by_owner_email, owner_email)

    async def create_draft(self, draft: Draft) -> Draft:
        return await self._run(self._create_draft, draft)

    async def update_draft(self, draft_id: str, fields: dict) -> None:
        await self._run(self._update_draft, draft_id, fields)

    async def promote_draft_to_submitted(self, draft_id: str, payload: dict) -> SubmittedApplication:
        return await self._run(self._promote, draft_id, payload)

    async def create_submitted(self, application: SubmittedApplication) -> SubmittedApplication:
        return await self._run(self._create_submitted, application)

    async def get_submitted_by_email(self, owner_email: str) -> list[SubmittedApplication]:
        return await self._run(self._get_submitted_by_email, owner_email)

    async def update_submitted_fields(self, application_id: str, fields: dict) -> None:
        await self._run(self._update_submitted_fields, application_id, fields)

    async def delete_document_metadata(self, record_id: str, doc_type: DocumentType, index: int | None = None) -> None:
        await self._run(self._delete_document_metadata, record_id, doc_type, index)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except RecordStoreError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Record store call {fn.__name__} failed: {e}")
            raise RecordStoreError(str(e)) from e

    # ── Drafts ────────────────────────────────────────
    @staticmethod
    def _open_draft(db: Session, owner_email: str) -> DraftRecord | None:
        return (
            db.query(DraftRecord)
            .filter_by(owner_email=owner_email.strip().lower(), status=DraftStatus.DRAFT.value)
            .first()
        )

    def _get_draft_by_owner_email(self, owner_email: str) -> Draft | None:
        with session_scope(self._factory) as db:
            record = self._open_draft(db, owner_email)
            return record.to_entity() if record else None

    def _create_draft(self, draft: Draft) -> Draft:
        try:
            with session_scope(self._factory) as db:
                existing = self._open_draft(db, draft.owner_email)
                if existing:
                    logger.debug(f"Owner {existing.owner_email} already has draft {existing.id}")
                    return existing.to_entity()
                record = DraftRecord.from_entity(draft)
                db.add(record)
                db.flush()
                created = record.to_entity()
        except IntegrityError:
            # Lost a race with another writer for the same owner.
            with session_scope(self._factory) as db:
                existing = self._open_draft(db, draft.owner_email)
                if existing is None:
                    raise
                return existing.to_entity()
        logger.info(f"Saved draft {created.id} for {created.owner_email}")
        return created

    def _update_draft(self, draft_id: str, fields: dict) -> None:
        with session_scope(self._factory) as db:
            record = db.get(DraftRecord, draft_id)
            if record is None:
                raise RecordNotFoundError(f"Draft {draft_id} not found")
            if "form_data" in fields:
                record.form_data = dict(fields["form_data"])
            if "active_section" in fields:
                record.active_section = FormSection(fields["active_section"]).value
            if "last_saved_at" in fields:
                record.last_saved_at = fields["last_saved_at"]
            if "documents" in fields:
                record.documents = fields["documents"].to_dict()
            if "document_slot" in fields:
                record.documents = _replace_slot(record.documents, *fields["document_slot"])

    # ── Applications ──────────────────────────────────
    def _promote(self, draft_id: str, payload: dict) -> SubmittedApplication:
        try:
            with session_scope(self._factory) as db:
                existing = db.query(ApplicationRecord).filter_by(draft_id=draft_id).first()
                if existing:
                    logger.info(f"Draft {draft_id} already promoted to {existing.id}")
                    return existing.to_entity()
                draft = db.get(DraftRecord, draft_id)
                if draft is None:
                    raise RecordNotFoundError(f"Draft {draft_id} not found")

                now = datetime.now(timezone.utc)
                record = ApplicationRecord(
                    id=str(uuid.uuid4()),
                    draft_id=draft.id,
                    owner_email=draft.owner_email,
                    owner_id=draft.owner_id,
                    status=ApplicationStatus.APPLIED.value,
                    form_data=dict(payload.get("formData") or draft.form_data or {}),
                    payload=dict(payload),
                    documents=dict(draft.documents or {}),
                    missing_documents=[],
                    submitted_at=now,
                    updated_at=now,
                )
                db.add(record)
                draft.status = DraftStatus.SUBMITTED.value
                draft.submitted_application_id = record.id
                db.flush()
                promoted = record.to_entity()
        except IntegrityError:
            with session_scope(self._factory) as db:
                existing = db.query(ApplicationRecord).filter_by(draft_id=draft_id).first()
                if existing is None:
                    raise
                return existing.to_entity()
        logger.info(f"Promoted draft {draft_id} to application {promoted.id}")
        return promoted

    def _create_submitted(self, application: SubmittedApplication) -> SubmittedApplication:
        with session_scope(self._factory) as db:
            record = ApplicationRecord.from_entity(application)
            db.add(record)
            db.flush()
            created = record.to_entity()
        logger.info(f"Saved application {created.id} for {created.owner_email}")
        return created

    def _get_submitted_by_email(self, owner_email: str) -> list[SubmittedApplication]:
        with session_scope(self._factory) as db:
            records = (
                db.query(ApplicationRecord)
                .filter_by(owner_email=owner_email.strip().lower())
                .order_by(desc(ApplicationRecord.submitted_at))
                .all()
            )
            return [r.to_entity() for r in records]

    def _update_submitted_fields(self, application_id: str, fields: dict) -> None:
        with session_scope(self._factory) as db:
            record = db.get(ApplicationRecord, application_id)
            if record is None:
                raise RecordNotFoundError(f"Application {application_id} not found")
            if "form_data" in fields:
                record.form_data = dict(fields["form_data"])
            if "documents" in fields:
                record.documents = fields["documents"].to_dict()
            if "document_slot" in fields:
                record.documents = _replace_slot(record.documents, *fields["document_slot"])
            if "status" in fields:
                record.status = ApplicationStatus(fields["status"]).value
            if "missing_documents" in fields:
                record.missing_documents = list(fields["missing_documents"])
            record.updated_at = datetime.now(timezone.utc)

    # ── Documents ─────────────────────────────────────
    def _delete_document_metadata(self, record_id: str, doc_type: DocumentType, index: int | None) -> None:
        with session_scope(self._factory) as db:
            record = db.get(DraftRecord, record_id) or db.get(ApplicationRecord, record_id)
            if record is None:
                raise RecordNotFoundError(f"No draft or application {record_id}")
            slots = DocumentSlots.from_dict(record.documents)
            items = slots.get(doc_type)
            if doc_type.is_multi_slot:
                if index is None or not 0 <= index < len(items):
                    raise RecordNotFoundError(f"No {doc_type.value} at index {index} on {record_id}")
                del items[index]
            else:
                items = []
            slots.set(doc_type, items)
            record.documents = slots.to_dict()
            logger.info(f"Deleted {doc_type.value} metadata from {record_id}")


def _replace_slot(documents: dict | None, doc_type: DocumentType, items: list) -> dict:
    slots = DocumentSlots.from_dict(documents)
    slots.set(doc_type, list(items))
    return slots.to_dict()
