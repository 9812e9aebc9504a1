"""
Adapter: In-Memory Record Store

Process-local IRecordStore for tests and demos. Every call is counted in
``calls``; failures can be injected per method with ``fail_next`` or for
everything with ``offline``.
"""

import asyncio
import copy
import itertools
from collections import Counter
from datetime import datetime, timezone

from admissions.core.entities.application import ApplicationStatus, SubmittedApplication
from admissions.core.entities.document import DocumentSlots, DocumentType
from admissions.core.entities.draft import Draft, DraftStatus, FormSection
from admissions.core.interfaces.record_store import IRecordStore, RecordNotFoundError, RecordStoreError


class InMemoryRecordStore(IRecordStore):

    def __init__(self, latency: float = 0.0):
        self.drafts: dict[str, Draft] = {}
        self.applications: dict[str, SubmittedApplication] = {}
        self.calls: Counter = Counter()
        self.latency = latency
        self.offline = False
        self._failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    # ── Failure injection ─────────────────────────────
    def fail_next(self, method: str, error: Exception | None = None, times: int = 1) -> None:
        queue = self._failures.setdefault(method, [])
        for _ in range(times):
            queue.append(error or RecordStoreError(f"{method} failed"))

    async def _enter(self, method: str) -> None:
        self.calls[method] += 1
        await asyncio.sleep(self.latency)
        if self.offline:
            raise RecordStoreError("record store unreachable")
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    # ── Drafts ────────────────────────────────────────
    def open_drafts(self, owner_email: str) -> list[Draft]:
        key = owner_email.strip().lower()
        return [d for d in self.drafts.values() if d.owner_email == key and d.status is DraftStatus.DRAFT]

    async def get_draft_by_owner_email(self, owner_email: str) -> Draft | None:
        await self._enter("get_draft_by_owner_email")
        found = self.open_drafts(owner_email)
        return copy.deepcopy(found[0]) if found else None

    async def create_draft(self, draft: Draft) -> Draft:
        await self._enter("create_draft")
        existing = self.open_drafts(draft.owner_email)
        if existing:
            return copy.deepcopy(existing[0])
        stored = copy.deepcopy(draft)
        stored.id = draft.id or self._next_id("draft")
        stored.owner_email = draft.owner_email.strip().lower()
        stored.status = DraftStatus.DRAFT
        self.drafts[stored.id] = stored
        return copy.deepcopy(stored)

    async def update_draft(self, draft_id: str, fields: dict) -> None:
        await self._enter("update_draft")
        draft = self.drafts.get(draft_id)
        if draft is None:
            raise RecordNotFoundError(f"Draft {draft_id} not found")
        if "form_data" in fields:
            draft.form_data = dict(fields["form_data"])
        if "active_section" in fields:
            draft.active_section = FormSection(fields["active_section"])
        if "last_saved_at" in fields:
            draft.last_saved_at = fields["last_saved_at"]
        if "documents" in fields:
            draft.documents = fields["documents"].copy()
        if "document_slot" in fields:
            doc_type, items = fields["document_slot"]
            draft.documents.set(doc_type, list(items))

    # ── Applications ──────────────────────────────────
    async def promote_draft_to_submitted(self, draft_id: str, payload: dict) -> SubmittedApplication:
        await self._enter("promote_draft_to_submitted")
        for app in self.applications.values():
            if app.draft_id == draft_id:
                return copy.deepcopy(app)
        draft = self.drafts.get(draft_id)
        if draft is None:
            raise RecordNotFoundError(f"Draft {draft_id} not found")
        now = datetime.now(timezone.utc)
        app = SubmittedApplication(
            id=self._next_id("app"),
            owner_email=draft.owner_email,
            owner_id=draft.owner_id,
            form_data=dict(payload.get("formData") or draft.form_data),
            payload=dict(payload),
            status=ApplicationStatus.APPLIED,
            submitted_at=now,
            updated_at=now,
            documents=draft.documents.copy(),
            draft_id=draft_id,
        )
        self.applications[app.id] = app
        draft.status = DraftStatus.SUBMITTED
        return copy.deepcopy(app)

    async def create_submitted(self, application: SubmittedApplication) -> SubmittedApplication:
        await self._enter("create_submitted")
        stored = copy.deepcopy(application)
        stored.id = application.id or self._next_id("app")
        stored.owner_email = application.owner_email.strip().lower()
        self.applications[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_submitted_by_email(self, owner_email: str) -> list[SubmittedApplication]:
        await self._enter("get_submitted_by_email")
        key = owner_email.strip().lower()
        found = [a for a in self.applications.values() if a.owner_email == key]
        found.sort(key=lambda a: a.submitted_at, reverse=True)
        return copy.deepcopy(found)

    async def update_submitted_fields(self, application_id: str, fields: dict) -> None:
        await self._enter("update_submitted_fields")
        app = self.applications.get(application_id)
        if app is None:
            raise RecordNotFoundError(f"Application {application_id} not found")
        if "form_data" in fields:
            app.form_data = dict(fields["form_data"])
        if "documents" in fields:
            app.documents = fields["documents"].copy()
        if "document_slot" in fields:
            doc_type, items = fields["document_slot"]
            app.documents.set(doc_type, list(items))
        if "status" in fields:
            app.status = ApplicationStatus(fields["status"])
        if "missing_documents" in fields:
            app.missing_documents = list(fields["missing_documents"])
        app.updated_at = datetime.now(timezone.utc)

    async def delete_document_metadata(self, record_id: str, doc_type: DocumentType, index: int | None = None) -> None:
        await self._enter("delete_document_metadata")
        record = self.drafts.get(record_id) or self.applications.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"No draft or application {record_id}")
        slots: DocumentSlots = record.documents
        items = slots.get(doc_type)
        if doc_type.is_multi_slot:
            if index is None or not 0 <= index < len(items):
                raise RecordNotFoundError(f"No {doc_type.value} at index {index} on {record_id}")
            del items[index]
        else:
            items = []
        slots.set(doc_type, items)
