"""
Use Case: Application Session

Wires one ApplicationFormState to the draft session, the document slots
and the submission pipeline for a single authenticated owner. This is the
surface the HTTP layer talks to.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from admissions.core.entities.application import ProgressSummary, SubmittedApplication, progress_summary
from admissions.core.entities.document import DocumentFile, DocumentType
from admissions.core.entities.draft import FormSection
from admissions.core.entities.form_state import ApplicationFormState
from admissions.core.interfaces.blob_store import IBlobStore
from admissions.core.interfaces.compression_service import ICompressionService
from admissions.core.interfaces.identity_provider import IIdentityProvider, Identity
from admissions.core.interfaces.local_fallback_store import ILocalFallbackStore
from admissions.core.interfaces.record_store import IRecordStore
from admissions.core.use_cases.document_slots import (
    DocumentOwner,
    DocumentSlotManager,
    OwnerKind,
    SlotError,
    SlotOperationResult,
)
from admissions.core.use_cases.draft_session import DraftSessionManager, HydrationResult, SaveResult
from admissions.core.use_cases.progress_tracker import ProgressSnapshot, ProgressTracker
from admissions.core.use_cases.submit_application import SubmissionPipeline, SubmissionResult
from admissions.core.use_cases.validation import validate_section

logger = logging.getLogger(__name__)


@dataclass
class SessionStart:
    identity: Identity
    hydration: HydrationResult
    view_mode: bool = False
    application: SubmittedApplication | None = None


@dataclass
class SectionUpdateResult:
    success: bool
    application_id: str
    section: FormSection
    form_data: dict = field(default_factory=dict)
    errors: list[dict] = field(default_factory=list)
    message: str = ""
    not_found: bool = False


class ApplicationSession:
    """
    Use Case: one owner's application form from first edit to submission.

    Every collaborator is injected; building them from Settings happens in
    the API layer.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        fallback_store: ILocalFallbackStore,
        identity_provider: IIdentityProvider,
        compression_service: ICompressionService | None = None,
        quiet_period: float = 1.5,
        multi_slot_cap: int = 5,
        max_document_size_mb: float = 10,
        max_photo_size_mb: float = 5,
        tick_interval: float = 0.5,
        tick_increment: int = 8,
        simulated_ceiling: int = 90,
        settle_delay: float = 0.5,
        savings_notice_ratio: float = 0.10,
        clock: Callable[[], datetime] | None = None,
    ):
        self._records = record_store
        self._identity = identity_provider
        self.state = ApplicationFormState()
        self.tracker = ProgressTracker()
        clock = clock or (lambda: datetime.now(timezone.utc))

        self.drafts = DraftSessionManager(
            record_store, fallback_store, self.state, quiet_period=quiet_period, clock=clock,
        )
        self.documents = DocumentSlotManager(
            record_store,
            blob_store,
            self.state,
            owner_resolver=self._resolve_owner,
            multi_slot_cap=multi_slot_cap,
            max_document_size_mb=max_document_size_mb,
            max_photo_size_mb=max_photo_size_mb,
            clock=clock,
        )
        self.pipeline = SubmissionPipeline(
            record_store,
            blob_store,
            self.state,
            self.tracker,
            compression_service=compression_service,
            tick_interval=tick_interval,
            tick_increment=tick_increment,
            simulated_ceiling=simulated_ceiling,
            settle_delay=settle_delay,
            savings_notice_ratio=savings_notice_ratio,
            clock=clock,
        )

    # ── Lifecycle ─────────────────────────────────────
    async def start(self) -> SessionStart:
        """
        Hydrates the form for the authenticated owner.

        When the owner has no open draft but already submitted, the latest
        application is loaded in view mode instead.
        """
        identity = await self._identity.get_identity()
        profile = await self._identity.get_profile()
        hydration = await self.drafts.hydrate(identity, profile)

        if hydration.success and hydration.draft is None:
            try:
                submitted = await self._records.get_submitted_by_email(identity.email)
            except Exception as e:
                logger.warning(f"Could not check submitted applications of {identity.email}: {e}")
                submitted = []
            if submitted:
                latest = submitted[0]
                self.state.replace_form_data(latest.form_data)
                self.state.set_documents(latest.documents.copy())
                self.state.mark_submitted(latest.id)
                self.drafts.enter_view_mode()
                logger.info(f"Session for {identity.email} opened application {latest.id} in view mode")
                return SessionStart(identity, hydration, view_mode=True, application=latest)

        return SessionStart(identity, hydration)

    async def close(self) -> None:
        await self.drafts.close()
        await self.pipeline.close()

    # ── Editing ───────────────────────────────────────
    def change_field(self, name: str, value) -> bool:
        return self.drafts.on_field_change(name, value)

    def change_fields(self, values: dict) -> bool:
        return self.drafts.on_fields_change(values)

    async def change_section(self, section: FormSection) -> SaveResult | None:
        return await self.drafts.change_section(section)

    # ── Documents ─────────────────────────────────────
    async def upload_documents(self, doc_type: DocumentType, files: list[DocumentFile]) -> SlotOperationResult:
        return await self.documents.upload(doc_type, files)

    async def remove_document(self, doc_type: DocumentType, index: int | None = None) -> SlotOperationResult:
        return await self.documents.remove(doc_type, index)

    def stage_files(self, doc_type: DocumentType, files: list[DocumentFile]) -> tuple[SlotError, str] | None:
        """Queues files for upload at submission time. Returns (code, message) on rejection."""
        if self.state.is_submitting or self.state.is_submitted:
            return SlotError.BUSY, "This application has already been submitted."
        problem = self.documents.check_files(doc_type, files)
        if problem:
            return problem
        queued = len(self.state.pending_files.get(doc_type, [])) if doc_type.is_multi_slot else 0
        remaining = self.documents.check_capacity(doc_type, queued + len(files))
        if remaining is not None:
            return SlotError.CAPACITY, f"Only {max(0, remaining - queued)} more {doc_type.label.lower()} can be added."
        self.state.stage_files(doc_type, files)
        return None

    async def _resolve_owner(self) -> DocumentOwner:
        if self.state.application_id:
            return DocumentOwner(OwnerKind.APPLICATION, self.state.application_id)
        draft = await self.drafts.ensure_draft(self.state.owner_email, self.state.owner_id)
        return DocumentOwner(OwnerKind.DRAFT, draft.id)

    # ── Submission ────────────────────────────────────
    async def submit(self) -> SubmissionResult:
        self.drafts.cancel_pending()
        result = await self.pipeline.submit()
        if result.success:
            self.drafts.enter_view_mode()
        return result

    def cancel_submission(self) -> bool:
        return self.pipeline.cancel()

    def progress(self) -> ProgressSnapshot:
        return self.tracker.snapshot()

    # ── Submitted applications ────────────────────────
    async def list_applications(self) -> list[tuple[SubmittedApplication, ProgressSummary]]:
        """Owner's applications, newest first, each with its progress summary."""
        applications = await self._records.get_submitted_by_email(self.state.owner_email)
        return [(app, progress_summary(app)) for app in applications]

    async def update_application_section(
        self,
        application_id: str,
        section: FormSection,
        values: dict,
    ) -> SectionUpdateResult:
        """Edits one section of a submitted application after validating it."""
        applications = await self._records.get_submitted_by_email(self.state.owner_email)
        application = next((a for a in applications if a.id == application_id), None)
        if application is None:
            return SectionUpdateResult(
                success=False,
                application_id=application_id,
                section=section,
                not_found=True,
                message="Application not found.",
            )

        merged = {**application.form_data, **values}
        report = validate_section(section, merged)
        if not report.ok:
            return SectionUpdateResult(
                success=False,
                application_id=application_id,
                section=section,
                form_data=application.form_data,
                errors=report.as_dict().get(section.value, []),
                message="Please correct the highlighted fields.",
            )

        await self._records.update_submitted_fields(application_id, {"form_data": merged})
        if self.state.application_id == application_id:
            self.state.replace_form_data(merged)
        logger.info(f"Updated {section.value} section of application {application_id}")
        return SectionUpdateResult(
            success=True,
            application_id=application_id,
            section=section,
            form_data=merged,
            message="Changes saved.",
        )
