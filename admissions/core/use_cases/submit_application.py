"""
Use Case: Submit Application

Orchestrates: Validation → Preparing → (Compressing) → Record → Uploading
→ Finalizing → Completed, with Error reachable from any stage.

The submitted record is created (or promoted from the draft) before any
document bytes move. New files are then uploaded by a detached background
task; a simulated ticker keeps per-file progress moving until the real
result for each file arrives and locks it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from admissions.core.entities.application import (
    ApplicationStatus,
    SubmittedApplication,
    build_application_payload,
)
from admissions.core.entities.document import (
    DocumentFile,
    DocumentMetadata,
    DocumentType,
    build_storage_path,
)
from admissions.core.entities.form_state import ApplicationFormState
from admissions.core.interfaces.blob_store import IBlobStore
from admissions.core.interfaces.compression_service import ICompressionService
from admissions.core.interfaces.record_store import IRecordStore
from admissions.core.use_cases.progress_tracker import (
    STAGE_MESSAGES,
    ProgressTracker,
    SubmissionStage,
)
from admissions.core.use_cases.validation import validate_application

logger = logging.getLogger(__name__)

TERMINAL_STAGES = (SubmissionStage.COMPLETED, SubmissionStage.ERROR)


@dataclass
class FileUploadOutcome:
    key: str
    doc_type: DocumentType
    file_name: str
    success: bool
    metadata: DocumentMetadata | None = None
    error: str | None = None


@dataclass
class SubmissionResult:
    success: bool
    stage: SubmissionStage
    application_id: str | None = None
    message: str = ""
    promoted: bool = False
    uploads_pending: bool = False
    already_submitted: bool = False
    validation_errors: dict = field(default_factory=dict)
    savings_notice: str | None = None


class SubmissionPipeline:
    """
    Use Case: submits the form state held in ``state``.

    Dependency Injection: every collaborator comes through the
    constructor; compression is optional.
    """

    def __init__(
        self,
        record_store: IRecordStore,
        blob_store: IBlobStore,
        state: ApplicationFormState,
        tracker: ProgressTracker,
        compression_service: ICompressionService | None = None,
        tick_interval: float = 0.5,
        tick_increment: int = 8,
        simulated_ceiling: int = 90,
        settle_delay: float = 0.5,
        savings_notice_ratio: float = 0.10,
        clock: Callable[[], datetime] | None = None,
    ):
        self._records = record_store
        self._blobs = blob_store
        self._state = state
        self._tracker = tracker
        self._compressor = compression_service
        self._tick_interval = tick_interval
        self._tick_increment = tick_increment
        self._ceiling = simulated_ceiling
        self._settle_delay = settle_delay
        self._savings_notice_ratio = savings_notice_ratio
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._background: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._cancelled = False
        self.last_outcomes: list[FileUploadOutcome] = []

    @property
    def is_submitting(self) -> bool:
        return self._state.is_submitting

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    # ── Entry point ───────────────────────────────────
    async def submit(self) -> SubmissionResult:
        """
        Runs the pipeline up to the moment the submitted record exists.

        When new files must be uploaded the call returns with
        ``uploads_pending=True`` and the rest runs in the background; use
        ``wait_until_settled`` to await it.
        """
        if self._state.is_submitting:
            return SubmissionResult(
                success=False,
                stage=self._tracker.stage,
                message="Your application is already being submitted.",
            )
        if self._state.is_submitted and self._state.application_id:
            return SubmissionResult(
                success=True,
                stage=self._tracker.stage,
                application_id=self._state.application_id,
                already_submitted=True,
                message="This application has already been submitted.",
            )

        # ── 1. Validation (no I/O, no stage change) ───────
        report = validate_application(self._state.form_data)
        if not report.ok:
            sections = ", ".join(s.value for s, errs in report.errors.items() if errs)
            return SubmissionResult(
                success=False,
                stage=self._tracker.stage,
                validation_errors=report.as_dict(),
                message=f"Please complete the highlighted fields in: {sections}.",
            )

        self._state.is_submitting = True
        self._cancelled = False
        handed_off = False
        pending = self._state.all_pending_files()
        keys = _file_keys(pending)
        try:
            # ── 2. Preparing ──────────────────────────────
            self._tracker.start(keys)
            payload = build_application_payload(self._state.snapshot())

            # ── 3. Compressing (optional, non-fatal) ──────
            savings_notice = None
            if pending and self._compressor is not None:
                self._tracker.set_stage(SubmissionStage.COMPRESSING)
                pending, savings_notice = await self._compress(pending)

            # ── 4. Record: promote the draft or create fresh ──
            promoted = self._state.has_durable_draft
            if promoted:
                application = await self._records.promote_draft_to_submitted(self._state.draft_id, payload)
            else:
                application = await self._records.create_submitted(SubmittedApplication(
                    id="",
                    owner_email=self._state.owner_email.strip().lower(),
                    owner_id=self._state.owner_id,
                    form_data=self._state.snapshot(),
                    payload=payload,
                    submitted_at=self._clock(),
                    updated_at=self._clock(),
                ))
            self._state.mark_submitted(application.id)
            self._state.set_documents(application.documents.copy())
            self._state.clear_pending_files()
            logger.info(f"Application {application.id} submitted ({'promoted' if promoted else 'created'})")

            if not pending:
                await self._finalize(STAGE_MESSAGES[SubmissionStage.COMPLETED])
                return SubmissionResult(
                    success=True,
                    stage=self._tracker.stage,
                    application_id=application.id,
                    promoted=promoted,
                    savings_notice=savings_notice,
                    message=STAGE_MESSAGES[SubmissionStage.COMPLETED],
                )

            # ── 5. Uploading (detached) ───────────────────
            self._tracker.set_stage(SubmissionStage.UPLOADING)
            uploads = asyncio.create_task(self._upload_documents(application, list(zip(keys, pending))))
            self._background = asyncio.create_task(self._track_uploads(uploads, keys))
            handed_off = True
            return SubmissionResult(
                success=True,
                stage=SubmissionStage.UPLOADING,
                application_id=application.id,
                promoted=promoted,
                uploads_pending=True,
                savings_notice=savings_notice,
                message="Application submitted. Your documents are uploading in the background.",
            )
        except Exception as e:
            logger.exception(f"Submission failed: {e}")
            message = (
                "We couldn't submit your application. Your answers are saved; "
                "check your connection and try again."
            )
            self._tracker.finish(SubmissionStage.ERROR, message)
            return SubmissionResult(success=False, stage=SubmissionStage.ERROR, message=message)
        finally:
            if not handed_off:
                self._state.is_submitting = False

    # ── Cancellation / teardown ───────────────────────
    def cancel(self) -> bool:
        """
        Stops progress reporting. In-flight network calls are not aborted;
        the final stage is still published once the submission settles.
        """
        if not self._state.is_submitting or self._tracker.stage in TERMINAL_STAGES:
            return False
        self._cancelled = True
        if self._ticker is not None:
            self._ticker.cancel()
        self._tracker.freeze()
        logger.info("Submission progress reporting cancelled by user")
        return True

    async def wait_until_settled(self) -> list[FileUploadOutcome]:
        if self._background is None:
            return self.last_outcomes
        await asyncio.shield(self._background)
        return self.last_outcomes

    async def close(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
        if self._background is not None and not self._background.done():
            self._tracker.freeze()

    # ── Stages ────────────────────────────────────────
    async def _compress(self, pending: list[tuple[DocumentType, DocumentFile]]):
        files = [f for _, f in pending]
        try:
            result = await self._compressor.compress(files)
        except Exception as e:
            logger.warning(f"Compression failed, uploading original files: {e}")
            return pending, None
        if len(result.files) != len(files):
            logger.warning("Compression returned a different number of files; using originals")
            return pending, None

        notice = None
        if result.savings_ratio > self._savings_notice_ratio:
            saved = result.total_original - result.total_compressed
            notice = f"Files optimized: saved {_format_size(saved)} ({round(result.savings_ratio * 100)}% smaller)."
            logger.info(notice)
        return [(t, f) for (t, _), f in zip(pending, result.files)], notice

    async def _upload_documents(
        self,
        application: SubmittedApplication,
        items: list[tuple[str, tuple[DocumentType, DocumentFile]]],
    ) -> list[FileUploadOutcome]:
        """Background upload. Files go one after another; each result is reported as it lands."""
        outcomes: list[FileUploadOutcome] = []
        ts = int(time.time() * 1000)
        for i, (key, (doc_type, f)) in enumerate(items):
            try:
                path = build_storage_path(doc_type, application.id, application.owner_email, f, ts + i)
                obj = await self._blobs.put_object(f.content, path, f.content_type)
                meta = DocumentMetadata(
                    file_name=f.file_name,
                    size_bytes=f.size_bytes,
                    url=obj.url,
                    owner_id=application.id,
                    uploaded_at=self._clock(),
                    content_type=f.content_type,
                    storage_path=obj.path,
                )
                current = self._state.documents.get(doc_type)
                slot_items = current + [meta] if doc_type.is_multi_slot else [meta]
                await self._records.update_submitted_fields(application.id, {"document_slot": (doc_type, slot_items)})
                updated = self._state.documents.copy()
                updated.set(doc_type, slot_items)
                self._state.set_documents(updated)
                self._tracker.complete_file(key)
                outcomes.append(FileUploadOutcome(key, doc_type, f.file_name, True, metadata=meta))
            except Exception as e:
                logger.error(f"Background upload of {f.file_name} ({doc_type.value}) failed: {e}")
                error = f"{f.file_name} could not be uploaded."
                self._tracker.fail_file(key, error)
                outcomes.append(FileUploadOutcome(key, doc_type, f.file_name, False, error=error))

        failed = [o for o in outcomes if not o.success]
        if failed:
            missing = sorted({o.doc_type.value for o in failed})
            try:
                await self._records.update_submitted_fields(application.id, {
                    "missing_documents": missing,
                    "status": ApplicationStatus.MISSING_DOCUMENT,
                })
            except Exception as e:
                logger.error(f"Could not flag missing documents on {application.id}: {e}")
        return outcomes

    async def _simulate_progress(self, keys: list[str]) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            files = self._tracker.snapshot().files
            for key in keys:
                current = files.get(key)
                if current is not None and not current.settled:
                    self._tracker.update_file(key, min(current.progress + self._tick_increment, self._ceiling))

    async def _track_uploads(self, uploads: asyncio.Task, keys: list[str]) -> None:
        self._ticker = asyncio.create_task(self._simulate_progress(keys))
        try:
            outcomes = await uploads
            self._ticker.cancel()
            self.last_outcomes = outcomes
            failed = [o.file_name for o in outcomes if not o.success]
            if failed:
                message = (
                    f"Application submitted, but {', '.join(failed)} could not be uploaded. "
                    "Upload them again from your documents page."
                )
            else:
                message = STAGE_MESSAGES[SubmissionStage.COMPLETED]
            await self._finalize(message)
        except Exception as e:
            logger.exception(f"Background upload crashed: {e}")
            self._tracker.finish(
                SubmissionStage.ERROR,
                "Your application was submitted, but your documents could not be uploaded. "
                "Upload them again from your documents page.",
            )
        finally:
            self._ticker.cancel()
            self._state.is_submitting = False

    async def _finalize(self, message: str) -> None:
        self._tracker.set_stage(SubmissionStage.FINALIZING)
        await asyncio.sleep(self._settle_delay)
        self._tracker.finish(SubmissionStage.COMPLETED, message)


def _file_keys(pending: list[tuple[DocumentType, DocumentFile]]) -> list[str]:
    """Stable, unique progress keys: ``<type>/<file name>``, suffixed on collision."""
    keys: list[str] = []
    seen: dict[str, int] = {}
    for doc_type, f in pending:
        base = f"{doc_type.value}/{f.file_name}"
        seen[base] = seen.get(base, 0) + 1
        keys.append(base if seen[base] == 1 else f"{base}#{seen[base]}")
    return keys


def _format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB"):
        if size < 1024:
            return f"{round(size, 2):g} {unit}"
        size /= 1024
    return f"{round(size, 2):g} GB"
