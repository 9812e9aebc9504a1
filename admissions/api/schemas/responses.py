"""
Pydantic schemas: request and response models for the API.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from admissions.core.entities.application import SubmittedApplication, progress_summary
from admissions.core.entities.document import DocumentMetadata, DocumentSlots, DocumentType
from admissions.core.entities.draft import FormSection
from admissions.core.use_cases.progress_tracker import ProgressSnapshot, format_time_remaining


# ── Requests ──
class StartSessionRequest(BaseModel):
    email: str
    uid: str
    profile: dict = Field(default_factory=dict)


class FieldsRequest(BaseModel):
    values: dict


class SectionRequest(BaseModel):
    section: FormSection


class SectionUpdateRequest(BaseModel):
    values: dict


# ── Documents ──
class DocumentResponse(BaseModel):
    file_name: str
    size: int
    url: str
    content_type: str = ""
    uploaded_at: datetime

    @classmethod
    def from_entity(cls, doc: DocumentMetadata) -> "DocumentResponse":
        return cls(
            file_name=doc.file_name,
            size=doc.size_bytes,
            url=doc.url,
            content_type=doc.content_type,
            uploaded_at=doc.uploaded_at,
        )


def documents_response(slots: DocumentSlots) -> dict[str, list[DocumentResponse]]:
    return {t.value: [DocumentResponse.from_entity(d) for d in slots.get(t)] for t in DocumentType}


class SlotResponse(BaseModel):
    doc_type: DocumentType
    documents: list[DocumentResponse]
    remaining_capacity: int | None = None


class SlotSummaryResponse(BaseModel):
    doc_type: DocumentType
    count: int
    remaining_capacity: int | None = None
    missing: bool


class StagedFilesResponse(BaseModel):
    doc_type: DocumentType
    staged: list[str]


# ── Session / draft ──
class SessionResponse(BaseModel):
    uid: str
    email: str
    draft_id: str | None = None
    application_id: str | None = None
    active_section: FormSection
    form_data: dict
    documents: dict[str, list[DocumentResponse]]
    save_status: str
    last_saved_at: datetime | None = None
    view_mode: bool = False
    recovered_from_fallback: bool = False
    load_error: str | None = None


class SaveResponse(BaseModel):
    status: str
    draft_id: str | None = None
    autosave_scheduled: bool = False
    used_fallback: bool = False
    error: str | None = None
    last_saved_at: datetime | None = None


# ── Submission ──
class SubmissionResponse(BaseModel):
    success: bool
    stage: str
    application_id: str | None = None
    message: str = ""
    promoted: bool = False
    uploads_pending: bool = False
    already_submitted: bool = False
    savings_notice: str | None = None


class FileProgressResponse(BaseModel):
    name: str
    progress: int
    status: str
    error: str | None = None


class ProgressResponse(BaseModel):
    stage: str
    message: str
    overall: int
    files: list[FileProgressResponse]
    estimated_time_remaining: int | None = None
    time_remaining_text: str = ""
    cancelled: bool = False

    @classmethod
    def from_snapshot(cls, snap: ProgressSnapshot) -> "ProgressResponse":
        return cls(
            stage=snap.stage.value,
            message=snap.message,
            overall=snap.overall,
            files=[
                FileProgressResponse(name=f.name, progress=f.progress, status=f.status.value, error=f.error)
                for f in snap.files.values()
            ],
            estimated_time_remaining=snap.estimated_time_remaining,
            time_remaining_text=format_time_remaining(snap.estimated_time_remaining),
            cancelled=snap.cancelled,
        )


# ── Applications ──
class ProgressSummaryResponse(BaseModel):
    completed_steps: int
    total_steps: int
    progress_percentage: int
    status: str
    next_action: str


class ApplicationResponse(BaseModel):
    id: str
    status: str
    submitted_at: datetime
    updated_at: datetime
    form_data: dict
    documents: dict[str, list[DocumentResponse]]
    missing_documents: list[str] = []
    progress: ProgressSummaryResponse

    @classmethod
    def from_entity(cls, app: SubmittedApplication) -> "ApplicationResponse":
        summary = progress_summary(app)
        return cls(
            id=app.id,
            status=app.status.value,
            submitted_at=app.submitted_at,
            updated_at=app.updated_at,
            form_data=app.form_data,
            documents=documents_response(app.documents),
            missing_documents=app.missing_documents,
            progress=ProgressSummaryResponse(
                completed_steps=summary.completed_steps,
                total_steps=summary.total_steps,
                progress_percentage=summary.progress_percentage,
                status=summary.status,
                next_action=summary.next_action,
            ),
        )


class SectionUpdateResponse(BaseModel):
    application_id: str
    section: FormSection
    form_data: dict
    message: str = ""
