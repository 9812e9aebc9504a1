"""
Entity: Application Form State

The single mutable state object shared by the draft session, the
document slots and the submission pipeline. Every mutation goes through
one of the methods below.
"""

from dataclasses import dataclass, field

from admissions.core.entities.document import DocumentFile, DocumentSlots, DocumentType
from admissions.core.entities.draft import FormSection, is_temp_draft_id


@dataclass
class ApplicationFormState:
    owner_email: str = ""
    owner_id: str = ""
    form_data: dict = field(default_factory=dict)
    active_section: FormSection = FormSection.PERSONAL
    draft_id: str | None = None
    application_id: str | None = None
    documents: DocumentSlots = field(default_factory=DocumentSlots)
    pending_files: dict[DocumentType, list[DocumentFile]] = field(default_factory=dict)

    is_loading: bool = False
    is_submitting: bool = False
    is_submitted: bool = False

    # ── Queries ───────────────────────────────────────
    @property
    def has_durable_draft(self) -> bool:
        return bool(self.draft_id) and not is_temp_draft_id(self.draft_id)

    @property
    def autosave_allowed(self) -> bool:
        return not (self.is_loading or self.is_submitting or self.is_submitted)

    def snapshot(self) -> dict:
        return dict(self.form_data)

    def all_pending_files(self) -> list[tuple[DocumentType, DocumentFile]]:
        return [(t, f) for t, files in self.pending_files.items() for f in files]

    # ── Mutations ─────────────────────────────────────
    def set_field(self, name: str, value) -> None:
        self.form_data[name] = value

    def set_fields(self, values: dict) -> None:
        self.form_data.update(values)

    def replace_form_data(self, values: dict) -> None:
        self.form_data = dict(values)

    def set_section(self, section: FormSection) -> None:
        self.active_section = section

    def adopt_draft_id(self, draft_id: str) -> None:
        self.draft_id = draft_id

    def set_documents(self, slots: DocumentSlots) -> None:
        self.documents = slots

    def stage_files(self, doc_type: DocumentType, files: list[DocumentFile]) -> None:
        """Queue files for upload at submission time (no-draft path)."""
        if doc_type.is_multi_slot:
            self.pending_files.setdefault(doc_type, []).extend(files)
        else:
            self.pending_files[doc_type] = list(files[-1:])

    def clear_pending_files(self) -> None:
        self.pending_files = {}

    def mark_submitted(self, application_id: str) -> None:
        self.application_id = application_id
        self.is_submitted = True
