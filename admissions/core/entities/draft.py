"""
Entity: Draft

An in-progress application, autosaved continuously. At most one
non-submitted draft per owner is canonical.

Before the durable draft exists a transient id ``temp_<uid>_<ms>`` may be
used; it is replaced by the durable id once creation succeeds. Local copies
written before that point live under the stable per-owner key ``temp_<uid>``
so a later session can still find them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from admissions.core.entities.document import DocumentSlots


TEMP_ID_PREFIX = "temp_"


class DraftStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


class FormSection(str, Enum):
    PERSONAL = "personal"
    PROGRAM = "program"
    ADDITIONAL = "additional"


SECTION_FIELDS: dict[FormSection, tuple[str, ...]] = {
    FormSection.PERSONAL: (
        "firstName", "lastName", "email", "phone",
        "countryOfBirth", "gender", "postalAddress",
    ),
    FormSection.PROGRAM: ("preferredProgram", "modeOfStudy", "preferredIntake"),
    FormSection.ADDITIONAL: ("sponsorTelephone", "sponsorEmail", "howDidYouHear", "additionalNotes"),
}

# Fields the account profile may back-fill when the draft left them empty.
IDENTITY_FIELDS = ("firstName", "lastName", "email", "phone")


@dataclass
class Draft:
    """Entity: Draft application."""
    id: str
    owner_email: str
    owner_id: str
    form_data: dict = field(default_factory=dict)
    active_section: FormSection = FormSection.PERSONAL
    last_saved_at: datetime | None = None
    status: DraftStatus = DraftStatus.DRAFT
    documents: DocumentSlots = field(default_factory=DocumentSlots)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_temporary(self) -> bool:
        return is_temp_draft_id(self.id)


@dataclass
class DraftSnapshot:
    """Payload written on every save, durable or local fallback."""
    form_data: dict
    active_section: FormSection
    saved_at: datetime

    def to_dict(self) -> dict:
        return {
            "formData": dict(self.form_data),
            "activeSection": self.active_section.value,
            "lastSaved": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DraftSnapshot":
        return cls(
            form_data=dict(data.get("formData") or {}),
            active_section=FormSection(data.get("activeSection", FormSection.PERSONAL.value)),
            saved_at=datetime.fromisoformat(data["lastSaved"]),
        )


def make_temp_draft_id(owner_id: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{TEMP_ID_PREFIX}{owner_id}_{int(now.timestamp() * 1000)}"


def is_temp_draft_id(draft_id: str | None) -> bool:
    return bool(draft_id) and draft_id.startswith(TEMP_ID_PREFIX)


def pending_backup_key(owner_id: str) -> str:
    """Local-fallback key for edits saved before the owner's draft exists."""
    return f"{TEMP_ID_PREFIX}{owner_id}"


def merge_identity(form_data: dict, profile: dict) -> dict:
    """
    Back-fill empty identity fields from the account profile.

    The draft value wins whenever it is non-empty; the profile only fills
    gaps. Fields outside IDENTITY_FIELDS are never touched.
    """
    merged = dict(form_data)
    for name in IDENTITY_FIELDS:
        if _is_blank(merged.get(name)) and not _is_blank(profile.get(name)):
            merged[name] = profile[name]
    return merged


def overlay_edits(stored: dict, current: dict, baseline: dict) -> dict:
    """
    Lays the fields of ``current`` that differ from ``baseline`` over ``stored``.

    Used when edits were made against ``baseline`` instead of the stored
    draft (its load failed). Identity fields left empty are back-filled
    from ``baseline``.
    """
    edits = {name: value for name, value in current.items() if baseline.get(name) != value}
    return merge_identity({**stored, **edits}, baseline)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
