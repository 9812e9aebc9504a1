"""
Entity: Submitted Application

Created from a Draft (promotion) or fresh. Mutated afterwards only by
document replacement/removal and section edits.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from admissions.core.entities.document import DocumentSlots


class ApplicationStatus(str, Enum):
    INTERESTED = "interested"
    APPLIED = "applied"
    IN_REVIEW = "in_review"
    QUALIFIED = "qualified"
    ADMITTED = "admitted"
    ENROLLED = "enrolled"
    # terminal variants
    EXPIRED = "expired"
    DEFERRED = "deferred"
    MISSING_DOCUMENT = "missing_document"


OPTIONAL_FIELDS = ("postalAddress", "sponsorTelephone", "sponsorEmail", "howDidYouHear", "additionalNotes")


@dataclass
class SubmittedApplication:
    """Entity: Submitted Application."""
    id: str
    owner_email: str
    owner_id: str
    form_data: dict = field(default_factory=dict)
    payload: dict = field(default_factory=dict)     # canonical fields, see build_application_payload
    status: ApplicationStatus = ApplicationStatus.APPLIED
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    documents: DocumentSlots = field(default_factory=DocumentSlots)
    draft_id: str | None = None          # set when created by promotion
    missing_documents: list[str] = field(default_factory=list)


@dataclass
class ProgressSummary:
    completed_steps: int
    total_steps: int
    progress_percentage: int
    status: str
    next_action: str


def build_application_payload(form_data: dict) -> dict:
    """Canonical submitted-record payload from a form snapshot."""
    first = (form_data.get("firstName") or "").strip()
    last = (form_data.get("lastName") or "").strip()
    payload = {
        "name": f"{first} {last}".strip(),
        "email": (form_data.get("email") or "").strip().lower(),
        "phoneNumber": (form_data.get("phone") or "").strip(),
        "countryOfBirth": form_data.get("countryOfBirth") or "",
        "gender": form_data.get("gender") or "",
        "preferredProgram": form_data.get("preferredProgram") or "",
        "modeOfStudy": form_data.get("modeOfStudy") or "",
        "preferredIntake": form_data.get("preferredIntake") or "",
        "formData": dict(form_data),
    }
    for name in OPTIONAL_FIELDS:
        value = form_data.get(name)
        payload[name] = value if value else None
    return payload


_PROGRESS_TABLE = {
    ApplicationStatus.INTERESTED: (0, "Not Started", "Start Your Application"),
    ApplicationStatus.APPLIED: (1, "Application Submitted", "Upload Required Documents"),
    ApplicationStatus.MISSING_DOCUMENT: (1, "Documents Missing", "Upload Missing Documents"),
    ApplicationStatus.IN_REVIEW: (2, "Under Review", "Wait for Document Review"),
    ApplicationStatus.QUALIFIED: (2, "Qualified", "Wait for Admission Decision"),
    ApplicationStatus.DEFERRED: (2, "Deferred", "Contact Admissions"),
    ApplicationStatus.EXPIRED: (1, "Expired", "Contact Admissions"),
    ApplicationStatus.ADMITTED: (3, "Admitted", "Complete Enrollment"),
    ApplicationStatus.ENROLLED: (4, "Enrolled", "Prepare for Classes"),
}


def progress_summary(application: SubmittedApplication) -> ProgressSummary:
    """Steps completed out of 4, with a label and the next action."""
    total = 4
    completed, label, next_action = _PROGRESS_TABLE[application.status]
    if application.status is ApplicationStatus.APPLIED and not application.documents.missing():
        completed, label, next_action = 2, "Documents Uploaded", "Wait for Review"
    return ProgressSummary(
        completed_steps=completed,
        total_steps=total,
        progress_percentage=round(completed / total * 100),
        status=label,
        next_action=next_action,
    )
