"""
Database Models: SQLAlchemy.

Tables:
  - drafts: in-progress applications, at most one open draft per owner
  - applications: submitted applications (promoted from a draft or created fresh)

Form data and document slots are stored as JSON so SQLite and PostgreSQL
behave the same.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON, Index, text
from sqlalchemy.orm import DeclarativeBase

from admissions.core.entities.application import ApplicationStatus, SubmittedApplication
from admissions.core.entities.document import DocumentSlots
from admissions.core.entities.draft import Draft, DraftStatus, FormSection


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class DraftRecord(Base):
    """One row per draft; status flips to 'submitted' on promotion."""
    __tablename__ = "drafts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_email = Column(String(320), nullable=False, index=True)
    owner_id = Column(String(128), nullable=False)
    status = Column(String(20), nullable=False, default=DraftStatus.DRAFT.value)
    form_data = Column(JSON, default=dict)
    active_section = Column(String(20), default=FormSection.PERSONAL.value)
    documents = Column(JSON, default=dict)
    last_saved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    submitted_application_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index(
            "uq_drafts_open_owner",
            "owner_email",
            unique=True,
            sqlite_where=text("status = 'draft'"),
            postgresql_where=text("status = 'draft'"),
        ),
    )

    def __repr__(self):
        return f"<Draft {self.id} [{self.status}] owner={self.owner_email}>"

    @classmethod
    def from_entity(cls, draft: Draft) -> "DraftRecord":
        return cls(
            id=draft.id or str(uuid.uuid4()),
            owner_email=draft.owner_email.strip().lower(),
            owner_id=draft.owner_id,
            status=DraftStatus.DRAFT.value,
            form_data=dict(draft.form_data),
            active_section=draft.active_section.value,
            documents=draft.documents.to_dict(),
            last_saved_at=draft.last_saved_at,
            created_at=draft.created_at,
        )

    def to_entity(self) -> Draft:
        return Draft(
            id=self.id,
            owner_email=self.owner_email,
            owner_id=self.owner_id,
            form_data=dict(self.form_data or {}),
            active_section=FormSection(self.active_section or FormSection.PERSONAL.value),
            last_saved_at=as_utc(self.last_saved_at),
            status=DraftStatus(self.status),
            documents=DocumentSlots.from_dict(self.documents),
            created_at=as_utc(self.created_at),
        )


class ApplicationRecord(Base):
    """Submitted application with its document slots denormalised onto it."""
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    draft_id = Column(String(36), unique=True, nullable=True)
    owner_email = Column(String(320), nullable=False, index=True)
    owner_id = Column(String(128), nullable=False)
    status = Column(String(30), nullable=False, default=ApplicationStatus.APPLIED.value, index=True)
    form_data = Column(JSON, default=dict)
    payload = Column(JSON, default=dict)
    documents = Column(JSON, default=dict)
    missing_documents = Column(JSON, default=list)
    submitted_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Application {self.id} [{self.status}] owner={self.owner_email}>"

    @classmethod
    def from_entity(cls, application: SubmittedApplication) -> "ApplicationRecord":
        return cls(
            id=application.id or str(uuid.uuid4()),
            draft_id=application.draft_id,
            owner_email=application.owner_email.strip().lower(),
            owner_id=application.owner_id,
            status=application.status.value,
            form_data=dict(application.form_data),
            payload=dict(application.payload),
            documents=application.documents.to_dict(),
            missing_documents=list(application.missing_documents),
            submitted_at=application.submitted_at,
            updated_at=application.updated_at,
        )

    def to_entity(self) -> SubmittedApplication:
        return SubmittedApplication(
            id=self.id,
            owner_email=self.owner_email,
            owner_id=self.owner_id,
            form_data=dict(self.form_data or {}),
            payload=dict(self.payload or {}),
            status=ApplicationStatus(self.status),
            submitted_at=as_utc(self.submitted_at),
            updated_at=as_utc(self.updated_at),
            documents=DocumentSlots.from_dict(self.documents),
            draft_id=self.draft_id,
            missing_documents=list(self.missing_documents or []),
        )
