"""
Entity: Document

Application documents and their metadata. Pure model, no framework
or storage dependency.

Three document types exist:
  - passportPhoto           single slot (replace on upload)
  - identificationDocument  single slot (replace on upload)
  - academicDocuments       ordered, capped collection
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DocumentType(str, Enum):
    PASSPORT_PHOTO = "passportPhoto"
    IDENTIFICATION_DOCUMENT = "identificationDocument"
    ACADEMIC_DOCUMENTS = "academicDocuments"

    @property
    def is_multi_slot(self) -> bool:
        return self is DocumentType.ACADEMIC_DOCUMENTS

    @property
    def label(self) -> str:
        return DOCUMENT_LABELS[self]


DOCUMENT_LABELS = {
    DocumentType.PASSPORT_PHOTO: "Passport Photo",
    DocumentType.IDENTIFICATION_DOCUMENT: "Identification Document",
    DocumentType.ACADEMIC_DOCUMENTS: "Academic Documents",
}

IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png")
OFFICE_TYPES = (
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)

ALLOWED_CONTENT_TYPES = {
    DocumentType.PASSPORT_PHOTO: IMAGE_TYPES,
    DocumentType.IDENTIFICATION_DOCUMENT: ("application/pdf",) + IMAGE_TYPES + OFFICE_TYPES,
    DocumentType.ACADEMIC_DOCUMENTS: ("application/pdf",) + IMAGE_TYPES + OFFICE_TYPES,
}


@dataclass
class DocumentFile:
    """A file selected by the applicant, held in memory until uploaded."""
    file_name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.file_name:
            return "bin"
        return self.file_name.rsplit(".", 1)[-1].lower() or "bin"


@dataclass
class DocumentMetadata:
    """What the record store keeps about an uploaded document."""
    file_name: str
    size_bytes: int
    url: str
    owner_id: str                        # draft or application id
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    content_type: str = ""
    storage_path: str = ""

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "size": self.size_bytes,
            "url": self.url,
            "ownerId": self.owner_id,
            "uploadedAt": self.uploaded_at.isoformat(),
            "contentType": self.content_type,
            "storagePath": self.storage_path,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentMetadata":
        uploaded_at = data.get("uploadedAt")
        return cls(
            file_name=data.get("fileName", ""),
            size_bytes=int(data.get("size", 0)),
            url=data.get("url", ""),
            owner_id=data.get("ownerId", ""),
            uploaded_at=datetime.fromisoformat(uploaded_at) if uploaded_at else datetime.now(timezone.utc),
            content_type=data.get("contentType", ""),
            storage_path=data.get("storagePath", ""),
        )


@dataclass
class DocumentSlots:
    """The three document slots of a draft or application."""
    passport_photo: DocumentMetadata | None = None
    identification_document: DocumentMetadata | None = None
    academic_documents: list[DocumentMetadata] = field(default_factory=list)

    def get(self, doc_type: DocumentType) -> list[DocumentMetadata]:
        """Slot contents as a list (empty, one item, or the collection)."""
        if doc_type.is_multi_slot:
            return list(self.academic_documents)
        current = self._single(doc_type)
        return [current] if current is not None else []

    def set(self, doc_type: DocumentType, items: list[DocumentMetadata]) -> None:
        if doc_type.is_multi_slot:
            self.academic_documents = list(items)
            return
        if len(items) > 1:
            raise ValueError(f"{doc_type.value} holds at most one document")
        value = items[0] if items else None
        if doc_type is DocumentType.PASSPORT_PHOTO:
            self.passport_photo = value
        else:
            self.identification_document = value

    def count(self, doc_type: DocumentType) -> int:
        return len(self.get(doc_type))

    def missing(self) -> list[DocumentType]:
        return [t for t in DocumentType if self.count(t) == 0]

    def copy(self) -> "DocumentSlots":
        return DocumentSlots(
            passport_photo=self.passport_photo,
            identification_document=self.identification_document,
            academic_documents=list(self.academic_documents),
        )

    def _single(self, doc_type: DocumentType) -> DocumentMetadata | None:
        if doc_type is DocumentType.PASSPORT_PHOTO:
            return self.passport_photo
        return self.identification_document

    def to_dict(self) -> dict:
        return {
            DocumentType.PASSPORT_PHOTO.value: self.passport_photo.to_dict() if self.passport_photo else None,
            DocumentType.IDENTIFICATION_DOCUMENT.value: (
                self.identification_document.to_dict() if self.identification_document else None
            ),
            DocumentType.ACADEMIC_DOCUMENTS.value: [d.to_dict() for d in self.academic_documents],
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "DocumentSlots":
        data = data or {}
        photo = data.get(DocumentType.PASSPORT_PHOTO.value)
        ident = data.get(DocumentType.IDENTIFICATION_DOCUMENT.value)
        academic = data.get(DocumentType.ACADEMIC_DOCUMENTS.value) or []
        return cls(
            passport_photo=DocumentMetadata.from_dict(photo) if photo else None,
            identification_document=DocumentMetadata.from_dict(ident) if ident else None,
            academic_documents=[DocumentMetadata.from_dict(d) for d in academic if d],
        )


def sanitize_email(email: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", email)


def build_storage_path(
    doc_type: DocumentType,
    owner_id: str,
    owner_email: str,
    file: DocumentFile,
    timestamp_ms: int,
) -> str:
    """applications/<owner>/documents/<type>_<owner>_<email>_<ms>.<ext>"""
    name = f"{doc_type.value}_{owner_id}_{sanitize_email(owner_email)}_{timestamp_ms}.{file.extension}"
    return f"applications/{owner_id}/documents/{name}"
