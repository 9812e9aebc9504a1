"""
Pytest configuration and shared fixtures for the admissions service.
"""
from datetime import datetime, timezone

import pytest
from hypothesis import settings, Verbosity

from admissions.core.entities.document import DocumentFile, DocumentMetadata
from admissions.core.entities.form_state import ApplicationFormState
from admissions.infrastructure.memory.blob_store import InMemoryBlobStore
from admissions.infrastructure.memory.fallback_store import InMemoryFallbackStore
from admissions.infrastructure.memory.record_store import InMemoryRecordStore

# Configure Hypothesis settings for all property-based tests
settings.register_profile(
    "default",
    max_examples=100,
    deadline=5000,
    verbosity=Verbosity.normal,
)

settings.register_profile(
    "ci",
    max_examples=200,
    deadline=10000,
    verbosity=Verbosity.quiet,
)

settings.register_profile(
    "debug",
    max_examples=10,
    deadline=None,
    verbosity=Verbosity.verbose,
)

settings.load_profile("default")

OWNER_EMAIL = "amina.amin@example.com"
OWNER_ID = "uid-amina"

COMPLETE_FORM = {
    "firstName": "Amina",
    "lastName": "Amin",
    "email": OWNER_EMAIL,
    "phone": "+254 712 345 678",
    "countryOfBirth": "Kenya",
    "gender": "female",
    "postalAddress": "",
    "preferredProgram": "BSc Computer Science",
    "modeOfStudy": "full-time",
    "preferredIntake": "September 2026",
    "sponsorEmail": "",
    "howDidYouHear": "website",
}


@pytest.fixture
def record_store():
    """Provide a fresh in-memory record store for each test."""
    return InMemoryRecordStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def fallback_store():
    return InMemoryFallbackStore()


@pytest.fixture
def state():
    return ApplicationFormState(owner_email=OWNER_EMAIL, owner_id=OWNER_ID)


@pytest.fixture
def complete_form():
    return dict(COMPLETE_FORM)


@pytest.fixture
def make_file():
    """Factory for in-memory uploads: make_file("x.pdf", size=2048, content_type="application/pdf")."""
    def _make(name: str = "photo.jpg", size: int = 1024, content_type: str = "image/jpeg") -> DocumentFile:
        return DocumentFile(file_name=name, content=b"x" * size, content_type=content_type)
    return _make


@pytest.fixture
def make_metadata():
    def _make(name: str, owner_id: str = "draft_1", size: int = 1024) -> DocumentMetadata:
        return DocumentMetadata(
            file_name=name,
            size_bytes=size,
            url=f"memory://blobs/applications/{owner_id}/documents/{name}",
            owner_id=owner_id,
            uploaded_at=datetime(2026, 1, 10, tzinfo=timezone.utc),
            content_type="application/pdf",
            storage_path=f"applications/{owner_id}/documents/{name}",
        )
    return _make
