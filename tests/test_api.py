"""
HTTP surface, wired to in-memory adapters.
"""
import time

import pytest
from fastapi.testclient import TestClient

from admissions.api.main import app
from admissions.api.sessions import SessionRegistry, get_registry
from admissions.config.settings import Settings
from admissions.infrastructure.memory.blob_store import InMemoryBlobStore
from admissions.infrastructure.memory.fallback_store import InMemoryFallbackStore
from admissions.infrastructure.memory.record_store import InMemoryRecordStore

from tests.conftest import COMPLETE_FORM, OWNER_EMAIL, OWNER_ID

BASE = f"/api/v1/sessions/{OWNER_ID}"


@pytest.fixture
def registry():
    settings = Settings(
        autosave_quiet_period_seconds=0.05,
        progress_tick_seconds=0.01,
        finalize_settle_seconds=0,
        compression_enabled=False,
    )
    return SessionRegistry(
        settings=settings,
        record_store=InMemoryRecordStore(),
        blob_store=InMemoryBlobStore(),
        fallback_store=InMemoryFallbackStore(),
    )


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def started(client):
    resp = client.post("/api/v1/sessions", json={
        "email": OWNER_EMAIL,
        "uid": OWNER_ID,
        "profile": {"firstName": "Amina", "lastName": "Amin", "email": OWNER_EMAIL},
    })
    assert resp.status_code == 200
    return resp.json()


def pdf(name: str, size: int = 2048):
    return ("files", (name, b"%" * size, "application/pdf"))


def wait_for(client, stage: str, timeout: float = 3.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"{BASE}/progress").json()
        if body["stage"] == stage:
            return body
        time.sleep(0.02)
    raise AssertionError(f"submission never reached {stage}")


def test_health(client, registry):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["compression_enabled"] is False


def test_unknown_session_is_404(client):
    assert client.get("/api/v1/sessions/nobody").status_code == 404


class TestSession:

    def test_start_prefills_from_profile(self, started):
        assert started["form_data"]["firstName"] == "Amina"
        assert started["draft_id"].startswith("temp_")
        assert started["view_mode"] is False

    def test_field_edits_are_autosaved(self, client, started, registry):
        resp = client.patch(f"{BASE}/fields", json={"values": {"phone": "+254 712 345 678"}})
        assert resp.json()["autosave_scheduled"] is True
        time.sleep(0.2)
        (draft,) = registry.record_store.open_drafts(OWNER_EMAIL)
        assert draft.form_data["phone"] == "+254 712 345 678"
        assert client.get(BASE).json()["draft_id"] == draft.id

    def test_section_change_saves_immediately(self, client, started, registry):
        client.patch(f"{BASE}/fields", json={"values": {"phone": "+254 712 345 678"}})
        resp = client.put(f"{BASE}/section", json={"section": "program"})
        assert resp.json()["status"] == "saved"
        (draft,) = registry.record_store.open_drafts(OWNER_EMAIL)
        assert draft.active_section.value == "program"

    def test_close(self, client, started):
        assert client.delete(BASE).json() == {"closed": True}
        assert client.get(BASE).status_code == 404


class TestDocuments:

    def test_upload_and_remove(self, client, started):
        resp = client.post(f"{BASE}/documents/academicDocuments", files=[pdf("a.pdf"), pdf("b.pdf")])
        assert resp.status_code == 200
        assert [d["file_name"] for d in resp.json()["documents"]] == ["a.pdf", "b.pdf"]
        assert resp.json()["remaining_capacity"] == 3

        resp = client.delete(f"{BASE}/documents/academicDocuments", params={"index": 0})
        assert [d["file_name"] for d in resp.json()["documents"]] == ["b.pdf"]

        summary = {s["doc_type"]: s for s in client.get(f"{BASE}/documents").json()}
        assert summary["academicDocuments"]["count"] == 1
        assert summary["passportPhoto"]["missing"] is True

    def test_capacity_error(self, client, started):
        client.post(f"{BASE}/documents/academicDocuments", files=[pdf(f"{i}.pdf") for i in range(3)])
        resp = client.post(f"{BASE}/documents/academicDocuments", files=[pdf(f"n{i}.pdf") for i in range(4)])
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "capacity"
        assert resp.json()["detail"]["remaining_capacity"] == 2

    def test_wrong_type_for_photo(self, client, started):
        resp = client.post(f"{BASE}/documents/passportPhoto", files=[pdf("me.pdf")])
        assert resp.status_code == 415

    def test_oversized_photo(self, client, started):
        big = ("files", ("me.jpg", b"x" * (5 * 1024 * 1024 + 1), "image/jpeg"))
        assert client.post(f"{BASE}/documents/passportPhoto", files=[big]).status_code == 413

    def test_remove_from_empty_slot(self, client, started):
        assert client.delete(f"{BASE}/documents/passportPhoto").status_code == 404

    def test_upstream_failure(self, client, started, registry):
        registry.blob_store.offline = True
        resp = client.post(f"{BASE}/documents/identificationDocument", files=[pdf("id.pdf")])
        assert resp.status_code == 502


class TestSubmission:

    def test_incomplete_form(self, client, started):
        resp = client.post(f"{BASE}/submit")
        assert resp.status_code == 400
        assert "program" in resp.json()["detail"]["errors"]

    def test_submit_with_staged_files(self, client, started, registry):
        client.patch(f"{BASE}/fields", json={"values": COMPLETE_FORM})
        staged = client.post(
            f"{BASE}/documents/passportPhoto/stage",
            files=[("files", ("me.jpg", b"x" * 1024, "image/jpeg"))],
        )
        assert staged.json()["staged"] == ["me.jpg"]

        resp = client.post(f"{BASE}/submit")
        assert resp.status_code == 200
        body = resp.json()
        assert body["uploads_pending"] is True

        done = wait_for(client, "completed")
        assert done["overall"] == 100
        (app_record,) = registry.record_store.applications.values()
        assert app_record.documents.passport_photo.file_name == "me.jpg"
        assert app_record.id == body["application_id"]

        again = client.post(f"{BASE}/submit").json()
        assert again["already_submitted"] is True
        assert client.get(BASE).json()["view_mode"] is True

    def test_store_outage_is_502(self, client, started, registry):
        client.patch(f"{BASE}/fields", json={"values": COMPLETE_FORM})
        registry.record_store.offline = True
        assert client.post(f"{BASE}/submit").status_code == 502

    def test_cancel_without_submission(self, client, started):
        assert client.post(f"{BASE}/submit/cancel").status_code == 409


class TestApplications:

    @pytest.fixture
    def application_id(self, client, started):
        client.patch(f"{BASE}/fields", json={"values": COMPLETE_FORM})
        return client.post(f"{BASE}/submit").json()["application_id"]

    def test_list(self, client, application_id):
        (app_body,) = client.get(f"{BASE}/applications").json()
        assert app_body["id"] == application_id
        assert app_body["progress"]["completed_steps"] == 1
        assert app_body["status"] == "applied"

    def test_edit_section(self, client, application_id):
        resp = client.patch(
            f"{BASE}/applications/{application_id}/sections/program",
            json={"values": {"preferredIntake": "January 2027"}},
        )
        assert resp.status_code == 200
        assert resp.json()["form_data"]["preferredIntake"] == "January 2027"

    def test_invalid_edit(self, client, application_id):
        resp = client.patch(
            f"{BASE}/applications/{application_id}/sections/personal",
            json={"values": {"email": "not-an-email"}},
        )
        assert resp.status_code == 400

    def test_unknown_application(self, client, application_id):
        resp = client.patch(f"{BASE}/applications/app_999/sections/program", json={"values": {}})
        assert resp.status_code == 404
