"""
Attach-on-save: service rules and the three save endpoints.
"""
from __future__ import annotations

import uuid

import httpx
import pytest
from httpx import ASGITransport

from jobboard.access.attachments import ObjectAttachmentService
from jobboard.access.identity import CallerIdentity
from jobboard.access.ledger import AccessPolicy, InMemoryPolicyLedger
from jobboard.errors import ForeignObjectPath, InvalidObjectPath, PolicyOwnershipConflict, UploadRejected
from jobboard.storage.keys import parse_object_path
from jobboard.web import dependencies
from jobboard.web.main import app
from jobboard.web.sessions import SESSION_COOKIE_NAME
from utils.fakes import FakeObjectStore

ALICE = CallerIdentity("alice", "job_seeker")
RESUME = "/users/alice/resume-1700000000123-0123456789abcdef.pdf"
PROFILE = "/users/alice/profile-1700000000123-0123456789abcdef.png"
REQUIREMENT = "/users/acme/requirement-1700000000123-0123456789abcdef.pdf"


# --- Service -------------------------------------------------------------------


def test_attach_creates_private_policy_for_resume():
    ledger = InMemoryPolicyLedger()
    policy = ObjectAttachmentService(ledger).attach(ALICE, RESUME, "resume")
    assert policy == AccessPolicy(owner="alice", visibility="private")
    assert ledger.get_policy(parse_object_path(RESUME)) == policy


def test_attach_accepts_objects_url_form():
    ledger = InMemoryPolicyLedger()
    ObjectAttachmentService(ledger).attach(ALICE, "/objects" + PROFILE, "profile")
    assert ledger.get_policy(parse_object_path(PROFILE)).owner == "alice"


def test_requirement_documents_default_public():
    ledger = InMemoryPolicyLedger()
    policy = ObjectAttachmentService(ledger).attach(CallerIdentity("acme", "employer"), REQUIREMENT, "requirement")
    assert policy.visibility == "public"


def test_foreign_path_is_refused_without_touching_ledger():
    ledger = InMemoryPolicyLedger()
    with pytest.raises(ForeignObjectPath):
        ObjectAttachmentService(ledger).attach(CallerIdentity("mallory", "job_seeker"), RESUME, "resume")
    assert len(ledger) == 0


def test_purpose_must_match_slot():
    with pytest.raises(InvalidObjectPath) as exc:
        ObjectAttachmentService(InMemoryPolicyLedger()).attach(ALICE, PROFILE, "resume")
    assert exc.value.reason == "purpose_mismatch"


def test_resave_is_idempotent():
    ledger = InMemoryPolicyLedger()
    service = ObjectAttachmentService(ledger)
    first = service.attach(ALICE, RESUME, "resume")
    assert service.attach(ALICE, RESUME, "resume") == first
    assert len(ledger) == 1


def test_ledger_conflict_propagates_from_attach():
    class _ConflictLedger(InMemoryPolicyLedger):
        def set_policy(self, path, policy):
            raise PolicyOwnershipConflict("owner_conflict")

    with pytest.raises(PolicyOwnershipConflict):
        ObjectAttachmentService(_ConflictLedger()).attach(ALICE, RESUME, "resume")


def test_verification_rejects_missing_upload():
    store = FakeObjectStore()
    ledger = InMemoryPolicyLedger()
    service = ObjectAttachmentService(ledger, store=store, verify=True, bucket="objects")
    with pytest.raises(UploadRejected) as exc:
        service.attach(ALICE, RESUME, "resume")
    assert exc.value.reason == "object_missing"
    assert len(ledger) == 0

    store.put("objects", parse_object_path(RESUME).storage_key, b"%PDF-1.7", "application/pdf")
    assert service.attach(ALICE, RESUME, "resume").owner == "alice"


# --- HTTP ----------------------------------------------------------------------


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _session(user_id: str, role: str) -> str:
    return dependencies.SESSION_STORE.create(user_id=user_id, role=role).session_id


@pytest.mark.anyio
async def test_save_resume_attaches_policy():
    sid = _session("alice", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put("/api/resume", json={"resumeUrl": "/objects" + RESUME}, headers={"Origin": "http://test"})
    assert r.status_code == 200
    assert r.json() == {"objectPath": RESUME, "visibility": "private"}
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert dependencies.POLICY_LEDGER.get_policy(parse_object_path(RESUME)).owner == "alice"


@pytest.mark.anyio
async def test_save_profile_image_rejects_foreign_path():
    sid = _session("mallory", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put("/api/profile/image", json={"profileImage": PROFILE}, headers={"Origin": "http://test"})
    assert r.status_code == 403
    assert r.json()["detail"] == "foreign_path"
    assert dependencies.POLICY_LEDGER.get_policy(parse_object_path(PROFILE)) is None


@pytest.mark.anyio
@pytest.mark.parametrize("value", [None, "", "https://evil.example.com/x.png", "/users/alice/../bob/x.png"])
async def test_save_rejects_malformed_paths(value):
    sid = _session("alice", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put("/api/profile/image", json={"profileImage": value}, headers={"Origin": "http://test"})
    assert r.status_code == 400
    assert r.json()["error"] == "bad_request"


@pytest.mark.anyio
async def test_save_requires_same_origin():
    sid = _session("alice", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r_missing = await c.put("/api/resume", json={"resumeUrl": RESUME})
        r_cross = await c.put("/api/resume", json={"resumeUrl": RESUME}, headers={"Origin": "http://evil.example"})
    assert r_missing.status_code == 403
    assert r_cross.status_code == 403
    assert r_cross.json()["detail"] == "csrf_violation"
    assert dependencies.POLICY_LEDGER.get_policy(parse_object_path(RESUME)) is None


@pytest.mark.anyio
async def test_save_requires_authentication():
    async with (await _client()) as c:
        r = await c.put("/api/resume", json={"resumeUrl": RESUME}, headers={"Origin": "http://test"})
    assert r.status_code == 401


@pytest.mark.anyio
async def test_requirement_document_for_own_job():
    job_id = str(uuid.uuid4())
    dependencies.RECRUITMENT_DIRECTORY.add_job(job_id, "acme")
    sid = _session("acme", "employer")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put(
            f"/api/jobs/{job_id}/requirement-document",
            json={"documentUrl": REQUIREMENT},
            headers={"Origin": "http://test"},
        )
    assert r.status_code == 200
    assert r.json()["visibility"] == "public"


@pytest.mark.anyio
async def test_requirement_document_for_foreign_job_is_not_found():
    job_id = str(uuid.uuid4())
    dependencies.RECRUITMENT_DIRECTORY.add_job(job_id, "globex")
    sid = _session("acme", "employer")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put(
            f"/api/jobs/{job_id}/requirement-document",
            json={"documentUrl": REQUIREMENT},
            headers={"Origin": "http://test"},
        )
    assert r.status_code == 404
    assert dependencies.POLICY_LEDGER.get_policy(parse_object_path(REQUIREMENT)) is None


@pytest.mark.anyio
async def test_requirement_document_is_employer_only():
    sid = _session("acme", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put(
            f"/api/jobs/{uuid.uuid4()}/requirement-document",
            json={"documentUrl": REQUIREMENT},
            headers={"Origin": "http://test"},
        )
    assert r.status_code == 403
    assert r.json()["detail"] == "employer_only"
