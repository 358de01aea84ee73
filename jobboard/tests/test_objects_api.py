"""
Objects API: upload grants, the `/objects/...` read route and the local upload target.

End-to-end scenario: a job seeker uploads and saves a resume, applies to a
job, and only that job's employer (besides the seeker and admins) can read it.
Denied reads are indistinguishable from missing objects.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from jobboard.errors import StorageUnavailable
from jobboard.storage.keys import parse_object_path
from jobboard.storage.ports import NullObjectStore
from jobboard.web import dependencies
from jobboard.web.main import app
from jobboard.web.sessions import SESSION_COOKIE_NAME
from utils.fakes import TEST_STORAGE_BASE_URL, FakeObjectStore

pytestmark = pytest.mark.anyio

ORIGIN = {"Origin": "http://test"}
PDF = b"%PDF-1.7\n" + b"0" * 4096


async def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _session(user_id: str, role: str) -> str:
    return dependencies.SESSION_STORE.create(user_id=user_id, role=role).session_id


async def _upload_and_save_resume(store: FakeObjectStore, seeker_sid: str) -> str:
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, seeker_sid)
        r = await c.post(
            "/api/objects/upload-resume",
            json={"contentType": "application/pdf", "fileSize": len(PDF)},
            headers=ORIGIN,
        )
        assert r.status_code == 200
        object_path = r.json()["objectPath"]
        # Client PUTs the bytes straight to the store.
        store.put("objects", parse_object_path(object_path).storage_key, PDF, "application/pdf")
        r_save = await c.put("/api/resume", json={"resumeUrl": object_path}, headers=ORIGIN)
        assert r_save.status_code == 200
    return object_path


async def test_upload_grant_response_shape():
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post("/api/objects/upload", json={"contentType": "image/png", "fileSize": 2048}, headers=ORIGIN)
    assert r.status_code == 200
    body = r.json()
    path = parse_object_path(body["objectPath"])
    assert path.owner_id == "seeker-s"
    assert path.purpose == "profile"
    assert path.extension == "png"
    assert body["uploadURL"].startswith(f"{TEST_STORAGE_BASE_URL}/objects/users/seeker-s/profile-")
    assert body["expectedContentType"] == "image/png"
    assert body["expectedSize"] == 2048
    assert body["headers"] == {"content-type": "image/png"}
    assert body["expiresAt"].endswith("Z") or body["expiresAt"].endswith("+00:00")
    assert r.headers.get("Cache-Control") == "private, no-store"
    assert r.headers.get("Vary") == "Origin"
    assert store.last_presign["key"] == path.storage_key


async def test_upload_grant_ignores_client_supplied_names():
    dependencies.set_object_store(FakeObjectStore())
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post(
            "/api/objects/upload-resume",
            json={"contentType": "application/pdf", "fileSize": 10, "fileName": "../../etc/passwd", "ownerId": "other"},
            headers=ORIGIN,
        )
    assert r.status_code == 200
    path = parse_object_path(r.json()["objectPath"])
    assert path.owner_id == "seeker-s"
    assert path.extension == "pdf"


@pytest.mark.parametrize(
    "endpoint,payload,detail",
    [
        ("/api/objects/upload", {"contentType": "image/gif", "fileSize": 100}, "content_type_not_allowed"),
        ("/api/objects/upload", {"contentType": "image/png", "fileSize": 5 * 1024 * 1024 + 1}, "size_exceeded"),
        ("/api/objects/upload-resume", {"contentType": "image/png", "fileSize": 100}, "content_type_not_allowed"),
        ("/api/objects/upload-resume", {"contentType": "application/pdf", "fileSize": 0}, "invalid_size"),
        ("/api/objects/upload-resume", {"contentType": "application/pdf", "fileSize": "10"}, "invalid_size"),
    ],
)
async def test_upload_grant_rejections(endpoint, payload, detail):
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post(endpoint, json=payload, headers=ORIGIN)
    assert r.status_code == 400
    assert r.json()["error"] == "bad_request"
    assert r.json()["detail"] == detail
    assert store.calls == []


async def test_size_limit_message_is_human_readable():
    dependencies.set_object_store(FakeObjectStore())
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post(
            "/api/objects/upload-resume",
            json={"contentType": "application/pdf", "fileSize": 11 * 1024 * 1024},
            headers=ORIGIN,
        )
    assert r.json()["message"] == "File size must be under 10MB"


async def test_upload_document_is_employer_only():
    dependencies.set_object_store(FakeObjectStore())
    seeker = _session("seeker-s", "job_seeker")
    employer = _session("employer-e", "employer")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, seeker)
        r_seeker = await c.post(
            "/api/objects/upload-document",
            json={"contentType": "application/pdf", "fileSize": 100},
            headers=ORIGIN,
        )
        c.cookies.set(SESSION_COOKIE_NAME, employer)
        r_employer = await c.post(
            "/api/objects/upload-document",
            json={"contentType": "application/pdf", "fileSize": 100},
            headers=ORIGIN,
        )
    assert r_seeker.status_code == 403
    assert r_employer.status_code == 200
    assert parse_object_path(r_employer.json()["objectPath"]).purpose == "requirement"


async def test_upload_grant_requires_authentication_and_same_origin():
    dependencies.set_object_store(FakeObjectStore())
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        r_anon = await c.post("/api/objects/upload", json={"contentType": "image/png", "fileSize": 10}, headers=ORIGIN)
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r_cross = await c.post(
            "/api/objects/upload",
            json={"contentType": "image/png", "fileSize": 10},
            headers={"Origin": "http://evil.example"},
        )
    assert r_anon.status_code == 401
    assert r_anon.headers.get("Cache-Control") == "private, no-store"
    assert r_cross.status_code == 403
    assert r_cross.json()["detail"] == "csrf_violation"


async def test_upload_grant_without_store_is_service_unavailable():
    dependencies.set_object_store(NullObjectStore())
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post("/api/objects/upload", json={"contentType": "image/png", "fileSize": 10}, headers=ORIGIN)
    assert r.status_code == 503
    assert r.json()["error"] == "service_unavailable"


async def test_resume_visible_to_applied_employer_only():
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    seeker = _session("seeker-s", "job_seeker")
    object_path = await _upload_and_save_resume(store, seeker)

    dependencies.RECRUITMENT_DIRECTORY.add_job("job-j", "employer-e")
    dependencies.RECRUITMENT_DIRECTORY.add_job("job-k", "employer-e2")
    dependencies.RECRUITMENT_DIRECTORY.add_application("job-j", "seeker-s")

    employer = _session("employer-e", "employer")
    other = _session("employer-e2", "employer")
    admin = _session("admin-1", "admin")
    url = "/objects" + object_path

    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, seeker)
        r_owner = await c.get(url)
        c.cookies.set(SESSION_COOKIE_NAME, employer)
        r_employer = await c.get(url)
        c.cookies.set(SESSION_COOKIE_NAME, admin)
        r_admin = await c.get(url)
        c.cookies.set(SESSION_COOKIE_NAME, other)
        r_other = await c.get(url)
        r_missing = await c.get("/objects/users/seeker-s/resume-1700000000123-ffffffffffffffff.pdf")

    for r in (r_owner, r_employer, r_admin):
        assert r.status_code == 200
        assert r.content == PDF
        assert r.headers["content-type"].startswith("application/pdf")
        assert r.headers.get("Cache-Control") == "private, no-store"
        assert r.headers.get("X-Content-Type-Options") == "nosniff"
        assert r.headers.get("Content-Length") == str(len(PDF))

    assert r_other.status_code == 404
    assert r_missing.status_code == 404
    assert r_other.content == r_missing.content
    assert r_other.json() == {"error": "not_found"}
    assert all(s.closed for s in store.opened)


async def test_uploaded_but_never_saved_object_is_unreadable():
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    seeker = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, seeker)
        r = await c.post("/api/objects/upload", json={"contentType": "image/png", "fileSize": 4}, headers=ORIGIN)
        object_path = r.json()["objectPath"]
        store.put("objects", parse_object_path(object_path).storage_key, b"\x89PNG", "image/png")
        r_read = await c.get("/objects" + object_path)
    assert r_read.status_code == 404


@pytest.mark.parametrize(
    "url",
    [
        "/objects/users/seeker-s/resume.exe",
        "/objects/etc/passwd",
        "/objects/users/seeker-s/resume-1700000000123-0123456789abcdef.pdf%00.png",
        "/objects/users/seeker-s/resume-1700000000123-0123456789abcdef.PDF",
    ],
)
async def test_malformed_read_paths_are_bad_requests(url):
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    sid = _session("admin-1", "admin")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.get(url)
    assert r.status_code == 400
    assert store.calls == []


async def test_read_requires_authentication():
    async with (await _client()) as c:
        r = await c.get("/objects/users/seeker-s/resume-1700000000123-0123456789abcdef.pdf")
    assert r.status_code == 401


async def test_read_with_unreachable_store_is_service_unavailable():
    dependencies.set_object_store(FakeObjectStore(fail_with=StorageUnavailable("storage_unreachable")))
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.get("/objects/users/seeker-s/resume-1700000000123-0123456789abcdef.pdf")
    assert r.status_code == 503


async def test_local_upload_roundtrip(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCAL_OBJECT_STORE_ROOT", str(tmp_path))
    sid = _session("seeker-s", "job_seeker")
    other = _session("mallory", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.post(
            "/api/objects/upload-resume",
            json={"contentType": "application/pdf", "fileSize": len(PDF)},
            headers=ORIGIN,
        )
        assert r.status_code == 200
        upload_url = r.json()["uploadURL"]
        object_path = r.json()["objectPath"]
        assert upload_url.startswith("/api/objects/local-upload/users/seeker-s/resume-")

        c.cookies.set(SESSION_COOKIE_NAME, other)
        r_foreign = await c.put(upload_url, content=PDF, headers={**ORIGIN, "Content-Type": "application/pdf"})

        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r_bad_type = await c.put(upload_url, content=PDF, headers={**ORIGIN, "Content-Type": "image/png"})
        r_put = await c.put(upload_url, content=PDF, headers={**ORIGIN, "Content-Type": "application/pdf"})
        r_again = await c.put(upload_url, content=b"overwrite", headers={**ORIGIN, "Content-Type": "application/pdf"})
        r_save = await c.put("/api/resume", json={"resumeUrl": object_path}, headers=ORIGIN)
        r_read = await c.get("/objects" + object_path)

    assert r_foreign.status_code == 403
    assert r_bad_type.status_code == 400
    assert r_put.status_code == 200
    assert r_put.json() == {"objectPath": object_path, "size": len(PDF)}
    assert r_again.status_code == 400
    assert r_save.status_code == 200
    assert r_read.status_code == 200
    assert r_read.content == PDF


async def test_local_upload_route_is_hidden_for_remote_stores():
    dependencies.set_object_store(FakeObjectStore())
    sid = _session("seeker-s", "job_seeker")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, sid)
        r = await c.put(
            "/api/objects/local-upload/users/seeker-s/resume-1700000000123-0123456789abcdef.pdf",
            content=PDF,
            headers={**ORIGIN, "Content-Type": "application/pdf"},
        )
    assert r.status_code == 404


async def test_health_is_public():
    async with (await _client()) as c:
        r = await c.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert r.headers.get("X-Frame-Options") == "DENY"


async def test_doubled_objects_prefix_is_rejected():
    store = FakeObjectStore()
    dependencies.set_object_store(store)
    seeker = _session("seeker-s", "job_seeker")
    object_path = await _upload_and_save_resume(store, seeker)
    reads_before = len(store.calls)
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, seeker)
        r = await c.get("/objects/objects" + object_path)
    assert r.status_code == 400
    assert len(store.calls) == reads_before


async def test_directory_outage_on_read_is_service_unavailable():
    class _DirectoryDown:
        def employer_has_applicant(self, employer_id, seeker_id):
            raise StorageUnavailable("directory_unavailable")

        def job_owned_by(self, job_id, employer_id):
            raise StorageUnavailable("directory_unavailable")

    store = FakeObjectStore()
    dependencies.set_object_store(store)
    seeker = _session("seeker-s", "job_seeker")
    object_path = await _upload_and_save_resume(store, seeker)
    dependencies.set_recruitment_directory(_DirectoryDown())
    employer = _session("employer-e", "employer")
    async with (await _client()) as c:
        c.cookies.set(SESSION_COOKIE_NAME, employer)
        r = await c.get("/objects" + object_path)
    assert r.status_code == 503
    assert r.json()["error"] == "service_unavailable"
