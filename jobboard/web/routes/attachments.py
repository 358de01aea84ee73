"""
Save endpoints that attach an access policy to an uploaded object.

Only the policy side effect lives here; the rest of the profile/job records
belong to the CRUD layer. Each endpoint accepts the `objectPath` returned by
the upload grant, or the `/objects/...` URL form of it.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from jobboard.access.identity import ROLE_EMPLOYER, CallerIdentity
from jobboard.errors import (
    ForeignObjectPath,
    InvalidObjectPath,
    PolicyOwnershipConflict,
    StorageUnavailable,
    UploadRejected,
)
from jobboard.storage.purposes import PURPOSE_PROFILE, PURPOSE_REQUIREMENT, PURPOSE_RESUME
from jobboard.web import dependencies
from jobboard.web.routes.common import (
    csrf_violation,
    current_caller,
    error_response,
    json_error,
    not_found,
    read_json_object,
    run_bounded,
    unauthenticated,
)
from jobboard.web.security import cache_headers, require_strict_same_origin
from jobboard.web.wiring import ensure_object_store

attachments_router = APIRouter(tags=["Attachments"])

_log = logging.getLogger("jobboard.web")


async def _attach(caller: CallerIdentity, raw_path: object, purpose: str) -> JSONResponse:
    if not isinstance(raw_path, str) or not raw_path.strip():
        return json_error(400, "bad_request", "invalid_input", "An object path is required")
    ensure_object_store()
    service = dependencies.build_attachment_service()
    try:
        policy = await run_bounded(service.attach, caller, raw_path.strip(), purpose)
    except (
        InvalidObjectPath,
        ForeignObjectPath,
        UploadRejected,
        PolicyOwnershipConflict,
        StorageUnavailable,
    ) as exc:
        return error_response(exc)
    path = raw_path.strip()
    if path.startswith("/objects/"):
        path = path[len("/objects"):]
    return JSONResponse(
        {"objectPath": path, "visibility": policy.visibility},
        status_code=200,
        headers=cache_headers(),
    )


async def _caller_and_payload(request: Request):
    caller = current_caller(request)
    if caller is None:
        return None, None, unauthenticated()
    if not require_strict_same_origin(request):
        return None, None, csrf_violation()
    payload = await read_json_object(request)
    if payload is None:
        return None, None, json_error(400, "bad_request", "invalid_input", "Request body must be a JSON object")
    return caller, payload, None


@attachments_router.put("/api/resume")
async def save_resume(request: Request):
    """Attach the caller's uploaded resume (private to owner, admins and employers they applied to)."""
    caller, payload, error = await _caller_and_payload(request)
    if error:
        return error
    return await _attach(caller, payload.get("resumeUrl"), PURPOSE_RESUME)


@attachments_router.put("/api/profile/image")
async def save_profile_image(request: Request):
    caller, payload, error = await _caller_and_payload(request)
    if error:
        return error
    return await _attach(caller, payload.get("profileImage"), PURPOSE_PROFILE)


@attachments_router.put("/api/jobs/{job_id}/requirement-document")
async def save_requirement_document(request: Request, job_id: str):
    """Attach a requirement document to one of the caller's job postings.

    Employers only; a job the caller does not own answers 404.
    """
    caller, payload, error = await _caller_and_payload(request)
    if error:
        return error
    if caller.role != ROLE_EMPLOYER:
        return json_error(403, "forbidden", "employer_only", "Only employers can attach job documents")
    try:
        owned = await run_bounded(dependencies.RECRUITMENT_DIRECTORY.job_owned_by, job_id, caller.id)
    except StorageUnavailable as exc:
        return error_response(exc)
    if not owned:
        _log.info("requirement attach refused: caller=%s job=%s reason=not_owner", caller.id, job_id)
        return not_found()
    return await _attach(caller, payload.get("documentUrl"), PURPOSE_REQUIREMENT)


__all__ = ["attachments_router"]
