"""
CertIssuer — Issuance REST Router

Thin HTTP surface over IssuanceService for the institution dashboard.
Callers are assumed to be authorized institution actors.

Endpoints:
  GET    /api/v1/requests                     — List requests (optional ?status=)
  POST   /api/v1/requests                     — Submit a new request (PENDING)
  DELETE /api/v1/requests/{request_id}        — Delete a request not being issued
  POST   /api/v1/sessions                     — Open an issuance session
  GET    /api/v1/sessions/{sid}               — Session state snapshot
  DELETE /api/v1/sessions/{sid}               — Close a session (abandons its flow)
  POST   /api/v1/sessions/{sid}/approve/{id}  — Select a pending request
  POST   /api/v1/sessions/{sid}/image         — Upload the certificate image
  POST   /api/v1/sessions/{sid}/assemble      — Validate academic data, build metadata
  POST   /api/v1/sessions/{sid}/publish       — Publish metadata, obtain final CID
  POST   /api/v1/sessions/{sid}/confirm       — Persist ISSUED with the final CID
  POST   /api/v1/sessions/{sid}/abandon       — Drop the active request
  DELETE /api/v1/sessions/{sid}/requests/{id} — Delete a request from within a session
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import Field

from certissuer.primitives.common import CertBaseModel
from certissuer.systems.issuance.errors import (
    IssuanceError,
    NotFoundError,
    SequenceError,
    SessionNotFoundError,
    StoreReadError,
    StoreWriteError,
    UploadError,
    ValidationError,
)
from certissuer.systems.issuance.service import IssuanceService
from certissuer.systems.issuance.types import AcademicEntry, CertificateRequest, RequestStatus

logger = structlog.get_logger("certissuer.api.issuance")

router = APIRouter()


class SubmitRequestBody(CertBaseModel):
    student_name: str = Field(alias="studentName", min_length=1)
    registration_number: str = Field(alias="registrationNumber", min_length=1)
    course: str = Field(min_length=1)
    wallet_address: str = Field(alias="walletAddress", min_length=1)
    institution_name: str = Field(alias="institutionName", min_length=1)


# ─── Error Mapping ────────────────────────────────────────────────


def status_code_for(exc: IssuanceError) -> int:
    if isinstance(exc, (NotFoundError, SessionNotFoundError)):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, SequenceError):
        return 409
    if isinstance(exc, (UploadError, StoreReadError, StoreWriteError)):
        return 502
    return 500


async def issuance_error_handler(request: Request, exc: IssuanceError) -> JSONResponse:
    """Render an IssuanceError as a structured error body."""
    body: dict[str, Any] = {
        "status": "error",
        "error": type(exc).__name__,
        "detail": str(exc),
    }
    if isinstance(exc, ValidationError):
        body["violations"] = [v.model_dump() for v in exc.violations]
    code = status_code_for(exc)
    logger.info("issuance_request_failed", path=request.url.path, error=type(exc).__name__, code=code)
    return JSONResponse(status_code=code, content=body)


def _service(request: Request) -> IssuanceService:
    return request.app.state.issuance  # type: ignore[no-any-return]


def _request_dict(req: CertificateRequest) -> dict[str, Any]:
    return {"id": req.id, **req.to_record()}


# ─── Requests ─────────────────────────────────────────────────────


@router.get("/api/v1/requests")
async def list_requests(request: Request, status: RequestStatus | None = None) -> dict[str, Any]:
    requests = await _service(request).list_requests(status=status)
    return {
        "status": "ok",
        "data": {
            "total": len(requests),
            "requests": [_request_dict(r) for r in requests],
        },
    }


@router.post("/api/v1/requests", status_code=201)
async def submit_request(request: Request, body: SubmitRequestBody) -> dict[str, Any]:
    created = await _service(request).submit_request(**body.model_dump())
    return {"status": "ok", "data": _request_dict(created)}


@router.delete("/api/v1/requests/{request_id}")
async def delete_request(request: Request, request_id: str) -> dict[str, Any]:
    await _service(request).delete_request(request_id)
    return {"status": "ok", "data": {"deleted": request_id}}


# ─── Sessions ─────────────────────────────────────────────────────


@router.post("/api/v1/sessions", status_code=201)
async def open_session(request: Request) -> dict[str, Any]:
    session = _service(request).open_session()
    return {"status": "ok", "data": session.snapshot()}


@router.get("/api/v1/sessions/{session_id}")
async def get_session(request: Request, session_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    return {"status": "ok", "data": session.snapshot()}


@router.delete("/api/v1/sessions/{session_id}")
async def close_session(request: Request, session_id: str) -> dict[str, Any]:
    _service(request).close_session(session_id)
    return {"status": "ok", "data": {"closed": session_id}}


@router.post("/api/v1/sessions/{session_id}/approve/{request_id}")
async def approve(request: Request, session_id: str, request_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    await session.approve(request_id)
    return {"status": "ok", "data": session.snapshot()}


@router.post("/api/v1/sessions/{session_id}/image")
async def upload_image(
    request: Request,
    session_id: str,
    file: UploadFile = File(...),
) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    data = await file.read()
    cid = await session.upload_image(
        data,
        file.filename or "certificate_image",
        file.content_type or "application/octet-stream",
    )
    return {"status": "ok", "data": {"image_cid": cid, **session.snapshot()}}


@router.post("/api/v1/sessions/{session_id}/assemble")
async def assemble(request: Request, session_id: str, entry: AcademicEntry) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    document = session.assemble(entry)
    return {"status": "ok", "data": {"document": document.model_dump(mode="json", by_alias=True)}}


@router.post("/api/v1/sessions/{session_id}/publish")
async def publish(request: Request, session_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    final_cid = await session.publish()
    return {"status": "ok", "data": {"final_cid": final_cid, **session.snapshot()}}


@router.post("/api/v1/sessions/{session_id}/confirm")
async def confirm(request: Request, session_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    issued = await session.confirm_issued()
    return {"status": "ok", "data": _request_dict(issued)}


@router.post("/api/v1/sessions/{session_id}/abandon")
async def abandon(request: Request, session_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    session.abandon()
    return {"status": "ok", "data": session.snapshot()}


@router.delete("/api/v1/sessions/{session_id}/requests/{request_id}")
async def delete_in_session(request: Request, session_id: str, request_id: str) -> dict[str, Any]:
    session = _service(request).get_session(session_id)
    await session.delete(request_id)
    return {"status": "ok", "data": {"deleted": request_id}}
