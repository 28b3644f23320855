"""
CertIssuer -- Request Store

CRUD over the persisted `certificateRequests` collection.

Two layers:
  DocumentCollection   -- the transport-level collection (list/get/add/delete/update
                          of plain JSON records). Redis-backed in production.
  RequestStore         -- typed access for the issuance core. Translates transport
                          failures into StoreReadError / StoreWriteError and
                          enforces the delete and issue policies on persisted status.

No multi-record transaction is assumed: `update` is read-merge-write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import structlog

from certissuer.primitives.common import new_id, utc_now
from certissuer.systems.issuance.errors import (
    NotFoundError,
    SequenceError,
    StoreReadError,
    StoreWriteError,
    TransitionError,
)
from certissuer.systems.issuance.types import CertificateRequest, RequestStatus

if TYPE_CHECKING:
    from certissuer.clients.redis import RedisClient

logger = structlog.get_logger("certissuer.issuance.store")


# ─── Transport Collection ─────────────────────────────────────────


class DocumentCollection(ABC):
    """A named collection of JSON records addressed by store-assigned ids."""

    @abstractmethod
    async def list(self) -> dict[str, dict[str, Any]]:
        """All records keyed by id. No ordering guarantee."""
        ...

    @abstractmethod
    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def add(self, record: dict[str, Any]) -> str:
        """Store a new record and return the id assigned to it."""
        ...

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if it did not exist."""
        ...

    @abstractmethod
    async def update(self, record_id: str, patch: dict[str, Any]) -> bool:
        """Merge `patch` into a record. Returns False if it did not exist."""
        ...


class RedisDocumentCollection(DocumentCollection):
    """One Redis hash per collection; each field is a record id holding JSON."""

    def __init__(self, redis: RedisClient, name: str) -> None:
        self._redis = redis
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def list(self) -> dict[str, dict[str, Any]]:
        return await self._redis.hgetall(self._name)

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        return await self._redis.hget(self._name, record_id)  # type: ignore[no-any-return]

    async def add(self, record: dict[str, Any]) -> str:
        record_id = new_id()
        await self._redis.hset(self._name, record_id, record)
        return record_id

    async def delete(self, record_id: str) -> bool:
        return await self._redis.hdel(self._name, record_id) > 0

    async def update(self, record_id: str, patch: dict[str, Any]) -> bool:
        current = await self._redis.hget(self._name, record_id)
        if current is None:
            return False
        await self._redis.hset(self._name, record_id, {**current, **patch})
        return True


# ─── Typed Request Store ──────────────────────────────────────────


class RequestStore:
    """
    Typed access to certificate requests.

    Callers holding a list from `list_all` must refresh it after `delete`
    or `mark_issued`; nothing is cached here.
    """

    def __init__(self, collection: DocumentCollection) -> None:
        self._collection = collection
        self._logger = logger.bind(component="request_store")

    async def list_all(self, status: RequestStatus | None = None) -> list[CertificateRequest]:
        """Every stored request, optionally filtered by status. Safe to retry."""
        try:
            records = await self._collection.list()
            requests = [
                CertificateRequest.from_record(record_id, record)
                for record_id, record in records.items()
            ]
        except Exception as e:
            self._logger.error("request_list_failed", error=str(e))
            raise StoreReadError(f"Failed to list certificate requests: {e}") from e

        if status is not None:
            requests = [r for r in requests if r.status == status]
        self._logger.debug("requests_listed", count=len(requests))
        return requests

    async def list_pending(self) -> list[CertificateRequest]:
        return await self.list_all(status=RequestStatus.PENDING)

    async def get(self, request_id: str) -> CertificateRequest:
        try:
            record = await self._collection.get_by_id(request_id)
        except Exception as e:
            self._logger.error("request_read_failed", request_id=request_id, error=str(e))
            raise StoreReadError(f"Failed to read request {request_id}: {e}") from e
        if record is None:
            raise NotFoundError(request_id)
        return CertificateRequest.from_record(request_id, record)

    async def submit(
        self,
        student_name: str,
        registration_number: str,
        course: str,
        wallet_address: str,
        institution_name: str,
    ) -> CertificateRequest:
        """Store a new request in PENDING and return it with its assigned id."""
        request = CertificateRequest(
            student_name=student_name,
            registration_number=registration_number,
            course=course,
            wallet_address=wallet_address,
            institution_name=institution_name,
            status=RequestStatus.PENDING,
        )
        try:
            request_id = await self._collection.add(request.to_record())
        except Exception as e:
            self._logger.error("request_submit_failed", error=str(e))
            raise StoreWriteError(f"Failed to store certificate request: {e}") from e

        self._logger.info(
            "request_submitted",
            request_id=request_id,
            registration_number=registration_number,
        )
        return request.model_copy(update={"id": request_id})

    async def delete(self, request_id: str) -> None:
        """
        Remove exactly the record with `request_id`.

        Issued requests are terminal and cannot be deleted.
        """
        request = await self.get(request_id)
        if request.status == RequestStatus.ISSUED:
            raise TransitionError(f"Request {request_id} has been issued and cannot be deleted")

        try:
            removed = await self._collection.delete(request_id)
        except Exception as e:
            self._logger.error("request_delete_failed", request_id=request_id, error=str(e))
            raise StoreWriteError(f"Failed to delete request {request_id}: {e}") from e
        if not removed:
            raise NotFoundError(request_id)

        self._logger.info("request_deleted", request_id=request_id)

    async def mark_issued(self, request_id: str, final_cid: str) -> CertificateRequest:
        """Persist ISSUED with the final document CID. Returns the updated request."""
        if not final_cid:
            raise SequenceError("Cannot mark a request issued without a final CID")

        request = await self.get(request_id)
        if request.status == RequestStatus.ISSUED:
            raise TransitionError(f"Request {request_id} is already issued")

        issued_at = utc_now()
        patch = {
            "status": RequestStatus.ISSUED.value,
            "finalCid": final_cid,
            "issuedAt": issued_at.isoformat(),
        }
        try:
            updated = await self._collection.update(request_id, patch)
        except Exception as e:
            self._logger.error("request_issue_write_failed", request_id=request_id, error=str(e))
            raise StoreWriteError(f"Failed to record issuance of {request_id}: {e}") from e
        if not updated:
            raise NotFoundError(request_id)

        self._logger.info("request_issued", request_id=request_id, final_cid=final_cid)
        return request.model_copy(
            update={
                "status": RequestStatus.ISSUED,
                "final_cid": final_cid,
                "issued_at": issued_at,
            }
        )
