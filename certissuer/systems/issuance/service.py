"""
CertIssuer -- Issuance Service

Application-level owner of the issuance core. Holds the shared RequestStore,
ContentPublisher and CertificateAssembler, and hands out one IssuanceSession
per institution flow.

Each session has its own RequestLifecycleController and IssuanceState, so
flows for different requests share no mutable state. The service keeps a
claim table (request id -> session id) so a request is driven by at most one
session at a time and cannot be deleted while claimed.

Causal order inside a session:
  approve -> upload_image -> assemble -> publish -> confirm_issued
A failed step can be retried on its own; earlier results are kept.

Sessions idle for longer than the configured TTL are closed the next time
the service is asked for a session, which abandons their flow.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from certissuer.primitives.common import HealthStatus, new_id
from certissuer.systems.issuance.assembler import CertificateAssembler
from certissuer.systems.issuance.errors import (
    SequenceError,
    SessionNotFoundError,
    TransitionError,
)
from certissuer.systems.issuance.lifecycle import RequestLifecycleController
from certissuer.systems.issuance.publisher import ContentPublisher
from certissuer.systems.issuance.store import RedisDocumentCollection, RequestStore
from certissuer.systems.issuance.types import (
    AcademicEntry,
    CertificateMetadataDocument,
    CertificateRequest,
    IssuanceStage,
    IssuanceState,
    RequestStatus,
)

if TYPE_CHECKING:
    from certissuer.clients.blobstore import BlobStoreClient
    from certissuer.clients.redis import RedisClient
    from certissuer.config import CertIssuerConfig

logger = structlog.get_logger("certissuer.issuance.service")


class IssuanceSession:
    """One institution's issuance flow. Obtain via IssuanceService.open_session()."""

    def __init__(self, session_id: str, service: IssuanceService) -> None:
        self.session_id = session_id
        self._service = service
        self._controller = RequestLifecycleController(service.store)
        self._logger = logger.bind(session_id=session_id)
        self.last_active = service.clock()

    @property
    def state(self) -> IssuanceState | None:
        return self._controller.state

    def touch(self) -> None:
        self.last_active = self._service.clock()

    def _require_state(self) -> IssuanceState:
        state = self._controller.state
        if state is None:
            raise SequenceError("No request is selected; approve one first")
        if state.stage == IssuanceStage.ISSUED:
            raise SequenceError(f"Request {state.request.id} has already been issued")
        return state

    def _release_cids(self, *cids: str | None) -> None:
        for cid in cids:
            self._service.publisher.release(cid)

    async def approve(self, request_id: str) -> IssuanceState:
        """Select a pending request as this session's active context."""
        request = await self._service.store.get(request_id)

        finished = self._controller.state
        if finished is not None and finished.stage == IssuanceStage.ISSUED:
            self._controller.abandon()

        already_held = self._service._claims.get(request_id) == self.session_id
        self._service._claim(request_id, self.session_id)
        try:
            return self._controller.approve(request)
        except Exception:
            if not already_held:
                self._service._release(request_id, self.session_id)
            raise

    async def upload_image(self, data: bytes, filename: str, content_type: str) -> str:
        """Publish the certificate image. Returns its CID."""
        state = self._require_state()
        replaced = (state.image_cid, state.final_cid)
        cid = await self._service.publisher.upload_blob(data, filename, content_type)
        state.record_image(cid, self._service.publisher.uri_for(cid))
        self._release_cids(*replaced)
        return cid

    def assemble(self, entry: AcademicEntry) -> CertificateMetadataDocument:
        """Validate `entry` and build the metadata document around the uploaded image."""
        state = self._require_state()
        replaced = state.final_cid
        document = self._service.assembler.assemble(state.request, entry, state.image_cid)
        state.record_document(entry, document)
        self._release_cids(replaced)
        return document

    async def publish(self) -> str:
        """Publish the assembled document. Returns the final CID."""
        state = self._require_state()
        if state.stage == IssuanceStage.PUBLISHED:
            raise SequenceError(
                f"Certificate document already published as {state.final_cid}; confirm issuance"
            )
        if state.stage != IssuanceStage.ASSEMBLED or state.document is None:
            raise SequenceError("Assemble the certificate document before publishing")
        final_cid = await self._service.assembler.publish(state.document)
        state.record_final(final_cid, self._service.publisher.uri_for(final_cid))
        return final_cid

    async def confirm_issued(self) -> CertificateRequest:
        """Persist ISSUED with the final CID and release the request."""
        state = self._require_state()
        if state.final_cid is None:
            raise SequenceError("Publish the certificate document before confirming issuance")
        issued = await self._controller.confirm_issued(state.request, state.final_cid)
        self._service._release(issued.id, self.session_id)
        self._release_cids(state.image_cid, state.final_cid)
        return issued

    def abandon(self) -> IssuanceState | None:
        state = self._controller.abandon()
        if state is not None:
            self._service._release(state.request.id, self.session_id)
            if state.stage != IssuanceStage.ISSUED:
                self._release_cids(state.image_cid, state.final_cid)
        return state

    async def delete(self, request_id: str) -> None:
        self._service._check_unclaimed(request_id, self.session_id)
        await self._controller.delete(request_id)

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of the session for the presentation layer."""
        state = self._controller.state
        if state is None:
            return {"session_id": self.session_id, "state": None}
        publisher = self._service.publisher
        return {
            "session_id": self.session_id,
            "state": state.model_dump(mode="json", by_alias=True),
            "image_gateway_url": publisher.gateway_url_for(state.image_cid)
            if state.image_cid
            else None,
            "final_gateway_url": publisher.gateway_url_for(state.final_cid)
            if state.final_cid
            else None,
        }


class IssuanceService:
    """
    Shared issuance core for the whole process.

    Created once by the application root with injected clients.
    """

    def __init__(
        self,
        store: RequestStore,
        publisher: ContentPublisher,
        assembler: CertificateAssembler,
        session_ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.assembler = assembler
        self.clock = clock
        self._session_ttl_s = session_ttl_s
        self._sessions: dict[str, IssuanceSession] = {}
        self._claims: dict[str, str] = {}
        self._logger = logger.bind(component="issuance_service")

    @classmethod
    def from_clients(
        cls,
        config: CertIssuerConfig,
        redis: RedisClient,
        blob_client: BlobStoreClient,
    ) -> IssuanceService:
        collection = RedisDocumentCollection(redis, config.redis.collection)
        publisher = ContentPublisher(
            blob_client,
            uri_scheme=config.publisher.uri_scheme,
            gateway_url=config.pinata.gateway_url,
        )
        assembler = CertificateAssembler(
            publisher,
            metadata_filename=config.publisher.metadata_filename,
        )
        return cls(
            RequestStore(collection),
            publisher,
            assembler,
            session_ttl_s=config.issuance.session_ttl_s,
        )

    # --- Sessions -------------------------------------------------------------

    def open_session(self) -> IssuanceSession:
        self.expire_idle_sessions()
        session = IssuanceSession(new_id(), self)
        self._sessions[session.session_id] = session
        self._logger.info("session_opened", session_id=session.session_id)
        return session

    def get_session(self, session_id: str) -> IssuanceSession:
        self.expire_idle_sessions()
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touch()
        return session

    def close_session(self, session_id: str) -> None:
        session = self.get_session(session_id)
        session.abandon()
        del self._sessions[session_id]
        self._logger.info("session_closed", session_id=session_id)

    def expire_idle_sessions(self) -> int:
        """Close every session idle for longer than the TTL. Returns how many were closed."""
        if self._session_ttl_s is None:
            return 0
        cutoff = self.clock() - self._session_ttl_s
        idle = [s for s in self._sessions.values() if s.last_active < cutoff]
        for session in idle:
            dropped = session.abandon()
            del self._sessions[session.session_id]
            self._logger.info(
                "session_expired",
                session_id=session.session_id,
                request_id=dropped.request.id if dropped else None,
            )
        return len(idle)

    # --- Requests -------------------------------------------------------------

    async def list_requests(self, status: RequestStatus | None = None) -> list[CertificateRequest]:
        return await self.store.list_all(status=status)

    async def submit_request(self, **fields: str) -> CertificateRequest:
        return await self.store.submit(**fields)

    async def delete_request(self, request_id: str) -> None:
        """Delete a request that no session is currently issuing."""
        self._check_unclaimed(request_id)
        await self.store.delete(request_id)

    # --- Claims ---------------------------------------------------------------

    def _claim(self, request_id: str, session_id: str) -> None:
        holder = self._claims.get(request_id)
        if holder is not None and holder != session_id:
            raise TransitionError(f"Request {request_id} is being issued in another session")
        self._claims[request_id] = session_id

    def _release(self, request_id: str, session_id: str) -> None:
        if self._claims.get(request_id) == session_id:
            del self._claims[request_id]

    def _check_unclaimed(self, request_id: str, session_id: str | None = None) -> None:
        holder = self._claims.get(request_id)
        if holder is not None and holder != session_id:
            raise TransitionError(f"Request {request_id} is being issued in another session")

    # --- Health ---------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        status = HealthStatus.HEALTHY
        try:
            await self.store.list_all()
        except Exception as e:
            self._logger.warning("issuance_health_store_unreachable", error=str(e))
            status = HealthStatus.DEGRADED
        return {
            "status": status.value,
            "open_sessions": len(self._sessions),
            "active_claims": len(self._claims),
            "tracked_cids": self.publisher.ledger_size,
        }
