"""
CertIssuer -- Request Lifecycle Controller

Owns the status transitions of a certificate request within one
institution session, and the session's active context (the request
currently driving the issuance flow).

  PENDING ──approve──▶ APPROVED ──confirm_issued──▶ ISSUED
     │
     └──delete──▶ DELETED

APPROVED is local: it selects the request and creates an IssuanceState but
does not touch the persisted record. ISSUED is persisted together with the
final CID. An abandoned flow leaves the record PENDING.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from certissuer.systems.issuance.errors import SequenceError, TransitionError
from certissuer.systems.issuance.types import (
    CertificateRequest,
    IssuanceStage,
    IssuanceState,
    RequestStatus,
)

if TYPE_CHECKING:
    from certissuer.systems.issuance.store import RequestStore

logger = structlog.get_logger("certissuer.issuance.lifecycle")


class RequestLifecycleController:
    """
    State machine for requests handled by one session.

    Not shared between sessions: each issuance flow owns its controller, so
    the active context has a single writer and needs no locking.
    """

    def __init__(self, store: RequestStore) -> None:
        self._store = store
        self._state: IssuanceState | None = None
        self._logger = logger.bind(component="lifecycle_controller")

    @property
    def state(self) -> IssuanceState | None:
        """The active context, or None if no request is selected."""
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._state is not None and self._state.stage != IssuanceStage.ISSUED

    def approve(self, request: CertificateRequest) -> IssuanceState:
        """Select a PENDING request as the active context."""
        if request.status != RequestStatus.PENDING:
            raise TransitionError(
                f"Only pending requests can be approved; {request.id} is {request.status.value}"
            )
        current = self._state
        if current is not None and current.stage != IssuanceStage.ISSUED:
            raise SequenceError(
                f"Request {current.request.id} is still being issued; abandon it first"
            )

        approved = request.model_copy(update={"status": RequestStatus.APPROVED})
        self._state = IssuanceState(request=approved)
        self._logger.info("request_approved", request_id=request.id)
        return self._state

    async def confirm_issued(
        self,
        request: CertificateRequest,
        final_cid: str,
    ) -> CertificateRequest:
        """Persist ISSUED and the final CID once the metadata document is published."""
        state = self._require_context(request)
        if not final_cid:
            raise SequenceError("A final CID is required to confirm issuance")
        if state.stage != IssuanceStage.PUBLISHED or state.final_cid != final_cid:
            raise SequenceError(
                f"No published certificate document with CID {final_cid} for request {request.id}"
            )

        issued = await self._store.mark_issued(request.id, final_cid)
        state.mark_issued(issued)
        self._logger.info("issuance_confirmed", request_id=request.id, final_cid=final_cid)
        return issued

    async def delete(self, request_id: str) -> None:
        """Delete a request record. The active, unfinished context cannot be deleted."""
        if self.in_progress and self._state.request.id == request_id:  # type: ignore[union-attr]
            raise TransitionError(
                f"Request {request_id} is being issued in this session; abandon it first"
            )
        await self._store.delete(request_id)

    def abandon(self) -> IssuanceState | None:
        """
        Drop the active context without issuing.

        The persisted record stays PENDING; any uploaded blobs remain in the
        append-only store, unreferenced.
        """
        state = self._state
        self._state = None
        if state is not None:
            self._logger.info(
                "issuance_abandoned",
                request_id=state.request.id,
                stage=state.stage.value,
            )
        return state

    def _require_context(self, request: CertificateRequest) -> IssuanceState:
        if self._state is None:
            raise SequenceError("No request is selected; approve one first")
        if self._state.request.id != request.id:
            raise SequenceError(
                f"Request {request.id} is not the active context "
                f"(active: {self._state.request.id})"
            )
        return self._state
