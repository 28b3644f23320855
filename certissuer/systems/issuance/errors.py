"""
CertIssuer -- Issuance Error Hierarchy

All exceptions raised by the request lifecycle and publishing pipeline.

Namespace: certissuer.systems.issuance.errors

Every operation either returns its result or raises one of these. Nothing
is retried implicitly; the caller retries the specific failed step.

  StoreReadError / StoreWriteError  document collection transport failed
  NotFoundError                     no record with that id
  SessionNotFoundError              no open issuance session with that id
  UploadError                       blob store rejected or failed an upload
  ValidationError                   academic fields out of range (all of them)
  SequenceError                     step invoked before its prerequisite
  TransitionError                   status change the state machine forbids
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from certissuer.systems.issuance.types import FieldViolation


class IssuanceError(RuntimeError):
    """Base for all issuance pipeline errors."""


class StoreReadError(IssuanceError):
    """Listing or reading the request collection failed. Safe to retry."""


class StoreWriteError(IssuanceError):
    """Adding, updating or deleting a request record failed."""


class NotFoundError(IssuanceError):
    """No request record matches the given id."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Certificate request not found: {request_id}")
        self.request_id = request_id


class SessionNotFoundError(IssuanceError):
    """No open issuance session has that id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Issuance session not found: {session_id}")
        self.session_id = session_id


class UploadError(IssuanceError):
    """
    The blob store did not accept an upload.

    `cause` is the transport-reported failure. Uploads are independent, so
    the caller may retry the same bytes.
    """

    def __init__(self, message: str, cause: BaseException | str | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ValidationError(IssuanceError):
    """Institution-entered academic fields failed one or more checks."""

    def __init__(self, violations: list[FieldViolation]) -> None:
        summary = "; ".join(f"{v.field}: {v.message}" for v in violations)
        super().__init__(f"Academic entry invalid ({len(violations)}): {summary}")
        self.violations = violations


class SequenceError(IssuanceError):
    """An operation was invoked out of causal order."""


class TransitionError(SequenceError):
    """The request's current status does not permit the requested transition."""
