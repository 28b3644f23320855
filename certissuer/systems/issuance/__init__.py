"""
CertIssuer — Issuance

Request lifecycle and the two-stage content-addressed publishing pipeline:
an approved request plus institution-entered academic data becomes a
permanently addressable certificate document.
"""

from certissuer.systems.issuance.assembler import CertificateAssembler, check_entry
from certissuer.systems.issuance.errors import (
    IssuanceError,
    NotFoundError,
    SequenceError,
    SessionNotFoundError,
    StoreReadError,
    StoreWriteError,
    TransitionError,
    UploadError,
    ValidationError,
)
from certissuer.systems.issuance.lifecycle import RequestLifecycleController
from certissuer.systems.issuance.publisher import ContentPublisher
from certissuer.systems.issuance.service import IssuanceService, IssuanceSession
from certissuer.systems.issuance.store import (
    DocumentCollection,
    RedisDocumentCollection,
    RequestStore,
)
from certissuer.systems.issuance.types import (
    AcademicEntry,
    CertificateMetadataDocument,
    CertificateRequest,
    FieldViolation,
    IssuanceStage,
    IssuanceState,
    RequestStatus,
)

__all__ = [
    "AcademicEntry",
    "CertificateAssembler",
    "CertificateMetadataDocument",
    "CertificateRequest",
    "ContentPublisher",
    "DocumentCollection",
    "FieldViolation",
    "IssuanceError",
    "IssuanceService",
    "IssuanceSession",
    "IssuanceStage",
    "IssuanceState",
    "NotFoundError",
    "RedisDocumentCollection",
    "RequestLifecycleController",
    "RequestStatus",
    "RequestStore",
    "SequenceError",
    "SessionNotFoundError",
    "StoreReadError",
    "StoreWriteError",
    "TransitionError",
    "UploadError",
    "ValidationError",
    "check_entry",
]
