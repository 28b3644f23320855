"""
CertIssuer -- Issuance Types

Records persisted in the request collection, the academic data an
institution enters during issuance, the published metadata document, and
the explicit pipeline state one issuance flow carries.

Persisted and published field names are camelCase (`studentName`,
`finalCid`); Python attributes are snake_case. Both spellings are accepted
on input.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any

import orjson
from pydantic import ConfigDict, Field

from certissuer.primitives.common import CertBaseModel, utc_now
from certissuer.systems.issuance.errors import SequenceError

# Number of semester marks carried by an academic entry.
SEMESTER_COUNT = 6


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"     # Local to an issuance session, never persisted
    ISSUED = "ISSUED"         # Terminal
    DELETED = "DELETED"       # Terminal; the record no longer exists


class IssuanceStage(str, enum.Enum):
    """How far one issuance flow has progressed."""

    SELECTED = "selected"
    IMAGE_UPLOADED = "image_uploaded"
    ASSEMBLED = "assembled"
    PUBLISHED = "published"
    ISSUED = "issued"


# ─── Records ──────────────────────────────────────────────────────


class CertificateRequest(CertBaseModel):
    """A student's credential request as stored in the request collection."""

    model_config = ConfigDict(frozen=True)

    id: str = ""                              # Assigned by the document store
    student_name: str = Field(alias="studentName")
    registration_number: str = Field(alias="registrationNumber")
    course: str
    wallet_address: str = Field(alias="walletAddress")
    institution_name: str = Field(alias="institutionName")
    status: RequestStatus = RequestStatus.PENDING
    final_cid: str | None = Field(default=None, alias="finalCid")
    issued_at: datetime | None = Field(default=None, alias="issuedAt")

    def to_record(self) -> dict[str, object]:
        """The stored form: camelCase, JSON-safe, without the id."""
        return self.model_dump(by_alias=True, mode="json", exclude={"id"}, exclude_none=True)

    @classmethod
    def from_record(cls, request_id: str, record: dict[str, object]) -> CertificateRequest:
        return cls.model_validate({**record, "id": request_id})


class AcademicEntry(CertBaseModel):
    """
    Academic data entered by the institution while issuing.

    Holds the values as entered. Neither types nor ranges are enforced at
    construction; check_entry reports every problem (a missing field, a
    non-numeric cgpa, a fractional mark, an out-of-range value) together.
    """

    model_config = ConfigDict(frozen=True)

    institution_wallet_address: Any = Field(default="", alias="institutionWalletAddress")
    cgpa: Any = None
    sem_marks: Any = Field(default=None, alias="semMarks")


class FieldViolation(CertBaseModel):
    """One failed check on an academic entry."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class CertificateMetadataDocument(CertBaseModel):
    """
    The certificate as published to the content-addressed store.

    Built once from an approved request, a validated academic entry and the
    CID of an image that was actually uploaded. Never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(alias="requestId")
    student_name: str = Field(alias="studentName")
    registration_number: str = Field(alias="registrationNumber")
    course: str
    wallet_address: str = Field(alias="walletAddress")
    institution_name: str = Field(alias="institutionName")
    status: RequestStatus
    institution_wallet_address: str = Field(alias="institutionWalletAddress")
    cgpa: Decimal
    sem_marks: list[int] = Field(alias="semMarks")
    certificate_image_cid: str = Field(alias="certificateImageCid")
    certificate_image_uri: str = Field(alias="certificateImageUri")

    def to_bytes(self) -> bytes:
        """Canonical JSON encoding used for publication."""
        payload = self.model_dump(by_alias=True, mode="json")
        return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


# ─── Pipeline State ───────────────────────────────────────────────


class IssuanceState(CertBaseModel):
    """
    Everything one issuance flow has produced so far.

    Created by RequestLifecycleController.approve and advanced only by the
    session's pipeline operations. Readers (the HTTP layer) never write it.
    Each recorder rejects a call whose prerequisite stage has not been reached.
    """

    request: CertificateRequest
    stage: IssuanceStage = IssuanceStage.SELECTED
    entry: AcademicEntry | None = None
    image_cid: str | None = None
    image_uri: str | None = None
    document: CertificateMetadataDocument | None = None
    final_cid: str | None = None
    final_uri: str | None = None
    selected_at: datetime = Field(default_factory=utc_now)

    def record_image(self, cid: str, uri: str) -> None:
        """A new image replaces any previous one and invalidates later stages."""
        if self.stage == IssuanceStage.ISSUED:
            raise SequenceError("Certificate already issued; the image can no longer change")
        self.image_cid = cid
        self.image_uri = uri
        self.entry = None
        self.document = None
        self.final_cid = None
        self.final_uri = None
        self.stage = IssuanceStage.IMAGE_UPLOADED

    def record_document(self, entry: AcademicEntry, document: CertificateMetadataDocument) -> None:
        if self.stage == IssuanceStage.ISSUED:
            raise SequenceError("Certificate already issued")
        if self.image_cid is None:
            raise SequenceError("Upload the certificate image before assembling metadata")
        if document.certificate_image_cid != self.image_cid:
            raise SequenceError("Document references an image this flow did not upload")
        self.entry = entry
        self.document = document
        self.final_cid = None
        self.final_uri = None
        self.stage = IssuanceStage.ASSEMBLED

    def record_final(self, cid: str, uri: str) -> None:
        if self.stage != IssuanceStage.ASSEMBLED:
            raise SequenceError(
                f"Cannot record a final CID at stage {self.stage.value}; assemble first"
            )
        self.final_cid = cid
        self.final_uri = uri
        self.stage = IssuanceStage.PUBLISHED

    def mark_issued(self, request: CertificateRequest) -> None:
        if self.stage != IssuanceStage.PUBLISHED:
            raise SequenceError(f"Cannot mark issued at stage {self.stage.value}")
        self.request = request
        self.stage = IssuanceStage.ISSUED
