"""
CertIssuer -- Certificate Assembler

Second stage of the publishing pipeline:
  validate()  -- check institution-entered academic fields, collecting every violation
  assemble()  -- combine an approved request, a valid entry and an uploaded image CID
  publish()   -- serialise the document and upload it; its CID is the certificate

`assemble` refuses an image CID that the ContentPublisher never returned, so a
published document can only reference blobs that exist in the store.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import structlog

from certissuer.systems.issuance.errors import SequenceError, ValidationError
from certissuer.systems.issuance.types import (
    SEMESTER_COUNT,
    AcademicEntry,
    CertificateMetadataDocument,
    CertificateRequest,
    FieldViolation,
    RequestStatus,
)

if TYPE_CHECKING:
    from certissuer.systems.issuance.publisher import ContentPublisher

logger = structlog.get_logger("certissuer.issuance.assembler")

CGPA_MIN = Decimal("0.00")
CGPA_MAX = Decimal("10.00")
CGPA_MAX_DECIMALS = 2
MARK_MIN = 0
MARK_MAX = 100

METADATA_CONTENT_TYPE = "application/json"


def parse_cgpa(value: Any) -> Decimal | None:
    """The entered cgpa as a Decimal, or None if it is not a number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # Via str so 8.5 stays 8.5 instead of its binary expansion
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def parse_mark(value: Any) -> int | None:
    """The entered semester mark as an int, or None if it is not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def check_entry(entry: AcademicEntry) -> list[FieldViolation]:
    """Run every academic-field check and return all failures (empty if valid)."""
    violations: list[FieldViolation] = []

    wallet = entry.institution_wallet_address
    if wallet is not None and not isinstance(wallet, str):
        violations.append(
            FieldViolation(field="institutionWalletAddress", message="must be a string")
        )
    elif not (wallet or "").strip():
        violations.append(
            FieldViolation(field="institutionWalletAddress", message="must not be empty")
        )

    cgpa = parse_cgpa(entry.cgpa)
    if entry.cgpa is None:
        violations.append(FieldViolation(field="cgpa", message="is required"))
    elif cgpa is None:
        violations.append(
            FieldViolation(field="cgpa", message=f"must be a number, got {entry.cgpa!r}")
        )
    elif not cgpa.is_finite():
        violations.append(FieldViolation(field="cgpa", message="must be a finite number"))
    else:
        if not CGPA_MIN <= cgpa <= CGPA_MAX:
            violations.append(
                FieldViolation(field="cgpa", message=f"must be between {CGPA_MIN} and {CGPA_MAX}")
            )
        exponent = cgpa.as_tuple().exponent
        if isinstance(exponent, int) and exponent < -CGPA_MAX_DECIMALS:
            violations.append(
                FieldViolation(
                    field="cgpa",
                    message=f"must have at most {CGPA_MAX_DECIMALS} decimal places",
                )
            )

    marks = entry.sem_marks
    if marks is None:
        violations.append(FieldViolation(field="semMarks", message="is required"))
        return violations
    if not isinstance(marks, (list, tuple)):
        violations.append(
            FieldViolation(field="semMarks", message=f"must be a list of {SEMESTER_COUNT} marks")
        )
        return violations

    if len(marks) != SEMESTER_COUNT:
        violations.append(
            FieldViolation(
                field="semMarks",
                message=f"must contain exactly {SEMESTER_COUNT} marks, got {len(marks)}",
            )
        )
    for i, raw in enumerate(marks):
        mark = parse_mark(raw)
        if mark is None:
            violations.append(
                FieldViolation(
                    field=f"semMarks[{i}]",
                    message=f"must be a whole number, got {raw!r}",
                )
            )
        elif not MARK_MIN <= mark <= MARK_MAX:
            violations.append(
                FieldViolation(
                    field=f"semMarks[{i}]",
                    message=f"must be between {MARK_MIN} and {MARK_MAX}, got {mark}",
                )
            )

    return violations


class CertificateAssembler:
    """Validates academic entries and builds and publishes metadata documents."""

    def __init__(
        self,
        publisher: ContentPublisher,
        metadata_filename: str = "certificate_data.json",
    ) -> None:
        self._publisher = publisher
        self._metadata_filename = metadata_filename
        self._logger = logger.bind(component="certificate_assembler")

    def validate(self, entry: AcademicEntry) -> None:
        """Raise ValidationError listing every failed check."""
        violations = check_entry(entry)
        if violations:
            self._logger.info(
                "academic_entry_rejected",
                violations=[f"{v.field}: {v.message}" for v in violations],
            )
            raise ValidationError(violations)

    def assemble(
        self,
        request: CertificateRequest,
        entry: AcademicEntry,
        image_cid: str | None,
    ) -> CertificateMetadataDocument:
        if not image_cid:
            raise SequenceError("Upload the certificate image before assembling metadata")
        if not self._publisher.was_published(image_cid):
            raise SequenceError(f"Image CID {image_cid} was not produced by a completed upload")
        if request.status != RequestStatus.APPROVED:
            raise SequenceError(
                f"Request {request.id} must be approved before assembly "
                f"(status {request.status.value})"
            )
        self.validate(entry)

        document = CertificateMetadataDocument(
            request_id=request.id,
            student_name=request.student_name,
            registration_number=request.registration_number,
            course=request.course,
            wallet_address=request.wallet_address,
            institution_name=request.institution_name,
            status=request.status,
            institution_wallet_address=entry.institution_wallet_address,
            cgpa=parse_cgpa(entry.cgpa),
            sem_marks=[parse_mark(m) for m in entry.sem_marks],
            certificate_image_cid=image_cid,
            certificate_image_uri=self._publisher.uri_for(image_cid),
        )
        self._logger.info("certificate_assembled", request_id=request.id, image_cid=image_cid)
        return document

    async def publish(self, document: CertificateMetadataDocument) -> str:
        """Upload the document. The returned CID is the issued certificate's address."""
        final_cid = await self._publisher.upload_blob(
            document.to_bytes(),
            self._metadata_filename,
            METADATA_CONTENT_TYPE,
        )
        self._logger.info(
            "certificate_published",
            request_id=document.request_id,
            final_cid=final_cid,
        )
        return final_cid
