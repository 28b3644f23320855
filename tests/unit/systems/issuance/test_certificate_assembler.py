"""
Tests for CertificateAssembler.

Covers:
  - Academic field validation at the boundaries, with all violations collected
  - Assembly ordering: no image CID, or one never uploaded, is a SequenceError
  - Published metadata document content and upload parameters
"""

from __future__ import annotations

from decimal import Decimal

import orjson
import pytest

from certissuer.systems.issuance.assembler import check_entry
from certissuer.systems.issuance.errors import SequenceError, UploadError, ValidationError
from certissuer.systems.issuance.types import AcademicEntry, CertificateRequest, RequestStatus


def _approved_request(**overrides) -> CertificateRequest:
    fields = {
        "id": "req-1",
        "student_name": "Alice",
        "registration_number": "R100",
        "course": "CS",
        "wallet_address": "0xA",
        "institution_name": "Tech U",
        "status": RequestStatus.APPROVED,
    }
    fields.update(overrides)
    return CertificateRequest(**fields)


class TestValidate:
    def test_reference_entry_is_valid(self, assembler, make_entry):
        assembler.validate(make_entry())

    @pytest.mark.parametrize("cgpa", ["0.00", "10.00", "0", "10", "5.5"])
    def test_cgpa_boundaries_accepted(self, assembler, make_entry, cgpa):
        assembler.validate(make_entry(cgpa=cgpa))

    @pytest.mark.parametrize("cgpa", ["10.01", "-0.01", "11", "-1"])
    def test_cgpa_out_of_range_rejected(self, assembler, make_entry, cgpa):
        with pytest.raises(ValidationError) as exc_info:
            assembler.validate(make_entry(cgpa=cgpa))
        assert [v.field for v in exc_info.value.violations] == ["cgpa"]

    def test_cgpa_more_than_two_decimals_rejected(self, make_entry):
        violations = check_entry(make_entry(cgpa="8.505"))
        assert [v.field for v in violations] == ["cgpa"]

    def test_cgpa_not_finite_rejected(self):
        entry = AcademicEntry.model_construct(
            institution_wallet_address="0xI",
            cgpa=Decimal("NaN"),
            sem_marks=[80] * 6,
        )
        violations = check_entry(entry)
        assert [v.field for v in violations] == ["cgpa"]

    @pytest.mark.parametrize("marks", [[0] * 6, [100] * 6])
    def test_extreme_marks_accepted(self, assembler, make_entry, marks):
        assembler.validate(make_entry(semMarks=marks))

    @pytest.mark.parametrize("position", range(6))
    @pytest.mark.parametrize("bad_mark", [101, -1])
    def test_out_of_range_mark_rejected_at_any_position(
        self, assembler, make_entry, position, bad_mark
    ):
        marks = [50] * 6
        marks[position] = bad_mark
        with pytest.raises(ValidationError) as exc_info:
            assembler.validate(make_entry(semMarks=marks))
        assert [v.field for v in exc_info.value.violations] == [f"semMarks[{position}]"]

    @pytest.mark.parametrize("marks", [[80] * 5, [80] * 7, []])
    def test_wrong_number_of_marks_rejected(self, make_entry, marks):
        violations = check_entry(make_entry(semMarks=marks))
        assert [v.field for v in violations] == ["semMarks"]

    @pytest.mark.parametrize("wallet", ["", "   "])
    def test_blank_institution_wallet_rejected(self, make_entry, wallet):
        violations = check_entry(make_entry(institutionWalletAddress=wallet))
        assert [v.field for v in violations] == ["institutionWalletAddress"]

    def test_all_violations_reported_together(self, assembler, make_entry):
        entry = make_entry(
            institutionWalletAddress="",
            cgpa="12.345",
            semMarks=[101, 50, -1, 50, 50, 200],
        )
        with pytest.raises(ValidationError) as exc_info:
            assembler.validate(entry)

        fields = [v.field for v in exc_info.value.violations]
        assert fields == [
            "institutionWalletAddress",
            "cgpa",
            "cgpa",
            "semMarks[0]",
            "semMarks[2]",
            "semMarks[5]",
        ]


class TestEnteredTypes:
    def test_mixed_type_and_range_problems_reported_together(self, make_entry):
        entry = make_entry(
            institutionWalletAddress="",
            cgpa=8.5,
            semMarks=[101, 80, 80, 80, 80, 85.5],
        )
        fields = [v.field for v in check_entry(entry)]
        assert fields == ["institutionWalletAddress", "semMarks[0]", "semMarks[5]"]

    @pytest.mark.parametrize("cgpa", ["abc", "", [8], {"value": 8}, True])
    def test_non_numeric_cgpa_rejected(self, make_entry, cgpa):
        violations = check_entry(make_entry(cgpa=cgpa))
        assert [v.field for v in violations] == ["cgpa"]
        assert "must be a number" in violations[0].message

    @pytest.mark.parametrize("mark", [85.5, "eighty", None, False])
    def test_non_integer_mark_rejected(self, make_entry, mark):
        marks = [80, 80, 80, mark, 80, 80]
        violations = check_entry(make_entry(semMarks=marks))
        assert [v.field for v in violations] == ["semMarks[3]"]
        assert "whole number" in violations[0].message

    def test_numeric_spellings_accepted(self, make_entry):
        entry = make_entry(cgpa=9, semMarks=[80.0, "85", 78, 90, 88, 92])
        assert check_entry(entry) == []

    def test_missing_fields_reported(self):
        entry = AcademicEntry.model_validate({})
        fields = [v.field for v in check_entry(entry)]
        assert fields == ["institutionWalletAddress", "cgpa", "semMarks"]

    @pytest.mark.parametrize("marks", ["80,85", 80])
    def test_marks_not_a_list_rejected(self, make_entry, marks):
        violations = check_entry(make_entry(semMarks=marks))
        assert [v.field for v in violations] == ["semMarks"]

    @pytest.mark.asyncio
    async def test_document_normalises_entered_values(self, assembler, publisher, make_entry):
        cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        entry = make_entry(cgpa=8.5, semMarks=[80.0, "85", 78, 90, 88, 92])
        doc = assembler.assemble(_approved_request(), entry, cid)
        assert doc.cgpa == Decimal("8.5")
        assert doc.sem_marks == [80, 85, 78, 90, 88, 92]


class TestAssemble:
    @pytest.mark.parametrize("image_cid", ["", None])
    def test_missing_image_cid_is_sequence_error(self, assembler, make_entry, image_cid):
        with pytest.raises(SequenceError):
            assembler.assemble(_approved_request(), make_entry(), image_cid)

    def test_missing_image_cid_checked_before_validation(self, assembler, make_entry):
        with pytest.raises(SequenceError):
            assembler.assemble(_approved_request(), make_entry(cgpa="99"), "")

    def test_cid_never_uploaded_is_sequence_error(self, assembler, make_entry):
        with pytest.raises(SequenceError):
            assembler.assemble(_approved_request(), make_entry(), "cid-from-nowhere")

    @pytest.mark.asyncio
    async def test_unapproved_request_is_sequence_error(self, assembler, publisher, make_entry):
        cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        with pytest.raises(SequenceError):
            assembler.assemble(
                _approved_request(status=RequestStatus.PENDING), make_entry(), cid
            )

    @pytest.mark.asyncio
    async def test_invalid_entry_is_validation_error(self, assembler, publisher, make_entry):
        cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        with pytest.raises(ValidationError):
            assembler.assemble(_approved_request(), make_entry(cgpa="10.01"), cid)

    @pytest.mark.asyncio
    async def test_document_embeds_request_entry_and_image(
        self, assembler, publisher, make_entry
    ):
        cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        entry = make_entry()
        doc = assembler.assemble(_approved_request(), entry, cid)

        assert doc.certificate_image_cid == cid
        assert doc.certificate_image_uri == f"ipfs://{cid}"
        assert doc.request_id == "req-1"
        assert doc.student_name == "Alice"
        assert doc.institution_name == "Tech U"
        assert doc.institution_wallet_address == "0xI"
        assert doc.cgpa == Decimal("8.50")
        assert doc.sem_marks == [80, 85, 78, 90, 88, 92]


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_uploads_json_document(
        self, assembler, publisher, blob_store, make_entry
    ):
        image_cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        doc = assembler.assemble(_approved_request(), make_entry(), image_cid)

        final_cid = await assembler.publish(doc)

        assert final_cid != image_cid
        assert publisher.was_published(final_cid)
        data, name, content_type = blob_store.uploads[-1]
        assert name == "certificate_data.json"
        assert content_type == "application/json"
        payload = orjson.loads(data)
        assert payload["certificateImageCid"] == image_cid
        assert payload["registrationNumber"] == "R100"

    @pytest.mark.asyncio
    async def test_publish_failure_is_upload_error(
        self, assembler, publisher, blob_store, make_entry
    ):
        image_cid = await publisher.upload_blob(b"img", "cert.png", "image/png")
        doc = assembler.assemble(_approved_request(), make_entry(), image_cid)
        blob_store.fail_next = 1
        with pytest.raises(UploadError):
            await assembler.publish(doc)
