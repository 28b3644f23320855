"""Shared fakes and fixtures for the issuance tests."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from certissuer.clients.blobstore import BlobStoreClient, BlobUploadResult
from certissuer.systems.issuance.assembler import CertificateAssembler
from certissuer.systems.issuance.publisher import ContentPublisher
from certissuer.systems.issuance.service import IssuanceService
from certissuer.systems.issuance.store import DocumentCollection, RequestStore
from certissuer.systems.issuance.types import AcademicEntry


class InMemoryCollection(DocumentCollection):
    """Document collection backed by a dict. `failing` names operations that raise."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.failing: set[str] = set()
        self._counter = 0

    def _maybe_fail(self, op: str) -> None:
        if op in self.failing:
            raise ConnectionError(f"collection unavailable during {op}")

    async def list(self) -> dict[str, dict[str, Any]]:
        self._maybe_fail("list")
        return {k: dict(v) for k, v in self.records.items()}

    async def get_by_id(self, record_id: str) -> dict[str, Any] | None:
        self._maybe_fail("get_by_id")
        record = self.records.get(record_id)
        return dict(record) if record is not None else None

    async def add(self, record: dict[str, Any]) -> str:
        self._maybe_fail("add")
        self._counter += 1
        record_id = f"req-{self._counter}"
        self.records[record_id] = dict(record)
        return record_id

    async def delete(self, record_id: str) -> bool:
        self._maybe_fail("delete")
        return self.records.pop(record_id, None) is not None

    async def update(self, record_id: str, patch: dict[str, Any]) -> bool:
        self._maybe_fail("update")
        if record_id not in self.records:
            return False
        self.records[record_id] = {**self.records[record_id], **patch}
        return True


class FakeBlobStore(BlobStoreClient):
    """Records uploads and hands out sequential CIDs. No content deduplication."""

    def __init__(self) -> None:
        self.uploads: list[tuple[bytes, str, str]] = []
        self.fail_next = 0
        self._counter = 0

    async def upload(self, data: bytes, name: str, content_type: str) -> BlobUploadResult:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise httpx.ConnectError("pinning service unreachable")
        self._counter += 1
        self.uploads.append((data, name, content_type))
        return BlobUploadResult(cid=f"cid{self._counter}", size=len(data))

    async def health_check(self) -> dict[str, Any]:
        return {"status": "connected"}

    async def close(self) -> None:
        pass


_REQUEST_FIELDS = {
    "student_name": "Alice",
    "registration_number": "R100",
    "course": "CS",
    "wallet_address": "0xA",
    "institution_name": "Tech U",
}


def _make_entry(**overrides: Any) -> AcademicEntry:
    fields: dict[str, Any] = {
        "institutionWalletAddress": "0xI",
        "cgpa": "8.50",
        "semMarks": [80, 85, 78, 90, 88, 92],
    }
    fields.update(overrides)
    return AcademicEntry.model_validate(fields)


@pytest.fixture
def collection() -> InMemoryCollection:
    return InMemoryCollection()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def store(collection: InMemoryCollection) -> RequestStore:
    return RequestStore(collection)


@pytest.fixture
def publisher(blob_store: FakeBlobStore) -> ContentPublisher:
    return ContentPublisher(blob_store, uri_scheme="ipfs")


@pytest.fixture
def assembler(publisher: ContentPublisher) -> CertificateAssembler:
    return CertificateAssembler(publisher)


@pytest.fixture
def service(
    store: RequestStore,
    publisher: ContentPublisher,
    assembler: CertificateAssembler,
) -> IssuanceService:
    return IssuanceService(store, publisher, assembler)


@pytest.fixture
def request_fields() -> dict[str, str]:
    """Submission fields for the reference request (Alice, R100, CS)."""
    return dict(_REQUEST_FIELDS)


@pytest.fixture
def make_entry():
    """Factory for academic entries; defaults are valid, keyword overrides use camelCase."""
    return _make_entry
