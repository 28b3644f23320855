"""
CertIssuer -- Content Publisher

Uploads opaque byte payloads to the content-addressed blob store and
returns the CID. Bytes are not retained after upload; only the CID is.

The publisher keeps a ledger of the CIDs it has returned that an issuance
flow still references. CertificateAssembler consults it so that metadata
can never reference an image whose upload did not complete. Flows release
their CIDs when they finish or drop them, so the ledger only holds CIDs of
live flows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from certissuer.systems.issuance.errors import UploadError

if TYPE_CHECKING:
    from certissuer.clients.blobstore import BlobStoreClient

logger = structlog.get_logger("certissuer.issuance.publisher")


class ContentPublisher:
    """
    Thin, non-retrying wrapper around a BlobStoreClient.

    Repeated uploads of identical bytes are independent operations; whether
    they yield the same CID depends on the store. The ledger counts each
    upload, so two flows holding the same CID each release it once.
    """

    def __init__(
        self,
        client: BlobStoreClient,
        uri_scheme: str = "ipfs",
        gateway_url: str = "",
    ) -> None:
        self._client = client
        self._uri_scheme = uri_scheme
        self._gateway_url = gateway_url.rstrip("/")
        self._published: dict[str, int] = {}
        self._logger = logger.bind(component="content_publisher")

    async def upload_blob(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload `data` and return its CID. Raises UploadError on any store failure."""
        try:
            result = await self._client.upload(data, filename, content_type)
        except Exception as e:
            self._logger.warning(
                "blob_upload_failed",
                filename=filename,
                content_type=content_type,
                size=len(data),
                error=str(e),
            )
            raise UploadError(f"Upload of {filename} failed: {e}", cause=e) from e

        if not result.cid:
            raise UploadError(f"Upload of {filename} returned no CID", cause="empty cid")

        self._published[result.cid] = self._published.get(result.cid, 0) + 1
        self._logger.info(
            "blob_uploaded",
            filename=filename,
            content_type=content_type,
            size=len(data),
            cid=result.cid,
        )
        return result.cid

    def was_published(self, cid: str) -> bool:
        """True if `cid` came from a completed upload that has not been released."""
        return cid in self._published

    def release(self, cid: str | None) -> None:
        """Drop one reference to `cid`. The blob itself stays in the store."""
        if cid is None:
            return
        remaining = self._published.get(cid, 0) - 1
        if remaining > 0:
            self._published[cid] = remaining
        else:
            self._published.pop(cid, None)

    @property
    def ledger_size(self) -> int:
        return len(self._published)

    def uri_for(self, cid: str) -> str:
        return f"{self._uri_scheme}://{cid}"

    def gateway_url_for(self, cid: str) -> str | None:
        """HTTP gateway link for previewing `cid`, if a gateway is configured."""
        if not self._gateway_url:
            return None
        return f"{self._gateway_url}/ipfs/{cid}"
