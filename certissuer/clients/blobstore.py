"""
CertIssuer — Content-Addressed Blob Store Client

Uploads opaque byte payloads to an IPFS pinning service and returns the
content identifier (CID) the service assigned. Pinata is the production
backend; the abstract interface lets tests and alternative pinning services
plug in without touching the issuance core.

Environment variables consumed (via PinataConfig):
  CERTISSUER_PINATA_JWT          — Pinata scoped-key JWT (required)
  CERTISSUER_PINATA__API_URL     — API base URL (default: https://api.pinata.cloud)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import orjson
import structlog

if TYPE_CHECKING:
    from certissuer.config import PinataConfig

logger = structlog.get_logger("certissuer.clients.blobstore")


class BlobUploadResult:
    """What the store reported for one upload."""

    __slots__ = ("cid", "size", "timestamp")

    def __init__(self, cid: str, size: int = 0, timestamp: str = "") -> None:
        self.cid = cid
        self.size = size
        self.timestamp = timestamp

    def __repr__(self) -> str:
        return f"BlobUploadResult(cid={self.cid!r}, size={self.size})"


class BlobStoreClient(ABC):
    """Abstract interface for a content-addressed blob store."""

    @abstractmethod
    async def upload(self, data: bytes, name: str, content_type: str) -> BlobUploadResult:
        """Upload bytes and return the CID the store assigned."""
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        ...


class PinataClient(BlobStoreClient):
    """
    Pinata pinning API client.

    One instance is owned by the application root and shared by every
    issuance session. The JWT is read from config at connect time and only
    ever travels in the Authorization header.
    """

    def __init__(
        self,
        config: PinataConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        jwt = self._config.jwt.get_secret_value()
        if not jwt:
            raise RuntimeError(
                "Pinata JWT not configured. Set CERTISSUER_PINATA_JWT in the environment."
            )
        self._client = httpx.AsyncClient(
            base_url=self._config.api_url,
            headers={"Authorization": f"Bearer {jwt}"},
            timeout=self._config.timeout_s,
            transport=self._transport,
        )
        logger.info("pinata_client_initialized", api_url=self._config.api_url)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Pinata client not connected. Call connect() first.")
        return self._client

    async def upload(self, data: bytes, name: str, content_type: str) -> BlobUploadResult:
        response = await self.client.post(
            "/pinning/pinFileToIPFS",
            files={"file": (name, data, content_type)},
            data={"pinataMetadata": orjson.dumps({"name": name}).decode()},
        )
        response.raise_for_status()
        body = response.json()
        cid = body.get("IpfsHash", "")
        if not cid:
            raise ValueError("Pinata response carried no IpfsHash")
        return BlobUploadResult(
            cid=cid,
            size=int(body.get("PinSize", 0) or 0),
            timestamp=str(body.get("Timestamp", "")),
        )

    async def health_check(self) -> dict[str, Any]:
        try:
            response = await self.client.get("/data/testAuthentication")
            response.raise_for_status()
            return {"status": "connected"}
        except Exception as e:
            logger.error("pinata_health_check_failed", error=str(e))
            return {"status": "disconnected", "error": str(e)}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("pinata_client_closed")
