"""
CertIssuer — External Service Clients

Connection management for Redis (document collections) and the
content-addressed blob store (Pinata / IPFS).
"""

from certissuer.clients.blobstore import BlobStoreClient, BlobUploadResult, PinataClient
from certissuer.clients.redis import RedisClient

__all__ = [
    "BlobStoreClient",
    "BlobUploadResult",
    "PinataClient",
    "RedisClient",
]
