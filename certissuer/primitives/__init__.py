"""
CertIssuer — Shared Primitives
"""

from certissuer.primitives.common import (
    CertBaseModel,
    HealthStatus,
    new_id,
    utc_now,
)

__all__ = [
    "CertBaseModel",
    "HealthStatus",
    "new_id",
    "utc_now",
]
