"""
CertIssuer — Common Primitives

Shared enums, base classes, and utilities used across the service.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


class HealthStatus(str, enum.Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CertBaseModel(BaseModel):
    """Base model for all records. Accepts both field names and their aliases."""

    model_config = {"populate_by_name": True, "from_attributes": True}
