"""
CertIssuer — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides and secrets)

Credentials for the blob store and the document store are never embedded in
source. They arrive through the process environment and live only on the
config object owned by the application root.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class RedisConfig(BaseModel):
    url: str = "redis://redis:6379/0"
    prefix: str = "certissuer"
    password: str = ""
    collection: str = "certificateRequests"

    @property
    def full_url(self) -> str:
        """Build URL with password injected."""
        clean_pw = self.password.strip() if self.password else ""
        if clean_pw and "://" in self.url:
            scheme, rest = self.url.split("://", 1)
            return f"{scheme}://:{clean_pw}@{rest}"
        return self.url


class PinataConfig(BaseModel):
    jwt: SecretStr = SecretStr("")  # Required: set via CERTISSUER_PINATA_JWT
    api_url: str = "https://api.pinata.cloud"
    gateway_url: str = "https://gateway.pinata.cloud"
    timeout_s: float = 60.0

    @field_validator("jwt", mode="before")
    @classmethod
    def _strip_jwt(cls, v: Any) -> Any:
        # Secret managers can inject trailing \r\n into env vars
        if isinstance(v, str):
            return v.strip()
        return v


class PublisherConfig(BaseModel):
    uri_scheme: str = "ipfs"
    metadata_filename: str = "certificate_data.json"


class IssuanceConfig(BaseModel):
    session_ttl_s: float = 3600.0  # Idle sessions are closed after this long


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Config ──────────────────────────────────────────────────


class CertIssuerConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="CERTISSUER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    redis: RedisConfig = Field(default_factory=RedisConfig)
    pinata: PinataConfig = Field(default_factory=PinataConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    issuance: IssuanceConfig = Field(default_factory=IssuanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path | None = None) -> CertIssuerConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Inject secrets from environment
    if pinata_jwt := os.environ.get("CERTISSUER_PINATA_JWT"):
        raw.setdefault("pinata", {})["jwt"] = pinata_jwt
    if pinata_api := os.environ.get("CERTISSUER_PINATA__API_URL"):
        raw.setdefault("pinata", {})["api_url"] = pinata_api
    if redis_url := os.environ.get("CERTISSUER_REDIS__URL"):
        raw.setdefault("redis", {})["url"] = redis_url
    if redis_pw := os.environ.get("CERTISSUER_REDIS_PASSWORD"):
        raw.setdefault("redis", {})["password"] = redis_pw
    if log_level := os.environ.get("CERTISSUER_LOGGING__LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    return CertIssuerConfig(**raw)
