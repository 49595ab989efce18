"""
Settings for the Dynatrace SLI bridge.

Environment variables use the DT_ prefix. The SLI core never reads these
itself: callers turn them into an immutable DynatraceConfig and pass that in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class DynatraceConfig:
    """Everything the REST client needs to talk to one tenant."""

    api_url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    verify_ssl: bool = True
    timeout: float = 30.0
    proxy: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DT_",
    )

    # Tenant
    tenant: str = ""
    api_token: str | None = None

    # HTTP client settings
    http_ssl_verify: bool = True
    http_proxy: str | None = None
    http_timeout: float = 30.0

    # Dashboard reference: empty, "query" or a dashboard UUID
    dashboard: str = ""

    @property
    def api_url(self) -> str:
        tenant = self.tenant.rstrip("/")
        if tenant and not tenant.startswith(("http://", "https://")):
            tenant = f"https://{tenant}"
        return tenant

    def client_config(self) -> DynatraceConfig:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Api-Token {self.api_token}"
        return DynatraceConfig(
            api_url=self.api_url,
            headers=headers,
            verify_ssl=self.http_ssl_verify,
            timeout=self.http_timeout,
            proxy=self.http_proxy,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
