"""Authorization configuration via pydantic-settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthzSettings(BaseSettings):
    """Engine settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="AUTHZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mode: Literal["production", "staging", "development", "test"] = "development"

    # Store lookups
    store_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for each role or relation lookup"
    )
    max_depth: int = Field(
        default=8,
        ge=0,
        description="Maximum number of parent relations ascended per check"
    )

    # Decision cache
    cache_enabled: bool = False
    cache_ttl_seconds: float = Field(default=60, gt=0)
    cache_max_entries: int = Field(default=10000, gt=0)

    # Rule file (built-in rules when unset)
    schema_path: str | None = None

    # Development identity headers (NEVER enable in production)
    allow_header_auth: bool = False

    @model_validator(mode="after")
    def validate_production_security(self) -> "AuthzSettings":
        """Enforce security requirements for production."""
        if self.mode == "production" and self.allow_header_auth:
            raise ValueError(
                "SECURITY ERROR: Header-based identity is forbidden in production."
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.mode == "production"
