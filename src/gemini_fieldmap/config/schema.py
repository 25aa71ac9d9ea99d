"""Configuration schema and validation using Pydantic.

Validates and coerces values gathered from every source (environment,
files, programmatic overrides) into typed settings with defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gemini_fieldmap.core.models import (
    DEFAULT_BATCH_DELAY_MS,
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_CACHE_TTL_HOURS,
    DEFAULT_CONCURRENT_REQUESTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_REQUESTS_PER_MINUTE,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TIMEOUT_SECONDS,
)

ENV_PREFIX = "FIELDMAP_"


class FieldMapSettings(BaseSettings):
    """Pydantic settings schema for the field-mapping engine.

    Environment variables use the ``FIELDMAP_`` prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=None,  # .env files are loaded explicitly by the resolver
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = Field(default=None, description="Google Gemini API key")
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    use_real_api: bool = Field(
        default=False, description="Call Gemini instead of the deterministic mock"
    )

    requests_per_minute: int = Field(default=DEFAULT_REQUESTS_PER_MINUTE, ge=1)
    concurrent_requests: int = Field(default=DEFAULT_CONCURRENT_REQUESTS, ge=1)
    batch_delay_ms: int = Field(default=DEFAULT_BATCH_DELAY_MS, ge=0)

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, ge=1, description="Total attempts per field"
    )
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    batch_deadline_seconds: float | None = Field(default=None, gt=0)

    cache_ttl_hours: float = Field(default=DEFAULT_CACHE_TTL_HOURS, gt=0)
    cache_path: Path | None = Field(
        default=None, description="JSON cache file; in-memory when unset"
    )
    cache_namespace: str = Field(default=DEFAULT_CACHE_NAMESPACE, min_length=1)

    @model_validator(mode="after")
    def validate_api_key_requirement(self) -> FieldMapSettings:
        """Ensure api_key is provided when use_real_api is True."""
        if self.use_real_api and not self.api_key:
            raise ValueError(
                "api_key is required when use_real_api=True. "
                "Set FIELDMAP_API_KEY, provide it in a config file, "
                "or pass it programmatically."
            )
        return self

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Known configuration fields, in declaration order."""
        return tuple(cls.model_fields)

    @classmethod
    def defaults(cls) -> dict[str, Any]:
        """Schema defaults, without reading the environment."""
        return {
            name: info.get_default(call_default_factory=True)
            for name, info in cls.model_fields.items()
        }

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary of resolved values."""
        return self.model_dump()
