"""Configuration data types: resolve once, freeze, then pass around."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, NamedTuple

from gemini_fieldmap.client.rate_limiter import RateLimitConfig

ConfigOrigin = Literal["programmatic", "env", "file", "default"]
SourceMap = Mapping[str, ConfigOrigin]


class ResolvedConfig(NamedTuple):
    """Merged configuration plus where each value came from.

    Logically immutable; ``with_overrides`` returns a new instance.
    """

    api_key: str | None
    model: str
    use_real_api: bool
    requests_per_minute: int
    concurrent_requests: int
    batch_delay_ms: int
    max_retries: int
    retry_base_delay: float
    timeout_seconds: float
    batch_deadline_seconds: float | None
    cache_ttl_hours: float
    cache_path: Path | None
    cache_namespace: str

    origin: SourceMap

    def __repr__(self) -> str:
        """Repr with redacted API key for safe logging."""
        values = self._asdict()
        values["api_key"] = "[REDACTED]" if self.api_key else None
        values["origin"] = dict(self.origin)
        body = ", ".join(f"{k}={v!r}" for k, v in values.items())
        return f"ResolvedConfig({body})"

    __str__ = __repr__

    def to_frozen(self) -> FrozenConfig:
        """Drop the audit metadata and freeze the values."""
        values = self._asdict()
        values.pop("origin")
        return FrozenConfig(**values)

    def with_overrides(self, **overrides: object) -> ResolvedConfig:
        """Copy with programmatic overrides applied; unknown fields are ignored."""
        values = self._asdict()
        origin = dict(self.origin)
        for field, value in overrides.items():
            if field in values and field != "origin":
                values[field] = value
                origin[field] = "programmatic"
        values["origin"] = origin
        return ResolvedConfig(**values)

    def audit(self) -> str:
        """Redacted, human-readable report of each field's origin."""
        from .audit import generate_redacted_audit

        values = self._asdict()
        values.pop("origin")
        return generate_redacted_audit(values, self.origin)


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable configuration handed to ``create_engine``."""

    api_key: str | None
    model: str
    use_real_api: bool
    requests_per_minute: int
    concurrent_requests: int
    batch_delay_ms: int
    max_retries: int
    retry_base_delay: float
    timeout_seconds: float
    batch_deadline_seconds: float | None
    cache_ttl_hours: float
    cache_path: Path | None
    cache_namespace: str

    def __repr__(self) -> str:
        """Representation with redacted API key."""
        api_key_display = "[REDACTED]" if self.api_key else None
        return (
            f"FrozenConfig(api_key={api_key_display!r}, model={self.model!r}, "
            f"use_real_api={self.use_real_api!r}, "
            f"requests_per_minute={self.requests_per_minute!r}, "
            f"concurrent_requests={self.concurrent_requests!r}, "
            f"batch_delay_ms={self.batch_delay_ms!r}, "
            f"max_retries={self.max_retries!r}, "
            f"cache_ttl_hours={self.cache_ttl_hours!r})"
        )

    __str__ = __repr__

    def rate_limit_config(self) -> RateLimitConfig:
        """Limiter settings derived from this configuration."""
        return RateLimitConfig(
            requests_per_minute=self.requests_per_minute,
            concurrent_requests=self.concurrent_requests,
            batch_delay_ms=self.batch_delay_ms,
        )
