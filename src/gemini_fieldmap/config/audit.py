"""Source tracking and redacted audit output for resolved configuration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .schema import ENV_PREFIX
from .types import ConfigOrigin, SourceMap

_SENSITIVE_FIELDS = frozenset({"api_key"})


class SourceTracker:
    """Records where each configuration value came from during resolution."""

    def __init__(self) -> None:  # noqa: D107
        self._origins: dict[str, ConfigOrigin] = {}

    def set_origin(self, field: str, origin: ConfigOrigin) -> None:
        """Record the origin of ``field``."""
        self._origins[field] = origin

    def set_multiple(self, fields: Mapping[str, Any], origin: ConfigOrigin) -> None:
        """Record the same origin for several fields."""
        for field in fields:
            self._origins[field] = origin

    def get_source_map(self) -> SourceMap:
        """Copy of the origins recorded so far."""
        return dict(self._origins)


def generate_telemetry_summary(source_map: SourceMap) -> dict[str, int]:
    """Count fields per origin (e.g. ``{"env": 2, "default": 11}``)."""
    counts: dict[str, int] = {}
    for origin in source_map.values():
        counts[origin] = counts.get(origin, 0) + 1
    return counts


def generate_redacted_audit(
    config_dict: Mapping[str, Any], source_map: SourceMap
) -> str:
    """One ``field: origin:value`` line per field; secrets never printed."""
    lines = []
    for field, value in config_dict.items():
        origin = source_map.get(field)
        if origin is None:
            continue
        if field in _SENSITIVE_FIELDS:
            if value is None:
                display = f"{origin}:None"
            elif origin == "env":
                display = f"env:{ENV_PREFIX}{field.upper()}=<redacted>"
            else:
                display = f"{origin}:<redacted>"
        elif origin == "env":
            display = f"env:{ENV_PREFIX}{field.upper()}={value}"
        else:
            display = f"{origin}:{value}"
        lines.append(f"{field}: {display}")
    return "\n".join(lines)
