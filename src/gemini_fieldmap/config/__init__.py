"""Configuration for the field-mapping engine.

Resolve once, freeze, then pass the ``FrozenConfig`` to ``create_engine``.

Key components:
- FieldMapSettings: pydantic-settings schema (``FIELDMAP_*`` variables)
- ResolvedConfig: merged values plus the origin of each one
- FrozenConfig: immutable values consumed by the engine
"""

from .api import (
    check_environment,
    get_effective_profile,
    list_available_profiles,
    print_config_audit,
    resolve_config,
)
from .audit import SourceTracker, generate_redacted_audit, generate_telemetry_summary
from .file_loader import ConfigFileError, FileConfigLoader
from .resolver import ConfigResolver
from .schema import FieldMapSettings
from .types import ConfigOrigin, FrozenConfig, ResolvedConfig, SourceMap

__all__ = [
    "ConfigFileError",
    "ConfigOrigin",
    "ConfigResolver",
    "FieldMapSettings",
    "FileConfigLoader",
    "FrozenConfig",
    "ResolvedConfig",
    "SourceMap",
    "SourceTracker",
    "check_environment",
    "generate_redacted_audit",
    "generate_telemetry_summary",
    "get_effective_profile",
    "list_available_profiles",
    "print_config_audit",
    "resolve_config",
]
