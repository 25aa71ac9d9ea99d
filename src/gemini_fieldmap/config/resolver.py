"""Configuration resolution with precedence handling.

Programmatic > Environment > Project file > Home file > Defaults
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import pydantic

from gemini_fieldmap.core.exceptions import ConfigurationError

from .audit import SourceTracker
from .env_loader import EnvironmentConfigLoader
from .file_loader import ConfigFileError, FileConfigLoader
from .schema import FieldMapSettings
from .types import ConfigOrigin, ResolvedConfig

log = logging.getLogger(__name__)

PROFILE_ENV = "FIELDMAP_PROFILE"


class ConfigResolver:
    """Merges configuration from every source in precedence order."""

    def __init__(self) -> None:  # noqa: D107
        self.file_loader = FileConfigLoader()
        self.env_loader = EnvironmentConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        profile: str | None = None,
        use_env_file: str | Path | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Resolve configuration from all sources.

        Args:
            programmatic: Overrides with the highest precedence.
            profile: Profile to load from files; ``FIELDMAP_PROFILE`` if None.
            use_env_file: Optional ``.env`` file layered under the environment.
            project_root: Directory to search for pyproject.toml.

        Raises:
            ConfigurationError: If the merged values fail validation.
            ConfigFileError: If the project file is malformed.
        """
        tracker = SourceTracker()
        merged: dict[str, Any] = {}
        if profile is None:
            profile = os.getenv(PROFILE_ENV) or None

        def apply(values: dict[str, Any], origin: ConfigOrigin) -> None:
            for field, value in values.items():
                if field in known:
                    merged[field] = value
                    tracker.set_origin(field, origin)
                else:
                    log.debug("Ignoring unknown config field %r (%s)", field, origin)

        defaults = FieldMapSettings.defaults()
        known = set(defaults)
        apply(defaults, "default")

        try:
            apply(self.file_loader.load_home_config(profile=profile), "file")
        except ConfigFileError as e:
            # A broken home file never blocks resolution.
            log.warning("Skipping home configuration: %s", e)

        try:
            apply(
                self.file_loader.load_project_config(
                    project_root=project_root, profile=profile
                ),
                "file",
            )
        except ConfigFileError as e:
            # The base project section must parse; a missing profile may not.
            if profile is None:
                raise
            log.warning("Skipping project profile %r: %s", profile, e)

        try:
            apply(self.env_loader.load_env_config(env_file=use_env_file), "env")
        except FileNotFoundError as e:
            raise ConfigurationError(f"Environment configuration error: {e}") from e

        if programmatic:
            apply(programmatic, "programmatic")

        try:
            settings = FieldMapSettings(**merged)
        except pydantic.ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        return ResolvedConfig(**settings.to_dict(), origin=tracker.get_source_map())

    def get_effective_profile(self) -> str | None:
        """Profile name from ``FIELDMAP_PROFILE``, or None."""
        return os.getenv(PROFILE_ENV) or None

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        """Profile names from the project and home files."""
        return self.file_loader.list_available_profiles(project_root)
