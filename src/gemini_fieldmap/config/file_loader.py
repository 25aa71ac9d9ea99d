"""TOML configuration files with profile support.

Two files are consulted:

- project: ``[tool.gemini_fieldmap]`` in the nearest ``pyproject.toml``
  (``FIELDMAP_PYPROJECT_PATH`` points at a specific file);
- home: ``~/.config/gemini_fieldmap.toml`` (``FIELDMAP_CONFIG_HOME`` points
  at a different file).

Named profiles live under ``profiles.<name>`` in either file.
"""

from __future__ import annotations

import os
from pathlib import Path
import tomllib
from typing import Any

from gemini_fieldmap.core.exceptions import ConfigurationError

TOOL_SECTION = "gemini_fieldmap"
HOME_CONFIG_ENV = "FIELDMAP_CONFIG_HOME"
PYPROJECT_PATH_ENV = "FIELDMAP_PYPROJECT_PATH"


class ConfigFileError(ConfigurationError):
    """Raised when a configuration file exists but cannot be used."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        """Initialize with file path, message, and optional cause."""
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


class FileConfigLoader:
    """Loads configuration sections from project and home TOML files."""

    def load_project_config(
        self, project_root: Path | None = None, profile: str | None = None
    ) -> dict[str, Any]:
        """Load ``[tool.gemini_fieldmap]`` (or one of its profiles).

        Returns an empty dict when there is no pyproject.toml or no section.

        Raises:
            ConfigFileError: If the file cannot be parsed or the profile is missing.
        """
        path = self._find_pyproject_toml(project_root)
        if path is None:
            return {}
        section = self._read(path).get("tool", {}).get(TOOL_SECTION, {})
        if not section:
            return {}
        return self._select(path, section, profile)

    def load_home_config(self, profile: str | None = None) -> dict[str, Any]:
        """Load the home configuration file (or one of its profiles).

        Raises:
            ConfigFileError: If the file cannot be parsed or the profile is missing.
        """
        path = self._get_home_config_path()
        if not path.exists():
            return {}
        return self._select(path, self._read(path), profile)

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        """Profile names found in the project and home files."""
        profiles: dict[str, list[str]] = {"project": [], "home": []}
        project = self._find_pyproject_toml(project_root)
        if project is not None:
            try:
                section = self._read(project).get("tool", {}).get(TOOL_SECTION, {})
                profiles["project"] = list(section.get("profiles", {}))
            except ConfigFileError:
                pass
        home = self._get_home_config_path()
        if home.exists():
            try:
                profiles["home"] = list(self._read(home).get("profiles", {}))
            except ConfigFileError:
                pass
        return profiles

    # --- Internal helpers ---

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        try:
            with path.open(mode="rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e

    @staticmethod
    def _select(
        path: Path, section: dict[str, Any], profile: str | None
    ) -> dict[str, Any]:
        if profile:
            profiles = section.get("profiles", {})
            if profile not in profiles:
                raise ConfigFileError(
                    path,
                    f"Profile '{profile}' not found. Available profiles: {list(profiles)}",
                )
            return dict(profiles[profile])
        config = dict(section)
        config.pop("profiles", None)
        return config

    def _find_pyproject_toml(self, start_dir: Path | None = None) -> Path | None:
        override = os.getenv(PYPROJECT_PATH_ENV)
        if override:
            path = Path(override)
            return path if path.exists() else None
        current = Path(start_dir or Path.cwd()).resolve()
        while current != current.parent:
            candidate = current / "pyproject.toml"
            if candidate.exists():
                return candidate
            current = current.parent
        return None

    def _get_home_config_path(self) -> Path:
        override = os.getenv(HOME_CONFIG_ENV)
        if override:
            return Path(override)
        return Path.home() / ".config" / f"{TOOL_SECTION}.toml"
