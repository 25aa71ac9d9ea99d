"""Environment variable configuration loading.

Reads ``FIELDMAP_*`` variables, optionally layered over a ``.env`` file
parsed with python-dotenv. Variables already present in the process
environment win over values from the file; the file never mutates
``os.environ``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from .schema import ENV_PREFIX, FieldMapSettings


class EnvironmentConfigLoader:
    """Loads the configuration fields that are set in the environment."""

    def load_env_config(self, env_file: str | Path | None = None) -> dict[str, Any]:
        """Return raw values for every field with a ``FIELDMAP_*`` variable.

        Values stay strings here; the resolver validates the merged result.

        Raises:
            FileNotFoundError: If ``env_file`` is given but does not exist.
        """
        source: dict[str, str | None] = {}
        if env_file:
            env_path = Path(env_file)
            if not env_path.exists():
                raise FileNotFoundError(f"Environment file not found: {env_path}")
            source.update(dotenv_values(env_path))
        source.update(os.environ)

        values: dict[str, Any] = {}
        for field in FieldMapSettings.field_names():
            raw = _lookup(source, ENV_PREFIX + field.upper())
            if raw is not None:
                values[field] = raw
        return values

    def get_env_summary(self) -> dict[str, str]:
        """Currently set ``FIELDMAP_*`` variables, secrets redacted."""
        summary = {}
        for key, value in sorted(os.environ.items()):
            if not key.upper().startswith(ENV_PREFIX):
                continue
            summary[key] = "<redacted>" if "API_KEY" in key.upper() else value
        return summary


def _lookup(source: dict[str, str | None], name: str) -> str | None:
    if name in source:
        return source[name]
    # Environment names are case-insensitive for configuration purposes.
    for key, value in source.items():
        if key.upper() == name:
            return value
    return None
