"""Public entry points of the configuration system."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, overload

from .resolver import ConfigResolver
from .types import FrozenConfig, ResolvedConfig

# ruff: noqa: T201

_resolver = ConfigResolver()


@overload
def resolve_config(
    programmatic: dict[str, Any] | None = ...,
    *,
    profile: str | None = ...,
    use_env_file: str | Path | None = ...,
    project_root: Path | None = ...,
    explain: Literal[False] = ...,
) -> FrozenConfig: ...


@overload
def resolve_config(
    programmatic: dict[str, Any] | None = ...,
    *,
    profile: str | None = ...,
    use_env_file: str | Path | None = ...,
    project_root: Path | None = ...,
    explain: Literal[True],
) -> ResolvedConfig: ...


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    profile: str | None = None,
    use_env_file: str | Path | None = None,
    project_root: Path | None = None,
    explain: bool = False,
) -> FrozenConfig | ResolvedConfig:
    """Resolve configuration from all sources.

    Precedence: programmatic > environment > project file > home file >
    defaults.

    Args:
        programmatic: Overrides with the highest precedence. Unknown keys
            are ignored.
        profile: Profile to load from files; ``FIELDMAP_PROFILE`` if None.
        use_env_file: Optional ``.env`` file to layer under the environment.
        project_root: Directory to search for pyproject.toml.
        explain: Return the ``ResolvedConfig`` with its origin map instead
            of the frozen values.

    Raises:
        ConfigurationError: If validation fails.
        ConfigFileError: If the project file is malformed.

    Example:
        cfg = resolve_config({"concurrent_requests": 2})
        engine = create_engine(cfg)
    """
    resolved = _resolver.resolve(
        programmatic=programmatic,
        profile=profile,
        use_env_file=use_env_file,
        project_root=project_root,
    )
    return resolved if explain else resolved.to_frozen()


def list_available_profiles(project_root: Path | None = None) -> dict[str, list[str]]:
    """Profile names from the project and home configuration files."""
    return _resolver.list_available_profiles(project_root)


def get_effective_profile() -> str | None:
    """Profile selected through ``FIELDMAP_PROFILE``, if any."""
    return _resolver.get_effective_profile()


def check_environment() -> dict[str, str]:
    """Currently set ``FIELDMAP_*`` variables, with secrets redacted."""
    return _resolver.env_loader.get_env_summary()


def print_config_audit(config: ResolvedConfig | None = None) -> None:
    """Print where each configuration value came from (secrets redacted)."""
    resolved = config if config is not None else resolve_config(explain=True)
    print(resolved.audit())
