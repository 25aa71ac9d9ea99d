"""Print the redacted configuration audit.

Usage:
    python -m gemini_fieldmap.config
    python -m gemini_fieldmap.config --profile dev
    python -m gemini_fieldmap.config --env-file .env
    python -m gemini_fieldmap.config --list-profiles
"""

from __future__ import annotations

import argparse
import sys

from gemini_fieldmap.core.exceptions import ConfigurationError

from .api import (
    check_environment,
    get_effective_profile,
    list_available_profiles,
    resolve_config,
)
from .audit import generate_telemetry_summary

# ruff: noqa: T201


def main(argv: list[str] | None = None) -> int:
    """Resolve configuration and print where every value came from."""
    parser = argparse.ArgumentParser(prog="python -m gemini_fieldmap.config")
    parser.add_argument("--profile", default=None, help="Profile to resolve")
    parser.add_argument("--env-file", default=None, help=".env file to load")
    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="List profiles defined in the project and home files",
    )
    args = parser.parse_args(argv)

    if args.list_profiles:
        for location, names in list_available_profiles().items():
            print(f"{location}: {', '.join(names) or '(none)'}")
        return 0

    try:
        resolved = resolve_config(
            profile=args.profile, use_env_file=args.env_file, explain=True
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    print("=== Effective Configuration ===")
    profile = args.profile or get_effective_profile()
    if profile:
        print(f"profile: {profile}")
    print(resolved.audit())
    print("\n=== Sources ===")
    for origin, count in sorted(generate_telemetry_summary(resolved.origin).items()):
        print(f"{origin}: {count}")
    env = check_environment()
    if env:
        print("\n=== Environment ===")
        for key, value in env.items():
            print(f"{key}={value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
