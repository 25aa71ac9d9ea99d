"""
Global test configuration: environment isolation, markers and shared fixtures.
"""

import asyncio
from collections.abc import Callable, Generator
from contextlib import contextmanager, suppress
import logging
import os
from unittest.mock import patch

import pytest

from gemini_fieldmap.cache import ClassificationCache, InMemoryStore
from gemini_fieldmap.client import (
    ClassifierClient,
    MockClassificationAdapter,
    RateLimitConfig,
    RateLimiter,
)
from gemini_fieldmap.core.types import ClassificationRequest
from gemini_fieldmap.engine import FieldMappingEngine


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from reading project .env files during tests.

    Opt out with @pytest.mark.allow_dotenv.
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_fieldmap_env(request, monkeypatch):
    """Ensure a clean FIELDMAP_* environment for each test.

    Opt out with @pytest.mark.allow_env_pollution.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.upper().startswith("FIELDMAP_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DEBUG", raising=False)


@pytest.fixture(autouse=True)
def neutral_config_files(request, monkeypatch, tmp_path):
    """Point the home and project config paths at isolated temp files.

    Prevents reading a developer's ~/.config/gemini_fieldmap.toml or this
    repository's pyproject.toml. Opt out with
    @pytest.mark.allow_real_home_config.
    """
    if request.node.get_closest_marker("allow_real_home_config"):
        return
    isolated = tmp_path / "config_isolated"
    isolated.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("FIELDMAP_CONFIG_HOME", str(isolated / "gemini_fieldmap.toml"))
    monkeypatch.setenv("FIELDMAP_PYPROJECT_PATH", str(isolated / "pyproject.toml"))


@pytest.fixture
def isolated_config_sources(tmp_path):
    """Write project/home TOML content and env vars for one resolution.

    Env keys without the FIELDMAP_ prefix get it added automatically.
    """

    @contextmanager
    def _setup(
        *,
        pyproject_content: str = "",
        home_content: str = "",
        env_vars: dict[str, str] | None = None,
    ) -> Generator[None]:
        clean_env = {
            k: v for k, v in os.environ.items() if not k.upper().startswith("FIELDMAP_")
        }
        for key, value in (env_vars or {}).items():
            if not key.startswith("FIELDMAP_"):
                key = f"FIELDMAP_{key.upper()}"
            clean_env[key] = value

        pyproject_path = tmp_path / "project" / "pyproject.toml"
        home_path = tmp_path / "home" / "gemini_fieldmap.toml"
        pyproject_path.parent.mkdir(exist_ok=True)
        home_path.parent.mkdir(exist_ok=True)
        if pyproject_content:
            pyproject_path.write_text(pyproject_content)
        if home_content:
            home_path.write_text(home_content)

        clean_env["FIELDMAP_PYPROJECT_PATH"] = str(pyproject_path)
        clean_env["FIELDMAP_CONFIG_HOME"] = str(home_path)
        with patch.dict(os.environ, clean_env, clear=True):
            yield

    return _setup


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "contract: Behavioral guarantees of the public components",
        "integration: Components wired together with mocked remote calls",
        "allow_dotenv: Permit python-dotenv to load .env files",
        "allow_env_pollution: Keep FIELDMAP_* variables from the real environment",
        "allow_real_home_config: Read the real home configuration file",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


# --- Core Fixtures ---


async def no_sleep(_delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""


@pytest.fixture
def fast_limits() -> RateLimitConfig:
    """Generous limits with no batch spacing so tests never wait on the limiter."""
    return RateLimitConfig(
        requests_per_minute=1000, concurrent_requests=3, batch_delay_ms=0
    )


@pytest.fixture
def make_engine(fast_limits) -> Callable[..., FieldMappingEngine]:
    """Factory building an engine from in-memory parts.

    Keyword arguments override the store, adapter, limiter config and
    classifier options.
    """

    def _make(
        *,
        store=None,
        adapter=None,
        limits: RateLimitConfig | None = None,
        max_retries: int = 3,
        timeout_seconds: float = 5.0,
        default_deadline: float | None = None,
        clock=None,
    ) -> FieldMappingEngine:
        cache_kwargs = {"clock": clock} if clock is not None else {}
        cache = ClassificationCache(store or InMemoryStore(), **cache_kwargs)
        limiter = RateLimiter(limits or fast_limits)
        classifier = ClassifierClient(
            adapter or MockClassificationAdapter(),
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            sleep=no_sleep,
        )
        return FieldMappingEngine(
            cache, limiter, classifier, default_deadline=default_deadline
        )

    return _make


class RecordingAdapter:
    """Classification adapter that records calls and peak concurrency.

    Labels map to category strings through ``table``; labels listed in
    ``hang_labels`` never answer.
    """

    def __init__(
        self,
        table: dict[str, str] | None = None,
        *,
        default: str = "dynamic",
        delay: float = 0.0,
        hang_labels: tuple[str, ...] = (),
    ) -> None:
        self.table = table or {}
        self.default = default
        self.delay = delay
        self.hang_labels = hang_labels
        self.calls: list[ClassificationRequest] = []
        self.active = 0
        self.peak = 0

    async def classify(self, request: ClassificationRequest) -> dict[str, object]:
        self.calls.append(request)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if request.raw_label_text in self.hang_labels:
                await asyncio.sleep(3600)
            if self.delay:
                await asyncio.sleep(self.delay)
            category = self.table.get(request.raw_label_text, self.default)
            return {"category": category, "confidence": 0.9}
        finally:
            self.active -= 1

    def calls_for(self, label: str) -> int:
        return sum(1 for r in self.calls if r.raw_label_text == label)


class FailingStore:
    """Persistence backend whose every operation raises."""

    def __init__(self) -> None:
        self.calls = 0

    async def get(self, key):
        self.calls += 1
        raise OSError("storage unavailable")

    async def set(self, key, value):
        self.calls += 1
        raise OSError("storage unavailable")

    async def remove(self, key):
        self.calls += 1
        raise OSError("storage unavailable")


@pytest.fixture
def recording_adapter() -> type[RecordingAdapter]:
    """The RecordingAdapter class, for tests that build their own instances."""
    return RecordingAdapter


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()
