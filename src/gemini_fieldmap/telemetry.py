"""Telemetry context and reporters for the field-mapping engine.

Disabled by default: ``TelemetryContext()`` returns a shared no-op object
unless ``FIELDMAP_TELEMETRY=1`` (or ``DEBUG=1``) is set *and* at least one
reporter is supplied. Scopes nest through ``contextvars`` so concurrent
workers each see their own scope path.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

# Scope names
T_BATCH = "fieldmap.batch"
T_REMOTE = "fieldmap.remote"

# Counter names
C_SHORTCUT = "fieldmap.shortcut"
C_CACHE_HIT = "fieldmap.cache_hit"
C_REMOTE_CALL = "fieldmap.remote_call"
C_UNRESOLVED = "fieldmap.unresolved"
C_CACHE_UNAVAILABLE = "fieldmap.cache_unavailable"

_scope_stack_var: ContextVar[tuple[str, ...]] = ContextVar(
    "fieldmap_scope_stack",
    default=(),
)


def telemetry_enabled() -> bool:
    """Read the environment flag (evaluated per call so tests can toggle it)."""
    return os.getenv("FIELDMAP_TELEMETRY") == "1" or os.getenv("DEBUG") == "1"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Duck-typed protocol for telemetry reporters."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    """Stateless stand-in used whenever telemetry is off."""

    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        return None

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        pass

    def gauge(self, name: str, value: float, **metadata: Any) -> None:
        pass


class _EnabledTelemetryContext:
    """Forwards timings and counters to every configured reporter."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    def __call__(
        self, name: str, **metadata: Any
    ) -> AbstractContextManager[_EnabledTelemetryContext]:
        return self._scope(name, **metadata)

    @contextmanager
    def _scope(self, name: str, **metadata: Any) -> Iterator[_EnabledTelemetryContext]:
        if not name or not isinstance(name, str):
            raise ValueError("Scope name must be a non-empty string")
        stack = _scope_stack_var.get()
        token = _scope_stack_var.set((*stack, name))
        start = time.perf_counter()
        try:
            yield self
        finally:
            duration = time.perf_counter() - start
            _scope_stack_var.reset(token)
            parent = ".".join(stack) if stack else None
            for reporter in self.reporters:
                try:
                    reporter.record_timing(
                        name, duration, depth=len(stack), parent_scope=parent, **metadata
                    )
                except Exception as e:
                    log.error(
                        "Telemetry reporter '%s' failed: %s",
                        type(reporter).__name__,
                        e,
                        exc_info=True,
                    )

    def _emit(self, name: str, value: float, **metadata: Any) -> None:
        stack = _scope_stack_var.get()
        parent = ".".join(stack) if stack else None
        for reporter in self.reporters:
            try:
                reporter.record_metric(name, value, parent_scope=parent, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        """Record a counter metric."""
        self._emit(name, increment, metric_type="counter", **metadata)

    def gauge(self, name: str, value: float, **metadata: Any) -> None:
        """Record a gauge metric."""
        self._emit(name, value, metric_type="gauge", **metadata)


_NO_OP_SINGLETON = _NoOpTelemetryContext()

type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext


def TelemetryContext(*reporters: TelemetryReporter) -> TelemetryContextProtocol:  # noqa: N802
    """Return an enabled context, or the shared no-op when telemetry is off."""
    if reporters and telemetry_enabled():
        return _EnabledTelemetryContext(*reporters)
    return _NO_OP_SINGLETON


class SimpleReporter:
    """In-memory reporter for development; see ``get_report``."""

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque[tuple[float, dict[str, Any]]]] = {}
        self.metrics: dict[str, deque[tuple[Any, dict[str, Any]]]] = {}

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self.timings.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (duration, metadata)
        )

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self.metrics.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (value, metadata)
        )

    def total(self, name: str) -> float:
        """Sum of every value recorded for metric ``name``."""
        return sum(v for v, _ in self.metrics.get(name, ()))

    def get_report(self) -> str:
        """Flat text report of scopes and counters."""
        lines = ["=== Field Mapping Telemetry ==="]
        if self.timings:
            lines.append("--- Timings ---")
            for scope, values in sorted(self.timings.items()):
                durations = [d for d, _ in values]
                lines.append(
                    f"{scope:<30} | Calls: {len(durations):<4} | "
                    f"Avg: {sum(durations) / len(durations):.4f}s"
                )
        if self.metrics:
            lines.append("--- Metrics ---")
            for scope, values in sorted(self.metrics.items()):
                lines.append(f"{scope:<30} | Total: {self.total(scope):,.0f}")
        return "\n".join(lines)
