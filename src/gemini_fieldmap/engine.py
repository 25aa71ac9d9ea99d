"""Batch orchestration: shortcuts, then cache, then bounded remote calls.

``FieldMappingEngine.classify_batch`` is the single entry point. Every input
position receives exactly one ``ClassificationResult``; problems with one
field degrade that field to ``UNRESOLVED`` and never abort its siblings.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
import logging
import time
from typing import Any, cast

import pydantic

from gemini_fieldmap.cache import ClassificationCache, InMemoryStore, JSONFileStore
from gemini_fieldmap.cache.store import KeyValueStore
from gemini_fieldmap.client import (
    ClassificationAdapter,
    ClassifierClient,
    GeminiClassificationAdapter,
    MockClassificationAdapter,
    RateLimiter,
)
from gemini_fieldmap.config import FrozenConfig, resolve_config
from gemini_fieldmap.core.exceptions import (
    BatchRejected,
    CacheUnavailable,
    ConfigurationError,
    FieldMapError,
    RateLimitTimeout,
    ValidationError,
)
from gemini_fieldmap.core.models import Category
from gemini_fieldmap.core.types import (
    BatchPhase,
    BatchProgress,
    BatchResult,
    CacheEntry,
    ClassificationRequest,
    ClassificationResult,
    Failure,
    FailureReason,
    FieldDescriptor,
    Result,
    ResultSource,
    Success,
)
from gemini_fieldmap.pipeline import BoundedWorkerPool, ShortcutMatcher
from gemini_fieldmap.schemas import ClassifyFieldsRequest
from gemini_fieldmap.telemetry import (
    C_CACHE_HIT,
    C_CACHE_UNAVAILABLE,
    C_SHORTCUT,
    C_UNRESOLVED,
    T_BATCH,
    TelemetryContext,
    TelemetryContextProtocol,
)

log = logging.getLogger(__name__)

_MAX_NEARBY_LABELS = 2

ProgressCallback = Callable[[BatchProgress], None]


class FieldMappingEngine:
    """Classifies batches of form fields with as few remote calls as possible."""

    def __init__(
        self,
        cache: ClassificationCache,
        limiter: RateLimiter,
        classifier: ClassifierClient,
        *,
        matcher: ShortcutMatcher | None = None,
        default_deadline: float | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Wire the engine from explicitly constructed components.

        Args:
            cache: Classification cache shared across batches.
            limiter: Process-wide rate limiter.
            classifier: Remote classifier client.
            matcher: Keyword shortcut matcher; the default keyword lists if None.
            default_deadline: Batch deadline in seconds when a call gives none.
            telemetry: Optional telemetry context.
        """
        self.cache = cache
        self.limiter = limiter
        self.classifier = classifier
        self.matcher = matcher or ShortcutMatcher()
        self.default_deadline = default_deadline
        self._telemetry = telemetry or TelemetryContext()

    async def classify_batch(
        self,
        fields: Iterable[FieldDescriptor | Mapping[str, Any]],
        *,
        page_title: str | None = None,
        deadline: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchResult:
        """Classify ``fields`` and return results in input order.

        Args:
            fields: Descriptors, or mappings accepted by
                ``FieldDescriptor.from_mapping``.
            page_title: Page title passed to the remote classifier as a hint.
            deadline: Seconds allowed for the whole batch, cache lookups
                included; falls back to ``default_deadline``. On expiry the
                remaining fields resolve to ``UNRESOLVED`` and the call returns.
            on_progress: Called with a ``BatchProgress`` after the local
                phase, as each remote field finishes and once at the end.
                Exceptions it raises are logged and ignored.

        Raises:
            BatchRejected: If ``fields`` is not an iterable of items.
        """
        items = self._materialize(fields)
        effective_deadline = deadline if deadline is not None else self.default_deadline
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        expires_at = (
            None if effective_deadline is None else loop.time() + effective_deadline
        )

        with self._telemetry(T_BATCH, size=len(items)) as tele:
            slots: list[ClassificationResult | None] = [None] * len(items)
            descriptors: list[FieldDescriptor | None] = [None] * len(items)
            groups: dict[str, list[int]] = {}

            for index, item in enumerate(items):
                try:
                    descriptor = self._coerce(item, index)
                except ValidationError as e:
                    log.debug("Rejected field at index %d: %s", index, e)
                    slots[index] = ClassificationResult.unresolved(
                        _raw_fingerprint(item),
                        FailureReason.VALIDATION,
                        f"fields[{e.index}]: {e}",
                    )
                    continue
                descriptors[index] = descriptor
                groups.setdefault(descriptor.fingerprint, []).append(index)

            resolved: dict[str, ClassificationResult] = {}
            pending: list[ClassificationRequest] = []
            try:
                async with asyncio.timeout_at(expires_at):
                    for fingerprint, indices in groups.items():
                        descriptor = cast("FieldDescriptor", descriptors[indices[0]])
                        shortcut = self.matcher.match(descriptor)
                        if shortcut is not None:
                            resolved[fingerprint] = shortcut
                            tele.count(C_SHORTCUT)
                            await self._cache_put(shortcut, tele)
                            continue
                        entry = await self._cache_get(fingerprint, tele)
                        if entry is not None:
                            resolved[fingerprint] = ClassificationResult(
                                fingerprint=fingerprint,
                                category=entry.category,
                                confidence=entry.confidence,
                                source=ResultSource.CACHE,
                            )
                            tele.count(C_CACHE_HIT)
                            continue
                        pending.append(
                            ClassificationRequest(
                                fingerprint=fingerprint,
                                raw_label_text=descriptor.raw_label_text,
                                page_title=page_title,
                                nearby_labels=_nearby_labels(descriptors, indices[0]),
                            )
                        )
            except TimeoutError:
                log.warning(
                    "Batch deadline of %.2fs elapsed during shortcut and cache lookups",
                    effective_deadline,
                )
                pending = []

            total = len(groups)
            self._notify(
                on_progress, BatchProgress(BatchPhase.LOCAL, len(resolved), total)
            )

            if pending:

                def remote_done(fingerprint: str) -> None:
                    self._notify(
                        on_progress,
                        BatchProgress(
                            BatchPhase.REMOTE, len(resolved), total, fingerprint
                        ),
                    )

                await self._resolve_remote(
                    pending, resolved, expires_at, tele, remote_done
                )

            for fingerprint, indices in groups.items():
                result = resolved.get(fingerprint)
                if result is None:
                    result = resolved[fingerprint] = ClassificationResult.unresolved(
                        fingerprint,
                        FailureReason.DEADLINE,
                        "batch deadline elapsed before classification finished",
                    )
                for index in indices:
                    slots[index] = result

            results = tuple(r for r in slots if r is not None)
            unresolved = sum(1 for r in results if not r.is_resolved)
            if unresolved:
                tele.count(C_UNRESOLVED, unresolved)

        self._notify(on_progress, BatchProgress(BatchPhase.COMPLETE, total, total))
        batch = BatchResult(results=results, duration_s=time.perf_counter() - started)
        log.debug("Classified batch of %d field(s): %s", len(batch), batch.counts())
        return batch

    async def handle(
        self, request: Mapping[str, Any]
    ) -> Result[BatchResult, FieldMapError]:
        """Handle a ``classifyFields`` message without raising.

        The envelope is validated structurally; individual fields are still
        validated one by one by ``classify_batch``.
        """
        try:
            envelope = ClassifyFieldsRequest.model_validate(request)
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(p) for p in first["loc"]) or "request"
            return Failure(BatchRejected(f"{location}: {first['msg']}"))
        try:
            batch = await self.classify_batch(
                [payload.to_mapping() for payload in envelope.fields],
                page_title=envelope.page_title,
                deadline=envelope.deadline_seconds,
            )
        except FieldMapError as e:
            return Failure(e)
        return Success(batch)

    async def clear_cache(self) -> None:
        """Drop every cached classification."""
        await self.cache.clear()

    async def prune_cache(self) -> int:
        """Evict expired cache entries; returns the number removed."""
        return await self.cache.prune()

    async def invalidate(self, fingerprint: str) -> bool:
        """Forget the cached classification for one fingerprint."""
        return await self.cache.invalidate(fingerprint)

    async def cache_stats(self) -> dict[str, int]:
        """Stored, live and expired entry counts plus serialized size."""
        return (await self.cache.stats()).to_dict()

    def status(self) -> dict[str, Any]:
        """Limiter state and cache counters, for diagnostics."""
        return {
            "rate_limiter": self.limiter.status(),
            "cache": self.cache.metrics.to_dict(),
        }

    # --- Remote phase ---

    async def _resolve_remote(
        self,
        pending: list[ClassificationRequest],
        resolved: dict[str, ClassificationResult],
        expires_at: float | None,
        tele: Any,
        on_done: Callable[[str], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        waiting_for_permit: set[str] = set()

        async def work(request: ClassificationRequest) -> None:
            fingerprint = request.fingerprint
            remaining = None if expires_at is None else expires_at - loop.time()
            waiting_for_permit.add(fingerprint)
            try:
                token = await self.limiter.acquire(remaining)
            except RateLimitTimeout as e:
                resolved[fingerprint] = ClassificationResult.unresolved(
                    fingerprint, FailureReason.RATE_LIMIT_TIMEOUT, str(e)
                )
                waiting_for_permit.discard(fingerprint)
                on_done(fingerprint)
                return
            waiting_for_permit.discard(fingerprint)
            try:
                result = await self.classifier.classify(request, token)
            finally:
                self.limiter.release(token)
            resolved[fingerprint] = result
            if result.is_resolved:
                await self._cache_put(result, tele)
            on_done(fingerprint)

        pool = BoundedWorkerPool(self.limiter.config.concurrent_requests)
        try:
            async with asyncio.timeout_at(expires_at):
                await pool.run(pending, work)
        except TimeoutError:
            log.warning(
                "Batch deadline elapsed with %d field(s) outstanding",
                sum(1 for r in pending if r.fingerprint not in resolved),
            )

        for request in pending:
            fingerprint = request.fingerprint
            if fingerprint in resolved:
                continue
            if fingerprint in waiting_for_permit:
                reason = FailureReason.RATE_LIMIT_TIMEOUT
                message = "batch deadline elapsed while waiting for a rate-limit permit"
            else:
                reason = FailureReason.DEADLINE
                message = "batch deadline elapsed before classification finished"
            resolved[fingerprint] = ClassificationResult.unresolved(
                fingerprint, reason, message
            )

    # --- Cache access (degrades on failure) ---

    async def _cache_get(self, fingerprint: str, tele: Any) -> CacheEntry | None:
        try:
            return await self.cache.get(fingerprint)
        except CacheUnavailable as e:
            log.warning("Cache read failed for %s, treating as miss: %s", fingerprint, e)
            tele.count(C_CACHE_UNAVAILABLE)
            return None

    async def _cache_put(self, result: ClassificationResult, tele: Any) -> None:
        if result.category is Category.UNRESOLVED:
            return
        try:
            await self.cache.put(
                result.fingerprint, result.category, confidence=result.confidence
            )
        except CacheUnavailable as e:
            log.warning("Cache write failed for %s, skipping: %s", result.fingerprint, e)
            tele.count(C_CACHE_UNAVAILABLE)

    # --- Input handling ---

    @staticmethod
    def _materialize(fields: object) -> list[object]:
        if isinstance(fields, str | bytes | bytearray | Mapping):
            raise BatchRejected(
                f"fields must be a sequence of field descriptors, got {type(fields).__name__}"
            )
        try:
            return list(fields)  # type: ignore[call-overload]
        except TypeError as e:
            raise BatchRejected(
                f"fields must be iterable, got {type(fields).__name__}"
            ) from e

    @staticmethod
    def _coerce(item: object, index: int) -> FieldDescriptor:
        if isinstance(item, FieldDescriptor):
            return item
        if not isinstance(item, Mapping):
            raise ValidationError(
                f"field descriptor must be a mapping, got {type(item).__name__}",
                index=index,
            )
        try:
            return FieldDescriptor.from_mapping(item)
        except ValidationError as e:
            raise ValidationError(str(e), index=index) from e

    @staticmethod
    def _notify(
        on_progress: ProgressCallback | None, progress: BatchProgress
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception as e:
            log.error("Progress callback failed: %s", e)


def _raw_fingerprint(item: object) -> str:
    if isinstance(item, Mapping):
        value = item.get("fingerprint")
        if isinstance(value, str):
            return value
    return ""


def _nearby_labels(
    descriptors: list[FieldDescriptor | None], index: int
) -> tuple[str, ...]:
    labels: list[str] = []
    for neighbour in (index - 1, index + 1):
        if 0 <= neighbour < len(descriptors):
            other = descriptors[neighbour]
            if other is not None and other.raw_label_text:
                labels.append(other.raw_label_text)
    return tuple(labels[:_MAX_NEARBY_LABELS])


def create_engine(
    config: FrozenConfig | None = None,
    *,
    store: KeyValueStore | None = None,
    adapter: ClassificationAdapter | None = None,
    telemetry: TelemetryContextProtocol | None = None,
) -> FieldMappingEngine:
    """Build an engine and its components from configuration.

    If no configuration is provided it is resolved from the environment and
    config files. Construct the engine once per process and reuse it: the
    limiter and cache are meant to be shared by every batch.

    Args:
        config: Frozen configuration; resolved when omitted.
        store: Persistence backend; a JSON file when ``cache_path`` is set,
            otherwise in-memory.
        adapter: Remote adapter; Gemini when ``use_real_api`` is set,
            otherwise the deterministic mock.
        telemetry: Optional telemetry context.

    Raises:
        ConfigurationError: If the real API is requested without a key.
    """
    cfg = config if config is not None else resolve_config()

    if store is None:
        store = JSONFileStore(cfg.cache_path) if cfg.cache_path else InMemoryStore()
    if adapter is None:
        if cfg.use_real_api:
            if not cfg.api_key:
                raise ConfigurationError("api_key is required when use_real_api=True")
            adapter = GeminiClassificationAdapter(cfg.api_key, cfg.model)
        else:
            adapter = MockClassificationAdapter()

    tele = telemetry or TelemetryContext()
    cache = ClassificationCache(
        store,
        ttl_seconds=cfg.cache_ttl_hours * 3600,
        namespace=cfg.cache_namespace,
    )
    limiter = RateLimiter(cfg.rate_limit_config())
    classifier = ClassifierClient(
        adapter,
        timeout_seconds=cfg.timeout_seconds,
        max_retries=cfg.max_retries,
        base_delay=cfg.retry_base_delay,
        telemetry=tele,
    )
    return FieldMappingEngine(
        cache,
        limiter,
        classifier,
        default_deadline=cfg.batch_deadline_seconds,
        telemetry=tele,
    )
