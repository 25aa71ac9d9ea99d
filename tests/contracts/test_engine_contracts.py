"""Behavioral guarantees of FieldMappingEngine.classify_batch."""

import asyncio
import time

import pytest

from gemini_fieldmap.cache import InMemoryStore
from gemini_fieldmap.client import RateLimitConfig
from gemini_fieldmap.core.exceptions import BatchRejected
from gemini_fieldmap.core.models import DEFAULT_CACHE_NAMESPACE, Category
from gemini_fieldmap.core.types import (
    BatchPhase,
    FailureReason,
    FieldDescriptor,
    ResultSource,
)

pytestmark = pytest.mark.contract

HOUR = 3600.0
T0 = 1_700_000_000.0


def field(fp: str, label: str) -> dict[str, str]:
    return {"fingerprint": fp, "rawLabelText": label}


@pytest.mark.asyncio
async def test_one_result_per_input_in_order(make_engine):
    engine = make_engine()
    fields = [
        field("fp-a", "Email"),
        field("fp-b", "Tell us about a hard problem"),
        {"rawLabelText": "No fingerprint"},
        field("fp-a", "Email"),
        field("fp-c", "Preferred pronouns"),
    ]

    batch = await engine.classify_batch(fields)

    assert len(batch) == len(fields)
    assert [r.fingerprint for r in batch] == ["fp-a", "fp-b", "", "fp-a", "fp-c"]
    assert batch[2].category is Category.UNRESOLVED
    assert batch[2].failure is FailureReason.VALIDATION


@pytest.mark.asyncio
async def test_cached_fingerprint_never_goes_remote(make_engine, recording_adapter):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter)
    await engine.cache.put("fp-story", Category.SEMI_STATIC, confidence=0.7)

    batch = await engine.classify_batch([field("fp-story", "Your story")])

    assert adapter.calls == []
    assert batch[0].source is ResultSource.CACHE
    assert batch[0].category is Category.SEMI_STATIC
    assert batch[0].confidence == 0.7


@pytest.mark.asyncio
async def test_shortcut_wins_over_cached_value(make_engine, recording_adapter):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter)
    await engine.cache.put("fp-email", Category.DYNAMIC)

    batch = await engine.classify_batch([field("fp-email", "Email address")])

    assert batch[0].source is ResultSource.SHORTCUT
    assert batch[0].category is Category.STATIC
    assert batch[0].confidence == 1.0
    assert adapter.calls == []
    entry = await engine.cache.get("fp-email")
    assert entry is not None
    assert entry.category is Category.STATIC


@pytest.mark.asyncio
async def test_in_flight_calls_never_exceed_concurrency(make_engine, recording_adapter):
    adapter = recording_adapter(delay=0.01)
    limits = RateLimitConfig(
        requests_per_minute=1000, concurrent_requests=3, batch_delay_ms=0
    )
    engine = make_engine(adapter=adapter, limits=limits)
    fields = [field(f"fp-{i}", f"Open question number {i}") for i in range(12)]

    batch = await engine.classify_batch(fields)

    assert len(adapter.calls) == 12
    assert adapter.peak <= 3
    assert all(r.source is ResultSource.REMOTE for r in batch)
    assert engine.limiter.in_flight == 0


@pytest.mark.asyncio
async def test_second_run_is_served_without_remote_calls(make_engine, recording_adapter):
    adapter = recording_adapter(table={"Preferred pronouns": "semi_static"})
    engine = make_engine(adapter=adapter)
    fields = [field("fp-1", "Preferred pronouns"), field("fp-2", "Your story")]

    first = await engine.classify_batch(fields)
    calls_after_first = len(adapter.calls)
    second = await engine.classify_batch(fields)

    assert len(adapter.calls) == calls_after_first == 2
    assert [r.category for r in second] == [r.category for r in first]
    assert all(r.source is ResultSource.CACHE for r in second)


@pytest.mark.asyncio
async def test_expired_entries_are_reclassified(make_engine, recording_adapter):
    now = [T0]
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter, clock=lambda: now[0])
    fields = [field("fp-1", "Your story")]

    await engine.classify_batch(fields)
    now[0] = T0 + HOUR
    hit = await engine.classify_batch(fields)
    now[0] = T0 + 25 * HOUR
    miss = await engine.classify_batch(fields)

    assert hit[0].source is ResultSource.CACHE
    assert miss[0].source is ResultSource.REMOTE
    assert len(adapter.calls) == 2


@pytest.mark.asyncio
async def test_duplicate_fingerprints_share_one_remote_call(
    make_engine, recording_adapter
):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter)
    fields = [field("fp-dup", "Your story")] * 3

    batch = await engine.classify_batch(fields)

    assert len(adapter.calls) == 1
    assert len({id(r) for r in batch}) == 1


@pytest.mark.asyncio
async def test_invalid_items_degrade_alone(make_engine):
    engine = make_engine()
    fields = [
        field("fp-ok", "First Name"),
        42,
        {"fingerprint": "   ", "rawLabelText": "Blank"},
        FieldDescriptor(fingerprint="fp-desc", raw_label_text="City"),
    ]

    batch = await engine.classify_batch(fields)

    assert batch[0].category is Category.STATIC
    assert batch[1].failure is FailureReason.VALIDATION
    assert batch[1].fingerprint == ""
    assert batch[2].failure is FailureReason.VALIDATION
    assert batch[2].fingerprint == "   "
    assert batch[3].category is Category.STATIC


@pytest.mark.asyncio
@pytest.mark.parametrize("fields", ["First Name", {"fingerprint": "x"}, 7, None])
async def test_non_sequence_batches_are_rejected(make_engine, fields):
    engine = make_engine()
    with pytest.raises(BatchRejected):
        await engine.classify_batch(fields)


@pytest.mark.asyncio
async def test_empty_batch_returns_empty_result(make_engine, recording_adapter):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter)
    batch = await engine.classify_batch([])
    assert len(batch) == 0
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_unresolved_results_are_not_cached(make_engine, recording_adapter):
    adapter = recording_adapter(default="no idea")
    store = InMemoryStore()
    engine = make_engine(adapter=adapter, store=store, max_retries=1)

    batch = await engine.classify_batch([field("fp-x", "Your story")])

    assert batch[0].category is Category.UNRESOLVED
    assert await engine.cache.get("fp-x") is None


class SlowStore(InMemoryStore):
    """In-memory store whose reads take ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def get(self, key):
        await asyncio.sleep(self.delay)
        return await super().get(key)


@pytest.mark.asyncio
async def test_corrupt_cached_entry_is_reclassified(make_engine, recording_adapter):
    store = InMemoryStore()
    await store.set(
        DEFAULT_CACHE_NAMESPACE,
        {
            "fp-story": {
                "category": "dynamic",
                "resolvedAt": 0,
                "expiresAt": 1e12,
                "confidence": 5,
            }
        },
    )
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter, store=store)

    batch = await engine.classify_batch(
        [field("fp-story", "Your story"), field("fp-email", "Email")]
    )

    assert len(batch) == 2
    assert batch[0].source is ResultSource.REMOTE
    assert batch[0].category is Category.DYNAMIC
    assert batch[1].source is ResultSource.SHORTCUT
    assert adapter.calls_for("Your story") == 1


@pytest.mark.asyncio
async def test_deadline_covers_slow_cache_lookups(make_engine, recording_adapter):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter, store=SlowStore(0.3))
    fields = [field("fp-city", "City")] + [
        field(f"fp-{i}", f"Open question number {i}") for i in range(4)
    ]

    started = time.perf_counter()
    batch = await engine.classify_batch(fields, deadline=0.2)
    elapsed = time.perf_counter() - started

    assert elapsed < 1.0
    assert len(batch) == 5
    assert batch[0].source is ResultSource.SHORTCUT
    assert [r.failure for r in batch[1:]] == [FailureReason.DEADLINE] * 4
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_progress_is_reported_per_phase(make_engine):
    engine = make_engine()
    await engine.cache.put("fp-story", Category.DYNAMIC)
    updates = []
    fields = [
        field("fp-first", "First Name"),
        field("fp-story", "Your story"),
        field("fp-a", "Preferred pronouns"),
        field("fp-b", "Favourite programming language"),
        field("fp-a", "Preferred pronouns"),
    ]

    await engine.classify_batch(fields, on_progress=updates.append)

    assert [u.phase for u in updates] == [
        BatchPhase.LOCAL,
        BatchPhase.REMOTE,
        BatchPhase.REMOTE,
        BatchPhase.COMPLETE,
    ]
    assert (updates[0].completed, updates[0].total) == (2, 4)
    assert {u.fingerprint for u in updates[1:3]} == {"fp-a", "fp-b"}
    assert [u.completed for u in updates[1:3]] == [3, 4]
    assert updates[-1].fraction == 1.0


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_break_batch(make_engine):
    engine = make_engine()

    def explode(_progress):
        raise RuntimeError("ui went away")

    batch = await engine.classify_batch(
        [field("fp-1", "Your story")], on_progress=explode
    )
    assert batch[0].is_resolved


@pytest.mark.asyncio
async def test_validation_errors_name_the_item_position(make_engine):
    engine = make_engine()
    batch = await engine.classify_batch(
        [field("fp-ok", "Email"), {"rawLabelText": "No fingerprint"}, "oops"]
    )
    assert batch[1].error.startswith("fields[1]: ")
    assert batch[2].error.startswith("fields[2]: ")


@pytest.mark.asyncio
async def test_invalidate_forces_reclassification(make_engine, recording_adapter):
    adapter = recording_adapter()
    engine = make_engine(adapter=adapter)
    fields = [field("fp-1", "Your story")]

    await engine.classify_batch(fields)
    assert await engine.invalidate("fp-1") is True
    again = await engine.classify_batch(fields)

    assert again[0].source is ResultSource.REMOTE
    assert len(adapter.calls) == 2
    stats = await engine.cache_stats()
    assert stats["total_entries"] == stats["valid_entries"] == 1
