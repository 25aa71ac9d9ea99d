"""Invariants of the immutable data types."""

import dataclasses

import pytest

from gemini_fieldmap.core.exceptions import ValidationError
from gemini_fieldmap.core.models import Category, parse_category
from gemini_fieldmap.core.types import (
    BatchResult,
    CacheEntry,
    ClassificationResult,
    FailureReason,
    FieldDescriptor,
    ResultSource,
)

pytestmark = pytest.mark.unit


class TestFieldDescriptor:
    def test_from_mapping_accepts_camel_case(self):
        descriptor = FieldDescriptor.from_mapping(
            {
                "fingerprint": "fp-1",
                "rawLabelText": "Email",
                "elementId": "email",
                "fieldType": "email",
                "ignored": True,
            }
        )
        assert descriptor == FieldDescriptor(
            fingerprint="fp-1",
            raw_label_text="Email",
            element_id="email",
            field_type="email",
        )

    def test_from_mapping_accepts_snake_case(self):
        descriptor = FieldDescriptor.from_mapping(
            {"fingerprint": "fp-2", "raw_label_text": "City", "name": "city"}
        )
        assert descriptor.raw_label_text == "City"
        assert descriptor.name == "city"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"fingerprint": ""}, {"fingerprint": "   "}, {"fingerprint": 42}],
    )
    def test_from_mapping_rejects_missing_fingerprint(self, payload):
        with pytest.raises(ValidationError, match="fingerprint"):
            FieldDescriptor.from_mapping(payload)

    def test_from_mapping_rejects_non_mapping(self):
        with pytest.raises(ValidationError, match="mapping"):
            FieldDescriptor.from_mapping(["fingerprint", "x"])  # type: ignore[arg-type]

    def test_descriptor_is_frozen(self):
        descriptor = FieldDescriptor(fingerprint="fp")
        with pytest.raises(dataclasses.FrozenInstanceError):
            descriptor.fingerprint = "other"  # type: ignore[misc]


class TestClassificationResult:
    def test_confidence_must_be_in_unit_interval(self):
        with pytest.raises(ValueError, match="confidence"):
            ClassificationResult(
                fingerprint="fp",
                category=Category.STATIC,
                confidence=1.5,
                source=ResultSource.SHORTCUT,
            )

    def test_failure_only_allowed_on_unresolved(self):
        with pytest.raises(ValueError, match="failure"):
            ClassificationResult(
                fingerprint="fp",
                category=Category.DYNAMIC,
                confidence=0.5,
                source=ResultSource.REMOTE,
                failure=FailureReason.TIMEOUT,
            )

    def test_unresolved_factory(self):
        result = ClassificationResult.unresolved("fp", FailureReason.TIMEOUT, "slow")
        assert result.category is Category.UNRESOLVED
        assert result.source is ResultSource.REMOTE
        assert result.confidence == 0.0
        assert not result.is_resolved
        assert result.to_dict() == {
            "fingerprint": "fp",
            "category": "unresolved",
            "confidence": 0.0,
            "source": "remote",
            "failure": "timeout",
            "error": "slow",
        }


class TestCacheEntry:
    def test_validity_is_strictly_before_expiry(self):
        entry = CacheEntry("fp", Category.STATIC, resolved_at=100.0, expires_at=200.0)
        assert entry.is_valid(199.999)
        assert not entry.is_valid(200.0)

    def test_serialized_shape_uses_camel_case_keys(self):
        entry = CacheEntry("fp", Category.SEMI_STATIC, 1.0, 2.0, confidence=0.7)
        data = entry.to_dict()
        assert data == {
            "category": "semi_static",
            "resolvedAt": 1.0,
            "expiresAt": 2.0,
            "confidence": 0.7,
        }
        assert CacheEntry.from_dict("fp", data) == entry

    def test_from_dict_rejects_unresolved(self):
        with pytest.raises(ValueError):
            CacheEntry.from_dict(
                "fp", {"category": "unresolved", "resolvedAt": 1, "expiresAt": 2}
            )

    @pytest.mark.parametrize("confidence", [5, -0.1, float("nan")])
    def test_from_dict_rejects_out_of_range_confidence(self, confidence):
        with pytest.raises(ValueError, match="confidence"):
            CacheEntry.from_dict(
                "fp",
                {
                    "category": "dynamic",
                    "resolvedAt": 0,
                    "expiresAt": 1e12,
                    "confidence": confidence,
                },
            )


def test_batch_result_counts_and_mapping():
    results = (
        ClassificationResult("a", Category.STATIC, 1.0, ResultSource.SHORTCUT),
        ClassificationResult("b", Category.DYNAMIC, 1.0, ResultSource.CACHE),
        ClassificationResult.unresolved("c", FailureReason.DEADLINE),
    )
    batch = BatchResult(results=results)
    assert len(batch) == 3
    assert batch[1].fingerprint == "b"
    assert [r.fingerprint for r in batch] == ["a", "b", "c"]
    assert batch.counts() == {"shortcut": 1, "cache": 1, "remote": 0, "unresolved": 1}
    assert batch.mapping()["c"] is Category.UNRESOLVED


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("static", Category.STATIC),
        ("Semi-Static", Category.SEMI_STATIC),
        ("SEMI_STATIC", Category.SEMI_STATIC),
        ("semistatic", Category.SEMI_STATIC),
        (" Dynamic ", Category.DYNAMIC),
        ("unresolved", None),
        (Category.UNRESOLVED, None),
        ("personal", None),
        (7, None),
    ],
)
def test_parse_category(raw, expected):
    assert parse_category(raw) is expected
