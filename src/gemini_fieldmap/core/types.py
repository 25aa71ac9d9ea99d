"""Immutable data types that flow through the field-mapping engine.

Descriptors come in, results go out. Every type here is a frozen dataclass
so a value can be shared between concurrent workers without copying.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Mapping
import dataclasses
from enum import Enum
import typing

from gemini_fieldmap.core.exceptions import ValidationError
from gemini_fieldmap.core.fingerprint import compute_fingerprint
from gemini_fieldmap.core.models import Category


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


# --- Result type for handler-style entry points ---

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful outcome."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed outcome, carrying the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


class ResultSource(str, Enum):
    """Where a classification came from."""

    SHORTCUT = "shortcut"
    CACHE = "cache"
    REMOTE = "remote"


class FailureReason(str, Enum):
    """Why a field ended up ``UNRESOLVED``."""

    VALIDATION = "validation"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    NON_TRANSIENT = "non_transient"
    RATE_LIMIT_TIMEOUT = "rate_limit_timeout"
    DEADLINE = "deadline"


# --- Inputs ---


@dataclasses.dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """One detected form field.

    ``fingerprint`` is the cache and dedup key. Two descriptors with the same
    fingerprint are the same classification problem.
    """

    fingerprint: str
    raw_label_text: str = ""
    name: str | None = None
    element_id: str | None = None
    placeholder: str | None = None
    field_type: str | None = None

    def __post_init__(self) -> None:
        """Reject descriptors that cannot be keyed."""
        _require(
            condition=isinstance(self.fingerprint, str)
            and bool(self.fingerprint.strip()),
            message="must be a non-empty string",
            field_name="fingerprint",
            exc=ValidationError,
        )
        _require(
            condition=isinstance(self.raw_label_text, str),
            message="must be str",
            field_name="raw_label_text",
            exc=ValidationError,
        )

    @classmethod
    def from_attributes(
        cls,
        *,
        label: str = "",
        name: str | None = None,
        element_id: str | None = None,
        placeholder: str | None = None,
        field_type: str | None = None,
    ) -> FieldDescriptor:
        """Build a descriptor whose fingerprint is derived from its attributes.

        Raises:
            ValidationError: If every identifying attribute is empty.
        """
        try:
            fingerprint = compute_fingerprint(
                name=name,
                element_id=element_id,
                label=label,
                placeholder=placeholder,
                field_type=field_type,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return cls(
            fingerprint=fingerprint,
            raw_label_text=label or placeholder or name or "",
            name=name,
            element_id=element_id,
            placeholder=placeholder,
            field_type=field_type,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> FieldDescriptor:
        """Build a descriptor from a message payload.

        Accepts the extension's camelCase keys (``rawLabelText``,
        ``elementId``) as well as snake_case. A payload without a
        ``fingerprint`` is malformed and rejected.

        Raises:
            ValidationError: If ``data`` is not a mapping or lacks a fingerprint.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"field descriptor must be a mapping, got {type(data).__name__}"
            )
        fingerprint = data.get("fingerprint")
        if not isinstance(fingerprint, str) or not fingerprint.strip():
            raise ValidationError("fingerprint: missing or empty")
        label = data.get("raw_label_text", data.get("rawLabelText", data.get("label")))
        return cls(
            fingerprint=fingerprint,
            raw_label_text=str(label) if label is not None else "",
            name=_optional_str(data.get("name")),
            element_id=_optional_str(
                data.get("element_id", data.get("elementId", data.get("id")))
            ),
            placeholder=_optional_str(data.get("placeholder")),
            field_type=_optional_str(
                data.get("field_type", data.get("fieldType", data.get("type")))
            ),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ClassificationRequest:
    """What the remote classifier is asked about a single field."""

    fingerprint: str
    raw_label_text: str
    page_title: str | None = None
    nearby_labels: tuple[str, ...] = ()


# --- Outputs ---


@dataclasses.dataclass(frozen=True, slots=True)
class ClassificationResult:
    """The resolved category for one field.

    Failures never disappear: they are results with ``UNRESOLVED``, a
    ``failure`` reason and a human-readable ``error``.
    """

    fingerprint: str
    category: Category
    confidence: float
    source: ResultSource
    failure: FailureReason | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        """Validate invariants for type safety."""
        _require(
            condition=0.0 <= self.confidence <= 1.0,
            message=f"must be within [0.0, 1.0], got {self.confidence}",
            field_name="confidence",
        )
        _require(
            condition=self.failure is None or self.category is Category.UNRESOLVED,
            message="only UNRESOLVED results may carry a failure reason",
            field_name="failure",
        )

    @property
    def is_resolved(self) -> bool:
        """True when a usable mapping is available."""
        return self.category is not Category.UNRESOLVED

    @classmethod
    def unresolved(
        cls,
        fingerprint: str,
        failure: FailureReason,
        error: str | None = None,
    ) -> ClassificationResult:
        """Degraded result for a field that could not be classified."""
        return cls(
            fingerprint=fingerprint,
            category=Category.UNRESOLVED,
            confidence=0.0,
            source=ResultSource.REMOTE,
            failure=failure,
            error=error,
        )

    def to_dict(self) -> dict[str, object]:
        """Plain payload for the form-filling collaborator."""
        return {
            "fingerprint": self.fingerprint,
            "category": self.category.value,
            "confidence": self.confidence,
            "source": self.source.value,
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached classification with its validity window (epoch seconds)."""

    fingerprint: str
    category: Category
    resolved_at: float
    expires_at: float
    confidence: float = 1.0

    def __post_init__(self) -> None:
        """Reject entries that could not have been written by the cache."""
        _require(
            condition=self.category is not Category.UNRESOLVED,
            message="unresolved classifications are never cached",
            field_name="category",
        )
        # NaN fails this comparison as well.
        _require(
            condition=0.0 <= self.confidence <= 1.0,
            message=f"must be within [0.0, 1.0], got {self.confidence}",
            field_name="confidence",
        )

    def is_valid(self, now: float) -> bool:
        """An entry is usable strictly before its expiry time."""
        return now < self.expires_at

    def to_dict(self) -> dict[str, object]:
        """Serialize for the persistence collaborator."""
        return {
            "category": self.category.value,
            "resolvedAt": self.resolved_at,
            "expiresAt": self.expires_at,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, fingerprint: str, data: Mapping[str, object]) -> CacheEntry:
        """Rebuild an entry from its serialized form.

        Raises:
            ValueError: If the stored shape is not recognizable.
        """
        return cls(
            fingerprint=fingerprint,
            category=Category(str(data["category"])),
            resolved_at=float(typing.cast("float", data["resolvedAt"])),
            expires_at=float(typing.cast("float", data["expiresAt"])),
            confidence=float(typing.cast("float", data.get("confidence", 1.0))),
        )


@dataclasses.dataclass(frozen=True, slots=True)
class BatchResult:
    """Ordered results for one batch; ``results[i]`` belongs to input ``i``."""

    results: tuple[ClassificationResult, ...]
    duration_s: float = 0.0

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ClassificationResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> ClassificationResult:
        return self.results[index]

    def counts(self) -> dict[str, int]:
        """Per-source counts plus the number of unresolved fields."""
        counter = Counter(r.source.value for r in self.results if r.is_resolved)
        summary = {source.value: counter.get(source.value, 0) for source in ResultSource}
        summary["unresolved"] = sum(1 for r in self.results if not r.is_resolved)
        return summary

    def mapping(self) -> dict[str, Category]:
        """Fingerprint to category for every field in the batch."""
        return {r.fingerprint: r.category for r in self.results}


class BatchPhase(str, Enum):
    """Stage of ``classify_batch`` a progress update refers to."""

    LOCAL = "local"
    REMOTE = "remote"
    COMPLETE = "complete"


@dataclasses.dataclass(frozen=True, slots=True)
class BatchProgress:
    """Progress of one batch, counted in unique fingerprints.

    ``fingerprint`` is set on remote updates and names the field that just
    finished.
    """

    phase: BatchPhase
    completed: int
    total: int
    fingerprint: str | None = None

    @property
    def fraction(self) -> float:
        """Share of unique fingerprints with a result, in [0.0, 1.0]."""
        return 1.0 if self.total == 0 else self.completed / self.total
