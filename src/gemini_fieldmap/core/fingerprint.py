"""Label normalization and field fingerprinting.

Normalization rules (used both for fingerprints and for shortcut matching):

1. Lower-case the text.
2. Replace every character outside ``[a-z0-9]`` with a space.
3. Collapse runs of whitespace and strip the ends.

Tokens are the whitespace-separated words of the normalized text.
"""

from __future__ import annotations

import hashlib
import json
import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_label(text: str | None) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    return _NON_ALNUM.sub(" ", text.lower()).strip()


def tokenize(text: str | None) -> tuple[str, ...]:
    """Split normalized text into whole-word tokens."""
    normalized = normalize_label(text)
    return tuple(normalized.split()) if normalized else ()


def compute_fingerprint(
    *,
    name: str | None = None,
    element_id: str | None = None,
    label: str | None = None,
    placeholder: str | None = None,
    field_type: str | None = None,
) -> str:
    """Derive a stable fingerprint from a field's identifying attributes.

    Keys are serialized in sorted order so the digest does not depend on
    argument order, and every value is normalized first so cosmetic changes
    (case, punctuation, spacing) do not produce a new fingerprint.

    Raises:
        ValueError: If every attribute is empty after normalization.
    """
    payload = {
        "id": normalize_label(element_id),
        "label": normalize_label(label),
        "name": normalize_label(name),
        "placeholder": normalize_label(placeholder),
        "type": normalize_label(field_type),
    }
    if not any(payload.values()):
        raise ValueError("cannot fingerprint a field with no identifying attributes")
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:32]
