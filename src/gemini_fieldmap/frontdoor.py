"""Convenience helper for one-off classification.

Long-lived callers should build one engine with ``create_engine`` and reuse
it so the rate limiter and cache are shared across batches.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from gemini_fieldmap.config import FrozenConfig, resolve_config
from gemini_fieldmap.core.types import BatchResult, FieldDescriptor
from gemini_fieldmap.engine import FieldMappingEngine, create_engine


async def classify_fields(
    fields: Iterable[FieldDescriptor | Mapping[str, Any]],
    *,
    page_title: str | None = None,
    cfg: FrozenConfig | None = None,
    engine: FieldMappingEngine | None = None,
) -> BatchResult:
    """Classify a batch of form fields.

    Args:
        fields: Descriptors or descriptor mappings.
        page_title: Optional page title used as a hint for remote calls.
        cfg: Frozen configuration; ``resolve_config()`` when omitted. Ignored
            if ``engine`` is given.
        engine: Existing engine to reuse.

    Returns:
        One result per input field, in input order.

    Example:
        ```python
        batch = await classify_fields(
            [{"fingerprint": "f1", "rawLabelText": "First Name"}]
        )
        batch[0].category  # Category.STATIC
        ```
    """
    if engine is None:
        engine = create_engine(cfg if cfg is not None else resolve_config())
    return await engine.classify_batch(fields, page_title=page_title)
