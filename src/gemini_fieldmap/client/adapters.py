"""Provider adapters for the remote classification call.

The classifier client talks to a ``ClassificationAdapter``. Two ship here:
a deterministic mock (the default; no network) and a Google Gemini adapter
built on ``google-genai``. Adapters translate provider errors into the
transient / non-transient taxonomy; retry policy lives in the client.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from gemini_fieldmap.core.exceptions import (
    NonTransientRemoteFailure,
    TransientRemoteFailure,
)
from gemini_fieldmap.core.fingerprint import normalize_label
from gemini_fieldmap.core.models import DEFAULT_MODEL, Category
from gemini_fieldmap.core.types import ClassificationRequest

from .prompts import build_classification_prompt

log = logging.getLogger(__name__)


@runtime_checkable
class ClassificationAdapter(Protocol):
    """One outbound classification call; no retries, no caching."""

    async def classify(
        self, request: ClassificationRequest
    ) -> str | Mapping[str, object]: ...  # noqa: D102


class MockClassificationAdapter:
    """Deterministic adapter used for tests and examples (no network).

    Labels are looked up (normalized) in ``responses``; anything else gets
    ``default``. Every request is recorded in ``calls``.
    """

    def __init__(
        self,
        responses: Mapping[str, Category | str] | None = None,
        *,
        default: Category = Category.DYNAMIC,
        confidence: float = 0.9,
    ) -> None:  # noqa: D107
        self._responses = {
            normalize_label(label): Category(value)
            for label, value in (responses or {}).items()
        }
        self._default = default
        self._confidence = confidence
        self.calls: list[ClassificationRequest] = []

    async def classify(self, request: ClassificationRequest) -> dict[str, object]:  # noqa: D102
        self.calls.append(request)
        category = self._responses.get(
            normalize_label(request.raw_label_text), self._default
        )
        return {"category": category.value, "confidence": self._confidence}


class GeminiClassificationAdapter:
    """Classifies a field with a single Gemini ``generate_content`` call."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        temperature: float = 0.1,
        max_output_tokens: int = 100,
        client: Any | None = None,
    ) -> None:
        """Create the adapter.

        Args:
            api_key: Gemini API key.
            model: Model identifier.
            temperature: Sampling temperature; low for deterministic labels.
            max_output_tokens: Output cap; the answer is a tiny JSON object.
            client: Pre-built ``genai.Client`` (tests inject a fake).
        """
        if client is None:
            from google import genai

            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    async def classify(self, request: ClassificationRequest) -> str:  # noqa: D102
        from google.genai import errors as genai_errors
        from google.genai import types as genai_types

        config = genai_types.GenerateContentConfig(
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            response_mime_type="application/json",
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=build_classification_prompt(request),
                config=config,
            )
        except genai_errors.ServerError as e:
            raise TransientRemoteFailure(f"provider error {e.code}: {e}") from e
        except genai_errors.ClientError as e:
            if e.code == 429:
                raise TransientRemoteFailure(f"rate limited by provider: {e}") from e
            raise NonTransientRemoteFailure(f"provider rejected request: {e}") from e
        except httpx.TransportError as e:
            raise TransientRemoteFailure(f"network error: {e}") from e

        text = getattr(response, "text", None)
        if not text:
            raise NonTransientRemoteFailure("empty response from provider")
        log.debug("Gemini classified %s: %s", request.fingerprint, text)
        return text
