"""Prompt construction and response parsing for remote classification."""

from __future__ import annotations

from collections.abc import Mapping
import json
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gemini_fieldmap.core.exceptions import NonTransientRemoteFailure
from gemini_fieldmap.core.models import Category, parse_category
from gemini_fieldmap.core.types import ClassificationRequest

_CATEGORY_GUIDE = """\
- "static": personal identity or contact data that never changes between
  applications (name, email, phone, address, LinkedIn/GitHub/portfolio URL).
- "semi_static": facts taken from the candidate's résumé that change
  occasionally (current employer or title, education, years of experience,
  skills, salary expectation, work authorization, notice period).
- "dynamic": job-specific answers that must be written for this application
  (cover letter, motivation, "why this company", open-ended questions)."""

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def build_classification_prompt(request: ClassificationRequest) -> str:
    """Render the instruction sent to the model for one form field."""
    lines = [
        "Classify a job-application form field by the kind of data it expects.",
        "",
        "Categories:",
        _CATEGORY_GUIDE,
        "",
        f"Field label: {request.raw_label_text or '(no label)'}",
    ]
    if request.page_title:
        lines.append(f"Page title: {request.page_title}")
    if request.nearby_labels:
        lines.append("Nearby field labels: " + "; ".join(request.nearby_labels))
    lines += [
        "",
        'Respond with JSON only: {"category": "static" | "semi_static" | '
        '"dynamic", "confidence": <number between 0 and 1>}',
    ]
    return "\n".join(lines)


class RemoteClassification(BaseModel):
    """Validated shape of the model's answer."""

    model_config = ConfigDict(extra="ignore")

    category: Category
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: object) -> Category:
        """Accept loose spellings but only the three real categories."""
        parsed = parse_category(v)
        if parsed is None:
            raise ValueError(f"unmappable category: {v!r}")
        return parsed


def parse_classification_response(
    raw: str | Mapping[str, object],
) -> RemoteClassification:
    """Turn an adapter response into a validated classification.

    Text responses may wrap the JSON object in a Markdown fence.

    Raises:
        NonTransientRemoteFailure: If the payload is malformed or names a
            category outside the closed enumeration.
    """
    payload: object = raw
    if isinstance(raw, str):
        text = raw.strip()
        fenced = _FENCE.search(text)
        if fenced:
            text = fenced.group(1).strip()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            # Bare category names are acceptable answers too.
            payload = {"category": text}
    if not isinstance(payload, Mapping):
        raise NonTransientRemoteFailure(
            f"malformed classification response: {type(payload).__name__}"
        )
    try:
        return RemoteClassification.model_validate(dict(payload))
    except ValidationError as e:
        raise NonTransientRemoteFailure(
            f"malformed classification response: {e.errors()[0]['msg']}"
        ) from e
