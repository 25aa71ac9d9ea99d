"""Envelope schemas for messages arriving from the form-filling side.

Structural validation lives here; per-field semantic checks (a missing
fingerprint, say) stay in the engine so one bad field never rejects the
whole message.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

CLASSIFY_FIELDS_ACTION = "classifyFields"


class FieldPayload(BaseModel):
    """One field as sent by the content script (camelCase or snake_case)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    fingerprint: str | None = None
    raw_label_text: str = Field(
        default="",
        validation_alias=AliasChoices("raw_label_text", "rawLabelText", "label"),
    )
    name: str | None = None
    element_id: str | None = Field(
        default=None, validation_alias=AliasChoices("element_id", "elementId", "id")
    )
    placeholder: str | None = None
    field_type: str | None = Field(
        default=None, validation_alias=AliasChoices("field_type", "fieldType", "type")
    )

    def to_mapping(self) -> dict[str, Any]:
        """Snake_case mapping accepted by ``FieldDescriptor.from_mapping``."""
        return self.model_dump(exclude_none=True)


class ClassifyFieldsRequest(BaseModel):
    """The ``classifyFields`` message."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: Literal["classifyFields"]
    fields: list[FieldPayload]
    page_title: str | None = Field(
        default=None, validation_alias=AliasChoices("page_title", "pageTitle")
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("deadline_seconds", "deadlineSeconds"),
    )
