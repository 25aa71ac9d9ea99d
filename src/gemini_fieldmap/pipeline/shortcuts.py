"""Local keyword shortcuts that resolve obvious fields without a remote call."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging

from gemini_fieldmap.core.fingerprint import tokenize
from gemini_fieldmap.core.models import CATEGORY_KEYWORDS, SHORTCUT_PRIORITY, Category
from gemini_fieldmap.core.types import ClassificationResult, FieldDescriptor, ResultSource

log = logging.getLogger(__name__)


def _contains_phrase(tokens: tuple[str, ...], phrase: tuple[str, ...]) -> bool:
    width = len(phrase)
    return any(tokens[i : i + width] == phrase for i in range(len(tokens) - width + 1))


class ShortcutMatcher:
    """Whole-token keyword matcher over normalized label text.

    A keyword such as ``first_name`` matches the contiguous tokens
    ``first name`` or the single token ``firstname``; it never matches a
    substring of a longer word ("state" does not match "statement").
    Categories are consulted in priority order and the first hit wins.
    """

    def __init__(
        self,
        keywords: Mapping[Category, Iterable[str]] = CATEGORY_KEYWORDS,
        priority: tuple[Category, ...] = SHORTCUT_PRIORITY,
    ) -> None:  # noqa: D107
        if Category.UNRESOLVED in priority:
            raise ValueError("UNRESOLVED cannot be a shortcut category")
        self._priority = priority
        self._phrases: dict[Category, tuple[tuple[str, ...], ...]] = {
            category: tuple(
                sorted({tuple(k.split("_")) for k in keywords.get(category, ())})
            )
            for category in priority
        }

    def match_text(self, text: str | None) -> Category | None:
        """Return the category whose keyword appears in ``text``, if any."""
        tokens = tokenize(text)
        if not tokens:
            return None
        singles = set(tokens)
        for category in self._priority:
            for phrase in self._phrases[category]:
                if _contains_phrase(tokens, phrase) or "".join(phrase) in singles:
                    return category
        return None

    def match(self, descriptor: FieldDescriptor) -> ClassificationResult | None:
        """Shortcut-classify a descriptor.

        The label text is tried first; the name, placeholder and id attributes
        are only consulted when the label yields nothing.
        """
        for text in (
            descriptor.raw_label_text,
            descriptor.name,
            descriptor.placeholder,
            descriptor.element_id,
        ):
            category = self.match_text(text)
            if category is not None:
                log.debug("Shortcut %s -> %s", descriptor.fingerprint, category.value)
                return ClassificationResult(
                    fingerprint=descriptor.fingerprint,
                    category=category,
                    confidence=1.0,
                    source=ResultSource.SHORTCUT,
                )
        return None
