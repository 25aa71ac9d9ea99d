"""Category model, shortcut keyword lists and default limits.

Categories describe how often the data behind a form field changes:

- ``STATIC``: identity and contact data that never changes between
  applications (name, email, phone, address, profile links).
- ``SEMI_STATIC``: résumé-derived facts that change occasionally (current
  employer, education, years of experience, work authorization).
- ``DYNAMIC``: job-specific free text that must be written per application
  (cover letter, "why do you want to work here").
- ``UNRESOLVED``: terminal state when no mapping could be determined.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import re
from types import MappingProxyType


class Category(str, Enum):
    """Closed enumeration of field-mapping categories."""

    STATIC = "static"
    SEMI_STATIC = "semi_static"
    DYNAMIC = "dynamic"
    UNRESOLVED = "unresolved"


# Keywords are written as snake_case phrases; matching splits them on "_".
_STATIC_KEYWORDS = frozenset(
    {
        "first_name",
        "last_name",
        "middle_name",
        "full_name",
        "given_name",
        "family_name",
        "surname",
        "preferred_name",
        "email",
        "e_mail",
        "phone",
        "mobile",
        "telephone",
        "address",
        "street",
        "city",
        "state",
        "province",
        "zip",
        "zip_code",
        "postal_code",
        "country",
        "linkedin",
        "github",
        "portfolio",
        "website",
    }
)

_SEMI_STATIC_KEYWORDS = frozenset(
    {
        "current_company",
        "current_employer",
        "current_title",
        "job_title",
        "years_of_experience",
        "years_experience",
        "education",
        "degree",
        "university",
        "school",
        "major",
        "graduation",
        "gpa",
        "skills",
        "certifications",
        "salary",
        "notice_period",
        "start_date",
        "work_authorization",
        "authorized",
        "sponsorship",
        "visa",
        "relocate",
        "relocation",
        "resume",
        "cv",
    }
)

_DYNAMIC_KEYWORDS = frozenset(
    {
        "cover_letter",
        "why_interested",
        "why_do_you_want",
        "why_this_company",
        "motivation",
        "additional_information",
        "anything_else",
        "tell_us",
        "about_yourself",
        "describe",
        "essay",
        "message_to_hiring_manager",
    }
)

CATEGORY_KEYWORDS: Mapping[Category, frozenset[str]] = MappingProxyType(
    {
        Category.STATIC: _STATIC_KEYWORDS,
        Category.SEMI_STATIC: _SEMI_STATIC_KEYWORDS,
        Category.DYNAMIC: _DYNAMIC_KEYWORDS,
    }
)

# Order in which keyword lists are consulted; the first match wins.
SHORTCUT_PRIORITY: tuple[Category, ...] = (
    Category.STATIC,
    Category.SEMI_STATIC,
    Category.DYNAMIC,
)

# --- Defaults (overridable through configuration) ---

DEFAULT_REQUESTS_PER_MINUTE = 10
DEFAULT_CONCURRENT_REQUESTS = 3
DEFAULT_BATCH_DELAY_MS = 500
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_CACHE_TTL_HOURS = 24
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MODEL = "gemini-2.5-flash"
RATE_LIMIT_WINDOW_SECONDS = 60.0
DEFAULT_CACHE_NAMESPACE = "gemini_fieldmap.classification_cache"

_CATEGORY_ALIASES = {
    "static": Category.STATIC,
    "semi_static": Category.SEMI_STATIC,
    "semistatic": Category.SEMI_STATIC,
    "dynamic": Category.DYNAMIC,
}


def parse_category(value: object) -> Category | None:
    """Map a loosely formatted category string onto ``Category``.

    ``"Semi-Static"``, ``"SEMI_STATIC"`` and ``"semi static"`` all map to
    ``Category.SEMI_STATIC``. ``UNRESOLVED`` is never returned: a remote
    answer that does not name one of the three real categories yields None.
    """
    if isinstance(value, Category):
        return None if value is Category.UNRESOLVED else value
    if not isinstance(value, str):
        return None
    key = re.sub(r"[^a-z]+", "_", value.strip().lower()).strip("_")
    return _CATEGORY_ALIASES.get(key)
