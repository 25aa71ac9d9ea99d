"""Remote side of classification: admission control, adapters and retries."""

from .adapters import (
    ClassificationAdapter,
    GeminiClassificationAdapter,
    MockClassificationAdapter,
)
from .classifier import (
    AttemptState,
    ClassificationAttempt,
    ClassifierClient,
    backoff_delay,
    is_transient_error,
)
from .prompts import (
    RemoteClassification,
    build_classification_prompt,
    parse_classification_response,
)
from .rate_limiter import RateLimitConfig, RateLimiter, RateLimiterToken

__all__ = [
    "AttemptState",
    "ClassificationAdapter",
    "ClassificationAttempt",
    "ClassifierClient",
    "GeminiClassificationAdapter",
    "MockClassificationAdapter",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterToken",
    "RemoteClassification",
    "backoff_delay",
    "build_classification_prompt",
    "is_transient_error",
    "parse_classification_response",
]
