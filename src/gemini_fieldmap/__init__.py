"""Field-mapping classification engine for job-application forms."""

import importlib.metadata
import logging

from gemini_fieldmap.cache import (
    CacheStats,
    ClassificationCache,
    InMemoryStore,
    JSONFileStore,
    KeyValueStore,
)
from gemini_fieldmap.client import (
    ClassifierClient,
    GeminiClassificationAdapter,
    MockClassificationAdapter,
    RateLimitConfig,
    RateLimiter,
)
from gemini_fieldmap.config import FrozenConfig, resolve_config
from gemini_fieldmap.core.exceptions import (
    BatchRejected,
    CacheUnavailable,
    ConfigurationError,
    FieldMapError,
    NonTransientRemoteFailure,
    RateLimitTimeout,
    TransientRemoteFailure,
    ValidationError,
)
from gemini_fieldmap.core.models import Category
from gemini_fieldmap.core.types import (
    BatchPhase,
    BatchProgress,
    BatchResult,
    CacheEntry,
    ClassificationRequest,
    ClassificationResult,
    Failure,
    FailureReason,
    FieldDescriptor,
    Result,
    ResultSource,
    Success,
)
from gemini_fieldmap.engine import FieldMappingEngine, create_engine
from gemini_fieldmap.frontdoor import classify_fields
from gemini_fieldmap.telemetry import SimpleReporter, TelemetryContext, TelemetryReporter

try:
    __version__ = importlib.metadata.version("gemini-fieldmap")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Library logging stays silent unless the application configures handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Engine
    "FieldMappingEngine",
    "create_engine",
    "classify_fields",
    # Components
    "ClassificationCache",
    "ClassifierClient",
    "GeminiClassificationAdapter",
    "InMemoryStore",
    "JSONFileStore",
    "KeyValueStore",
    "MockClassificationAdapter",
    "RateLimitConfig",
    "RateLimiter",
    # Configuration
    "FrozenConfig",
    "resolve_config",
    # Data types
    "BatchPhase",
    "BatchProgress",
    "BatchResult",
    "CacheEntry",
    "CacheStats",
    "Category",
    "ClassificationRequest",
    "ClassificationResult",
    "FailureReason",
    "FieldDescriptor",
    "ResultSource",
    "Result",
    "Success",
    "Failure",
    # Errors
    "FieldMapError",
    "BatchRejected",
    "CacheUnavailable",
    "ConfigurationError",
    "NonTransientRemoteFailure",
    "RateLimitTimeout",
    "TransientRemoteFailure",
    "ValidationError",
    # Telemetry
    "SimpleReporter",
    "TelemetryContext",
    "TelemetryReporter",
]
