"""Classification cache and its persistence collaborators."""

from .classification_cache import CacheMetrics, CacheStats, ClassificationCache
from .store import InMemoryStore, JSONFileStore, KeyValueStore

__all__ = [
    "CacheMetrics",
    "CacheStats",
    "ClassificationCache",
    "InMemoryStore",
    "JSONFileStore",
    "KeyValueStore",
]
