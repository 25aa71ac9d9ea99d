"""Local resolution and concurrency helpers used by the engine."""

from .shortcuts import ShortcutMatcher
from .worker_pool import BoundedWorkerPool

__all__ = ["BoundedWorkerPool", "ShortcutMatcher"]
