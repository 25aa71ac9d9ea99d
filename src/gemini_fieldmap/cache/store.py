"""Key-value persistence collaborators for the classification cache.

The cache only needs a narrow async capability ({get, set, remove}); any
backend that satisfies ``KeyValueStore`` can be plugged in.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import os

log = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Async key-value storage, modelled on the browser storage API."""

    async def get(self, key: str) -> Any | None: ...  # noqa: D102

    async def set(self, key: str, value: Any) -> None: ...  # noqa: D102

    async def remove(self, key: str) -> None: ...  # noqa: D102


class InMemoryStore:
    """Dict-backed store; values are deep-copied in and out."""

    def __init__(self) -> None:  # noqa: D107
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:  # noqa: D102
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:  # noqa: D102
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:  # noqa: D102
        self._data.pop(key, None)


class JSONFileStore:
    """Single-file JSON store (mapping of key -> value).

    Writes are copy-on-write: the document goes to a temp file which is then
    renamed over the original. A corrupt document reads as empty; I/O errors
    while writing propagate to the caller.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:  # noqa: D107
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Location of the backing JSON document."""
        return self._path

    async def get(self, key: str) -> Any | None:  # noqa: D102
        return self._read_all().get(key)

    async def set(self, key: str, value: Any) -> None:  # noqa: D102
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    async def remove(self, key: str) -> None:  # noqa: D102
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            result = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log.warning("Ignoring corrupt store file %s: %s", self._path, e)
            return {}
        return result if isinstance(result, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        Path.replace(tmp, self._path)
