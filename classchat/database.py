"""JSON document persistence for the chat service state."""
from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import anyio

logger = logging.getLogger("classchat.database")

BASE_DOCUMENT: Dict[str, Any] = {
    "users": [],
    "classes": [],
    "messages": [],
    "loginPodiumOrder": [],
    "settings": {
        "adminPasswordHash": "",
    },
}

_MISSING = object()


def base_document() -> Dict[str, Any]:
    return copy.deepcopy(BASE_DOCUMENT)


def merge_with_base(value: Any, base: Any) -> Any:
    """Fill ``value`` with the defaults described by ``base``.

    Lists are taken verbatim when the loaded value is a list. Dictionaries are
    merged key by key on top of a copy of the loaded mapping so that keys the
    base does not know about survive. Scalars fall back to the base only when
    the key is missing entirely.
    """

    if isinstance(base, list):
        return value if isinstance(value, list) else copy.deepcopy(base)

    if isinstance(base, dict):
        source = value if isinstance(value, dict) else {}
        result = dict(source)
        for key, base_value in base.items():
            result[key] = merge_with_base(source.get(key, _MISSING), base_value)
        return result

    return base if value is _MISSING else value


def resolve_store_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the state document."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "store.json").resolve(strict=False)


def read_json_document(path: Path) -> Optional[Dict[str, Any]]:
    """Return the parsed document at ``path`` or ``None`` if it is unusable."""

    if not path.exists():
        return None
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Could not read state document %s: %s", path, exc)
        return None
    if not isinstance(raw, dict):
        logger.warning("Ignoring state document %s: top level is not an object", path)
        return None
    return raw


class StoreBackend(Protocol):
    """Persistence port used by :class:`Database`."""

    def read(self) -> Optional[Dict[str, Any]]:
        ...

    def write(self, document: Dict[str, Any]) -> None:
        ...


class JSONFileBackend:
    """Store the whole document as a single pretty-printed JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[Dict[str, Any]]:
        return read_json_document(self._path)

    def write(self, document: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=".store-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
            os.replace(temp_name, self._path)
        except BaseException:
            with suppress(OSError):
                os.unlink(temp_name)
            raise


class MemoryBackend:
    """Backend that never touches the filesystem."""

    def __init__(self, document: Optional[Dict[str, Any]] = None) -> None:
        self._document = copy.deepcopy(document) if document is not None else None

    def read(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._document) if self._document is not None else None

    def write(self, document: Dict[str, Any]) -> None:
        self._document = json.loads(json.dumps(document))


class Database:
    """Load, merge and save the single state document.

    Every request runs inside :meth:`transaction`, which holds one lock across
    load, mutation and save so updates made in this process are never lost.
    Separate processes sharing the same file still race on the whole document.
    """

    def __init__(self, backend: StoreBackend, *, bundled_path: Optional[Path] = None) -> None:
        self._backend = backend
        self._bundled_path = bundled_path
        self._memory: Optional[Dict[str, Any]] = None
        self._unsaved = False
        self._lock = asyncio.Lock()

    @classmethod
    def from_path(cls, path: Path, *, bundled_path: Optional[Path] = None) -> "Database":
        return cls(JSONFileBackend(path), bundled_path=bundled_path)

    @property
    def backend(self) -> StoreBackend:
        return self._backend

    def initialize(self) -> Dict[str, Any]:
        """Make sure storage holds a document, seeding it when empty."""

        existing = self._backend.read()
        if existing is not None:
            self._memory = merge_with_base(existing, BASE_DOCUMENT)
            return copy.deepcopy(self._memory)

        bundled = read_json_document(self._bundled_path) if self._bundled_path else None
        if bundled is not None:
            logger.info("Seeding state document from %s", self._bundled_path)
        self._memory = merge_with_base(bundled if bundled is not None else base_document(), BASE_DOCUMENT)
        self._write(self._memory)
        return copy.deepcopy(self._memory)

    def load(self) -> Dict[str, Any]:
        if self._memory is None:
            return self.initialize()

        # After a failed write the on-disk copy is stale.
        from_storage = None if self._unsaved else self._backend.read()
        if from_storage is not None:
            self._memory = merge_with_base(from_storage, BASE_DOCUMENT)
        return copy.deepcopy(self._memory)

    def save(self, document: Dict[str, Any]) -> None:
        self._memory = merge_with_base(copy.deepcopy(document), BASE_DOCUMENT)
        self._write(self._memory)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield the loaded document and persist it if the block succeeds."""

        async with self._lock:
            document = await anyio.to_thread.run_sync(self.load)
            yield document
            await anyio.to_thread.run_sync(self.save, document)

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator[Dict[str, Any]]:
        """Yield the loaded document for read-only use."""

        async with self._lock:
            yield await anyio.to_thread.run_sync(self.load)

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self._backend.write(document)
        except (OSError, TypeError, ValueError):
            self._unsaved = True
            logger.exception("Failed to persist state document; keeping the in-memory copy")
        else:
            self._unsaved = False


__all__ = [
    "BASE_DOCUMENT",
    "Database",
    "JSONFileBackend",
    "MemoryBackend",
    "StoreBackend",
    "base_document",
    "merge_with_base",
    "read_json_document",
    "resolve_store_path",
]
