"""Single-document JSON storage with serialized read-modify-write.

All roast state (consent, group policy, cooldowns, roast log) lives in one
JSON document, ``db.json`` by default.  Every mutation goes through
:meth:`DocumentStore.transaction`, which holds a per-document lock for the
whole read-modify-write and writes the result atomically, so two workflow
runs finishing at the same time cannot lose each other's updates.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from roaster.errors import StorageError

logger = logging.getLogger(__name__)


def empty_document() -> dict[str, Any]:
    """Return the default document structure."""
    return {
        "users": {},
        "groups": {},
        "cooldowns": {},
        "roastLog": [],
    }


_TIERS = {"tame", "spicy", "nuclear"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_entries(doc: dict[str, Any]) -> None:
    for section in ("users", "groups", "cooldowns"):
        for key, entry in doc[section].items():
            if not isinstance(entry, dict):
                raise StorageError(f"Stored {section} entry '{key}' is not an object")

    for key, entry in doc["cooldowns"].items():
        last = entry.get("lastRoastTime")
        if last is not None and not _is_number(last):
            raise StorageError(f"Stored cooldown for '{key}' has a non-numeric lastRoastTime")

    for i, event in enumerate(doc["roastLog"]):
        if (
            not isinstance(event, dict)
            or not _is_number(event.get("timestamp"))
            or event.get("tier") not in _TIERS
        ):
            raise StorageError(f"Stored roastLog entry {i} is malformed")


def _normalize(data: Any) -> dict[str, Any]:
    """Fill in missing sections and reject any entry the store cannot read."""
    if not isinstance(data, dict):
        raise StorageError("Stored document is not a JSON object")
    doc = empty_document()
    for key, default in doc.items():
        value = data.get(key, default)
        if not isinstance(value, type(default)):
            raise StorageError(f"Stored document field '{key}' has the wrong type")
        doc[key] = value
    _check_entries(doc)
    return doc


class DocumentStore(ABC):
    """A transactional store for exactly one JSON document."""

    @abstractmethod
    def read(self) -> dict[str, Any]:
        """Return a private snapshot of the document."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        """Yield the document for mutation; persist it if the block succeeds."""


class MemoryDocumentStore(DocumentStore):
    """In-process store, used for tests and ephemeral deployments."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        # Validated on every read, like the file-backed store.
        self._doc = copy.deepcopy(initial) if initial else empty_document()
        self._lock = threading.RLock()

    def read(self) -> dict[str, Any]:
        with self._lock:
            return _normalize(copy.deepcopy(self._doc))

    @contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            working = _normalize(copy.deepcopy(self._doc))
            yield working
            self._doc = _normalize(working)


# One lock per resolved document path, shared by every store instance in
# the process that points at the same file.
_PATH_LOCKS: dict[str, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.RLock()
        return lock


class JsonDocumentStore(DocumentStore):
    """File-backed store.

    Storage path: ``./db.json`` unless configured otherwise.  Writes go to a
    temporary file in the same directory which then replaces the document,
    so readers never observe a half-written file.
    """

    def __init__(self, path: str | Path = "db.json") -> None:
        self._path = Path(path)
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return empty_document()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
            logger.error("Error loading database %s: %s", self._path, exc)
            raise StorageError() from exc
        return _normalize(data)

    def _save(self, doc: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(doc, fh, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Error saving database %s: %s", self._path, exc)
            raise StorageError() from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def init(self) -> bool:
        """Create the document with the default structure if it is missing.

        Returns True when a new file was written.
        """
        with self._lock:
            if self._path.exists():
                return False
            self._save(empty_document())
            logger.info("Database initialized at %s", self._path)
            return True

    def read(self) -> dict[str, Any]:
        with self._lock:
            return self._load()

    @contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        with self._lock:
            doc = self._load()
            yield doc
            self._save(_normalize(doc))
