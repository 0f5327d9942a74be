"""Consent, group policy, cooldown and roast-log operations.

:class:`RoastDocument` wraps one snapshot of the persisted document and
implements every read and upsert on it in memory.  :class:`StateStore`
binds those operations to a :class:`~roaster.store.document_store.DocumentStore`
so each public mutation is one atomic read-modify-write.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from roaster.models import (
    DEFAULT_VOICE_MODE,
    GroupPolicy,
    RoastEvent,
    VoiceMode,
)
from roaster.store.document_store import DocumentStore

DEFAULT_LOG_RETENTION = 100


class RoastDocument:
    """In-memory view over the document dict; mutations edit it in place."""

    def __init__(self, data: dict[str, Any], log_retention: int = DEFAULT_LOG_RETENTION) -> None:
        self._data = data
        self._retention = log_retention

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    # -- consent -------------------------------------------------------------

    def is_consenting(self, user_id: str) -> bool:
        entry = self._data["users"].get(str(user_id))
        return bool(entry and entry.get("allowRoasts") is True)

    def set_consent(self, user_id: str, allow: bool) -> None:
        self._data["users"].setdefault(str(user_id), {})["allowRoasts"] = bool(allow)

    # -- group policy --------------------------------------------------------

    def get_group_policy(self, group_id: str) -> GroupPolicy:
        entry = self._data["groups"].get(str(group_id)) or {}
        try:
            mode = VoiceMode(entry.get("defaultVoiceMode", DEFAULT_VOICE_MODE.value))
        except ValueError:
            mode = DEFAULT_VOICE_MODE
        return GroupPolicy(
            group_id=str(group_id),
            safe_mode=bool(entry.get("safeMode", False)),
            nuclear_ok=bool(entry.get("nuclearOk", False)),
            default_voice_mode=mode,
        )

    def _group_entry(self, group_id: str) -> dict[str, Any]:
        return self._data["groups"].setdefault(str(group_id), {})

    def set_safe_mode(self, group_id: str, on: bool) -> None:
        self._group_entry(group_id)["safeMode"] = bool(on)

    def set_nuclear_ok(self, group_id: str, on: bool) -> None:
        self._group_entry(group_id)["nuclearOk"] = bool(on)

    def set_default_voice_mode(self, group_id: str, mode: VoiceMode) -> None:
        self._group_entry(group_id)["defaultVoiceMode"] = VoiceMode(mode).value

    # -- cooldowns -----------------------------------------------------------

    def get_last_roast_time(self, user_id: str) -> int:
        entry = self._data["cooldowns"].get(str(user_id)) or {}
        return int(entry.get("lastRoastTime", 0) or 0)

    def record_cooldown(self, user_id: str, timestamp: int) -> None:
        # Never move a cooldown backwards.
        current = self.get_last_roast_time(user_id)
        self._data["cooldowns"].setdefault(str(user_id), {})["lastRoastTime"] = max(
            current, int(timestamp)
        )

    # -- roast log -----------------------------------------------------------

    def events(self) -> list[RoastEvent]:
        return [RoastEvent.from_dict(e) for e in self._data["roastLog"]]

    def append_event(self, event: RoastEvent) -> None:
        log = self._data["roastLog"]
        log.append(event.to_dict())
        if len(log) > self._retention:
            del log[: len(log) - self._retention]

    def events_for_group(self, group_id: str, limit: int = 10) -> list[RoastEvent]:
        """Return the group's most recent events, newest first."""
        group_events = [e for e in self.events() if e.group_id == str(group_id)]
        if limit <= 0:
            return []
        return list(reversed(group_events[-limit:]))


class StateStore:
    """Persisted consent and policy store.

    Reads go through :meth:`snapshot`; each setter is its own transaction.
    Callers that need several mutations applied together use
    :meth:`transaction` directly.
    """

    def __init__(self, documents: DocumentStore, log_retention: int = DEFAULT_LOG_RETENTION) -> None:
        self._documents = documents
        self._retention = log_retention

    @property
    def log_retention(self) -> int:
        return self._retention

    def snapshot(self) -> RoastDocument:
        return RoastDocument(self._documents.read(), self._retention)

    @contextmanager
    def transaction(self) -> Iterator[RoastDocument]:
        with self._documents.transaction() as data:
            yield RoastDocument(data, self._retention)

    # -- convenience wrappers ------------------------------------------------

    def is_consenting(self, user_id: str) -> bool:
        return self.snapshot().is_consenting(user_id)

    def set_consent(self, user_id: str, allow: bool) -> None:
        with self.transaction() as doc:
            doc.set_consent(user_id, allow)

    def get_group_policy(self, group_id: str) -> GroupPolicy:
        return self.snapshot().get_group_policy(group_id)

    def set_safe_mode(self, group_id: str, on: bool) -> GroupPolicy:
        with self.transaction() as doc:
            doc.set_safe_mode(group_id, on)
            return doc.get_group_policy(group_id)

    def set_nuclear_ok(self, group_id: str, on: bool) -> GroupPolicy:
        with self.transaction() as doc:
            doc.set_nuclear_ok(group_id, on)
            return doc.get_group_policy(group_id)

    def set_default_voice_mode(self, group_id: str, mode: VoiceMode) -> GroupPolicy:
        with self.transaction() as doc:
            doc.set_default_voice_mode(group_id, mode)
            return doc.get_group_policy(group_id)

    def get_last_roast_time(self, user_id: str) -> int:
        return self.snapshot().get_last_roast_time(user_id)

    def record_cooldown(self, user_id: str, timestamp: int) -> None:
        with self.transaction() as doc:
            doc.record_cooldown(user_id, timestamp)

    def append_event(self, event: RoastEvent) -> None:
        with self.transaction() as doc:
            doc.append_event(event)

    def events_for_group(self, group_id: str, limit: int = 10) -> list[RoastEvent]:
        return self.snapshot().events_for_group(group_id, limit)
