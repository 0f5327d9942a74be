"""Collaborator interfaces and local implementations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional, Protocol

from roaster.models import DeliveryReceipt, RoastRequest

logger = logging.getLogger(__name__)


class Deliverer(Protocol):
    """Sends a voice note as a threaded reply in the request's group.

    Returns a receipt; ``delivered=False`` or a raised exception both count
    as a failed delivery.
    """

    def deliver(self, payload: bytes, request: RoastRequest) -> DeliveryReceipt: ...


class AdminResolver(Protocol):
    def is_admin(self, group_id: str, user_id: str) -> bool: ...


class StaticAdminResolver:
    """Admin lookup backed by a fixed ``group_id -> user ids`` mapping."""

    def __init__(self, admins: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._admins = {
            str(group): {str(u) for u in users} for group, users in (admins or {}).items()
        }

    def is_admin(self, group_id: str, user_id: str) -> bool:
        return str(user_id) in self._admins.get(str(group_id), set())


class FileDeliverer:
    """Writes the voice note to a local file instead of a chat."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def deliver(self, payload: bytes, request: RoastRequest) -> DeliveryReceipt:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(payload)
        logger.info("Wrote %d-byte voice roast to %s", len(payload), self._path)
        return DeliveryReceipt(delivered=True, message_id=str(self._path))


class UnconfiguredDeliverer:
    """Placeholder used when no delivery channel is configured."""

    def deliver(self, payload: bytes, request: RoastRequest) -> DeliveryReceipt:
        return DeliveryReceipt(delivered=False, detail="No delivery channel configured")
