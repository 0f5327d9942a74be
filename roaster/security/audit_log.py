"""Audit trail for roast outcomes and admin actions.

Provides file-based JSON audit logging with filtering and export.  Events
are stored as newline-delimited JSON in daily files under the configured
audit directory (``./audit_logs/`` by default).

Action names in use:

- ``roast.logged`` / ``roast.aborted`` -- workflow outcomes
- ``roast.alarm`` -- roast delivered but cooldown/log write failed
- ``consent.set`` -- user opted in or out
- ``policy.safe_mode`` / ``policy.nuclear_ok`` / ``policy.voice_mode`` -- admin changes
- ``admin.denied`` -- a non-admin tried an admin action
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    """A single audit log entry."""

    id: str
    timestamp: str
    actor: str
    action: str
    group_id: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    success: bool = True


class AuditLogger:
    """File-based JSON audit logger."""

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path("audit_logs")
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _read_all_entries(self) -> list[AuditEntry]:
        entries: list[AuditEntry] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Skipping unreadable audit file %s: %s", path, exc)
                continue
            for line in text.splitlines():
                if not line.strip():
                    continue
                try:
                    entries.append(AuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Skipping malformed audit line in %s", path)
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def log_event(
        self,
        actor: str,
        action: str,
        group_id: str = "",
        details: Optional[dict[str, Any]] = None,
        success: bool = True,
    ) -> AuditEntry:
        """Record an audit event and return the created entry."""
        now = datetime.now(timezone.utc)
        entry = AuditEntry(
            id=uuid.uuid4().hex[:16],
            timestamp=now.isoformat(),
            actor=str(actor),
            action=action,
            group_id=str(group_id),
            details=details or {},
            success=success,
        )
        with self._lock:
            with self._log_file_for_date(now).open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(asdict(entry), default=str) + "\n")
        return entry

    def get_events(
        self,
        *,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        group_id: Optional[str] = None,
        limit: int = 200,
    ) -> list[AuditEntry]:
        """Return filtered audit events, newest first."""
        entries = self._read_all_entries()

        if actor:
            entries = [e for e in entries if e.actor == actor]
        if action:
            entries = [e for e in entries if e.action == action]
        if group_id:
            entries = [e for e in entries if e.group_id == group_id]

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def export_events(self, fmt: str = "json", **filters: Any) -> str:
        """Export audit events as ``json`` or ``csv``."""
        entries = self.get_events(**filters)

        if fmt == "csv":
            lines = ["id,timestamp,actor,action,group_id,success"]
            for e in entries:
                lines.append(f"{e.id},{e.timestamp},{e.actor},{e.action},{e.group_id},{e.success}")
            return "\n".join(lines)

        return json.dumps([asdict(e) for e in entries], indent=2, default=str)
