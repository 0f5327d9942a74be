"""Group administration and user self-service commands.

Policy changes and inspection (roast log, provider voices) require the
actor to be an admin of the group, checked through the injected
:class:`~roaster.delivery.base.AdminResolver` before anything is read or
written.  Opting in or out needs no admin rights.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from roaster.delivery.base import AdminResolver
from roaster.errors import AdminRequired, InvalidArgument
from roaster.models import GroupPolicy, RoastEvent, VoiceMode
from roaster.security.audit_log import AuditLogger
from roaster.store.state_store import StateStore
from roaster.synthesis.provider import ProviderVoice

logger = logging.getLogger(__name__)


def _parse_mode(mode: str) -> VoiceMode:
    try:
        return VoiceMode(mode)
    except ValueError:
        raise InvalidArgument(
            "Usage: /set_voice_mode <mode>\n\nAvailable modes: silly, robot, deep, sultry"
        ) from None


class VoiceCatalog(Protocol):
    def list_voices(self) -> list[ProviderVoice]: ...


class AdminService:
    """Admin-gated policy commands plus consent self-service."""

    def __init__(
        self,
        store: StateStore,
        admins: AdminResolver,
        voices: Optional[VoiceCatalog] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._admins = admins
        self._voices = voices
        self._audit = audit

    # -- helpers -------------------------------------------------------------

    def _record(self, actor: str, action: str, group_id: str = "", **details: object) -> None:
        if self._audit is None:
            return
        try:
            self._audit.log_event(actor=actor, action=action, group_id=group_id, details=dict(details))
        except OSError as exc:
            logger.error("Could not write %s to audit log: %s", action, exc)

    def require_admin(self, group_id: str, actor_id: str, what: str) -> None:
        if not self._admins.is_admin(group_id, actor_id):
            logger.info("User %s denied admin action %s in group %s", actor_id, what, group_id)
            if self._audit is not None:
                try:
                    self._audit.log_event(
                        actor=actor_id, action="admin.denied", group_id=group_id,
                        details={"attempted": what}, success=False,
                    )
                except OSError as exc:
                    logger.error("Could not write admin.denied to audit log: %s", exc)
            raise AdminRequired(f"Only group admins can {what}.")

    # -- self-service --------------------------------------------------------

    def opt_in(self, user_id: str) -> None:
        self._store.set_consent(user_id, True)
        self._record(user_id, "consent.set", allow=True)

    def opt_out(self, user_id: str) -> None:
        self._store.set_consent(user_id, False)
        self._record(user_id, "consent.set", allow=False)

    # -- policy --------------------------------------------------------------

    def set_safe_mode(self, group_id: str, actor_id: str, on: bool) -> GroupPolicy:
        self.require_admin(group_id, actor_id, "change safemode settings")
        policy = self._store.set_safe_mode(group_id, on)
        self._record(actor_id, "policy.safe_mode", group_id, enabled=bool(on))
        return policy

    def set_nuclear_ok(self, group_id: str, actor_id: str, on: bool) -> GroupPolicy:
        self.require_admin(group_id, actor_id, "change nuclear roast settings")
        policy = self._store.set_nuclear_ok(group_id, on)
        self._record(actor_id, "policy.nuclear_ok", group_id, enabled=bool(on))
        return policy

    def set_default_voice_mode(self, group_id: str, actor_id: str, mode: str) -> GroupPolicy:
        self.require_admin(group_id, actor_id, "set the default voice mode")
        voice_mode = _parse_mode(mode)
        policy = self._store.set_default_voice_mode(group_id, voice_mode)
        self._record(actor_id, "policy.voice_mode", group_id, mode=voice_mode.value)
        return policy

    def update_policy(
        self,
        group_id: str,
        actor_id: str,
        safe_mode: Optional[bool] = None,
        nuclear_ok: Optional[bool] = None,
        default_voice_mode: Optional[str] = None,
    ) -> GroupPolicy:
        """Apply several policy changes with one admin check and one write.

        Arguments left as ``None`` are not changed.
        """
        self.require_admin(group_id, actor_id, "change group roast settings")
        voice_mode = _parse_mode(default_voice_mode) if default_voice_mode is not None else None

        with self._store.transaction() as doc:
            if safe_mode is not None:
                doc.set_safe_mode(group_id, safe_mode)
            if nuclear_ok is not None:
                doc.set_nuclear_ok(group_id, nuclear_ok)
            if voice_mode is not None:
                doc.set_default_voice_mode(group_id, voice_mode)
            policy = doc.get_group_policy(group_id)

        if safe_mode is not None:
            self._record(actor_id, "policy.safe_mode", group_id, enabled=bool(safe_mode))
        if nuclear_ok is not None:
            self._record(actor_id, "policy.nuclear_ok", group_id, enabled=bool(nuclear_ok))
        if voice_mode is not None:
            self._record(actor_id, "policy.voice_mode", group_id, mode=voice_mode.value)
        return policy

    # -- inspection ----------------------------------------------------------

    def roast_log(self, group_id: str, actor_id: str, limit: int = 10) -> list[RoastEvent]:
        """Return the group's most recent roasts, newest first."""
        self.require_admin(group_id, actor_id, "view the roast log")
        return self._store.events_for_group(group_id, limit)

    def list_voices(self, group_id: str, actor_id: str) -> list[ProviderVoice]:
        self.require_admin(group_id, actor_id, "list voices")
        if self._voices is None:
            return []
        return self._voices.list_voices()
