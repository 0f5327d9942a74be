"""Roast workflow engine.

One call to :meth:`RoastOrchestrator.run` drives a single request through
a fixed sequence of states::

    received -> validated -> consent_checked -> policy_checked -> rate_checked
      -> content_selected -> filter_checked -> synthesized -> delivered -> logged

Any handler may raise a :class:`~roaster.errors.RoastError`, which ends
the run in ``aborted`` with that error's code.  All gates run before the
synthesis call.  The store is read once at the start (a snapshot, lock
released immediately) and written once at the end, after delivery has been
confirmed; synthesis and delivery run with no lock held.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from roaster.content.source import ContentSource
from roaster.delivery.base import Deliverer
from roaster.errors import (
    ConsentDenied,
    DeliveryFailed,
    InvalidArgument,
    PersistenceAlarm,
    ProfanityBlocked,
    RateLimited,
    RoastError,
    StorageError,
    SynthesisFailed,
    TierDisabled,
)
from roaster.models import (
    DEFAULT_TIER,
    DEFAULT_VOICE_MODE,
    DeliveryReceipt,
    GroupPolicy,
    RoastCommand,
    RoastEvent,
    RoastOutcome,
    RoastRequest,
    Tier,
    VoiceMode,
    WorkflowState,
)
from roaster.moderation.profanity import ProfanityFilter
from roaster.security.audit_log import AuditLogger
from roaster.store.state_store import RoastDocument, StateStore
from roaster.synthesis.pipeline import SynthesisPipeline

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_SECONDS = 5 * 60

Clock = Callable[[], int]


def epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class _Run:
    """Mutable working state of one workflow run."""

    command: RoastCommand
    state: WorkflowState = WorkflowState.received
    trail: list[WorkflowState] = field(default_factory=list)
    snapshot: Optional[RoastDocument] = None
    policy: Optional[GroupPolicy] = None
    request: Optional[RoastRequest] = None
    line: str = ""
    payload: bytes = b""
    receipt: Optional[DeliveryReceipt] = None
    event: Optional[RoastEvent] = None


class RoastOrchestrator:
    """Consent-, policy- and rate-gated roast workflow."""

    def __init__(
        self,
        store: StateStore,
        content: ContentSource,
        synthesis: SynthesisPipeline,
        deliverer: Deliverer,
        profanity: Optional[ProfanityFilter] = None,
        rate_limit_seconds: float = DEFAULT_RATE_LIMIT_SECONDS,
        clock: Optional[Clock] = None,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        self._store = store
        self._content = content
        self._synthesis = synthesis
        self._deliverer = deliverer
        self._profanity = profanity or ProfanityFilter()
        self._rate_limit_ms = int(rate_limit_seconds * 1000)
        self._clock = clock or epoch_millis
        self._audit = audit

        self._handlers: dict[WorkflowState, Callable[[_Run], WorkflowState]] = {
            WorkflowState.received: self._validate,
            WorkflowState.validated: self._check_consent,
            WorkflowState.consent_checked: self._check_policy,
            WorkflowState.policy_checked: self._check_rate,
            WorkflowState.rate_checked: self._select_content,
            WorkflowState.content_selected: self._check_filter,
            WorkflowState.filter_checked: self._synthesize,
            WorkflowState.synthesized: self._deliver,
            WorkflowState.delivered: self._record,
        }

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(self, command: RoastCommand) -> RoastOutcome:
        """Drive *command* to a terminal state and describe the result.

        Raises :class:`~roaster.errors.PersistenceAlarm` only when the roast
        was delivered but its cooldown and log entry could not be saved.
        """
        run = _Run(command=command)
        run.trail.append(run.state)

        while not run.state.terminal:
            handler = self._handlers[run.state]
            try:
                next_state = handler(run)
            except RoastError as exc:
                return self._abort(run, exc)
            logger.debug("roast %s -> %s", run.state.value, next_state.value)
            run.state = next_state
            run.trail.append(next_state)

        outcome = RoastOutcome(
            state=run.state,
            message="Roast delivered.",
            line=run.line,
            event=run.event,
            receipt=run.receipt,
            trail=list(run.trail),
        )
        self._audit_outcome(run, outcome)
        return outcome

    def _abort(self, run: _Run, exc: RoastError) -> RoastOutcome:
        logger.info(
            "Roast aborted in state %s: %s (issuer=%s group=%s)",
            run.state.value, exc.code, run.command.issuer_id, run.command.group_id,
        )
        run.trail.append(WorkflowState.aborted)
        outcome = RoastOutcome(
            state=WorkflowState.aborted,
            reason=exc.code,
            message=exc.message,
            line=run.line,
            remaining_minutes=getattr(exc, "remaining_minutes", 0),
            trail=list(run.trail),
        )
        self._audit_outcome(run, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _validate(self, run: _Run) -> WorkflowState:
        cmd = run.command
        # StorageError here aborts before any gate is evaluated.
        run.snapshot = self._store.snapshot()

        if not cmd.group_id or not cmd.issuer_id:
            raise InvalidArgument("A roast needs a chat and an issuer.")
        if not cmd.target_id or not cmd.reply_to_message_id:
            raise InvalidArgument(
                "You must reply to someone's message to roast them!\n\n"
                "Usage: Reply to a message and type /voiceroast [tier] [mode]"
            )

        try:
            tier = Tier(cmd.tier) if cmd.tier else DEFAULT_TIER
        except ValueError:
            raise InvalidArgument("Invalid tier! Use: tame, spicy, or nuclear") from None

        run.policy = run.snapshot.get_group_policy(cmd.group_id)
        try:
            mode = VoiceMode(cmd.voice_mode) if cmd.voice_mode else DEFAULT_VOICE_MODE
        except ValueError:
            raise InvalidArgument("Invalid voice mode! Use: silly, robot, deep, or sultry") from None

        run.request = RoastRequest(
            group_id=str(cmd.group_id),
            issuer_id=str(cmd.issuer_id),
            target_id=str(cmd.target_id),
            reply_to_message_id=str(cmd.reply_to_message_id),
            tier=tier,
            voice_mode=mode,
        )
        return WorkflowState.validated

    def _check_consent(self, run: _Run) -> WorkflowState:
        if not run.snapshot.is_consenting(run.request.target_id):
            raise ConsentDenied(
                "That user hasn't opted in to receive roasts! They need to use /allow_roast first."
            )
        return WorkflowState.consent_checked

    def _check_policy(self, run: _Run) -> WorkflowState:
        if run.request.tier == Tier.nuclear and not run.policy.nuclear_ok:
            raise TierDisabled()
        return WorkflowState.policy_checked

    def _check_rate(self, run: _Run) -> WorkflowState:
        last = run.snapshot.get_last_roast_time(run.request.issuer_id)
        elapsed = self._clock() - last
        if elapsed < self._rate_limit_ms:
            remaining_ms = min(self._rate_limit_ms - elapsed, self._rate_limit_ms)
            raise RateLimited(math.ceil(remaining_ms / 60_000))
        return WorkflowState.rate_checked

    def _select_content(self, run: _Run) -> WorkflowState:
        run.line = self._content.draw(run.request.tier)
        return WorkflowState.content_selected

    def _check_filter(self, run: _Run) -> WorkflowState:
        if run.policy.safe_mode and self._profanity.contains_disallowed_language(run.line):
            logger.info("Blocked profanity in roast: %.50s", run.line)
            raise ProfanityBlocked()
        return WorkflowState.filter_checked

    def _synthesize(self, run: _Run) -> WorkflowState:
        try:
            run.payload = self._synthesis.synthesize(run.line, run.request.voice_mode)
        except SynthesisFailed as exc:
            logger.warning("Error generating voice roast: %s", exc)
            raise SynthesisFailed() from exc
        return WorkflowState.synthesized

    def _deliver(self, run: _Run) -> WorkflowState:
        try:
            receipt = self._deliverer.deliver(run.payload, run.request)
        except Exception as exc:
            logger.warning("Voice delivery raised: %s", exc)
            raise DeliveryFailed() from exc
        if receipt is None or not receipt.delivered:
            logger.warning(
                "Voice delivery not confirmed: %s", receipt.detail if receipt else "no receipt"
            )
            raise DeliveryFailed()
        run.receipt = receipt
        return WorkflowState.delivered

    def _record(self, run: _Run) -> WorkflowState:
        now = self._clock()
        req = run.request
        event = RoastEvent(
            timestamp=now,
            target_user_id=req.target_id,
            issuer_user_id=req.issuer_id,
            tier=req.tier,
            group_id=req.group_id,
        )
        try:
            with self._store.transaction() as doc:
                doc.record_cooldown(req.issuer_id, now)
                doc.append_event(event)
        except StorageError as exc:
            self._raise_alarm(run, event, exc)
        run.event = event
        return WorkflowState.logged

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _raise_alarm(self, run: _Run, event: RoastEvent, exc: StorageError) -> None:
        logger.critical(
            "Roast delivered but NOT recorded (issuer=%s target=%s group=%s message=%s): %s",
            event.issuer_user_id, event.target_user_id, event.group_id,
            run.receipt.message_id if run.receipt else "", exc,
        )
        if self._audit is not None:
            try:
                self._audit.log_event(
                    actor=event.issuer_user_id,
                    action="roast.alarm",
                    group_id=event.group_id,
                    details={"event": event.to_dict(), "error": str(exc.__cause__ or exc)},
                    success=False,
                )
            except OSError as audit_exc:
                logger.critical("Could not write roast alarm to audit log: %s", audit_exc)
        raise PersistenceAlarm(event, run.receipt, exc) from exc

    def _audit_outcome(self, run: _Run, outcome: RoastOutcome) -> None:
        if self._audit is None:
            return
        cmd = run.command
        details = {
            "target": cmd.target_id,
            "tier": run.request.tier.value if run.request else cmd.tier,
            "states": [s.value for s in outcome.trail],
        }
        if outcome.reason:
            details["reason"] = outcome.reason
        try:
            self._audit.log_event(
                actor=cmd.issuer_id,
                action="roast.logged" if outcome.succeeded else "roast.aborted",
                group_id=cmd.group_id,
                details=details,
                success=outcome.succeeded,
            )
        except OSError as exc:
            logger.error("Could not write roast outcome to audit log: %s", exc)
