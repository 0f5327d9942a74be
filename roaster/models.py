"""Domain models for consent, group policy, cooldowns and roast events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Tier(str, Enum):
    """Severity tier of roast content."""

    tame = "tame"
    spicy = "spicy"
    nuclear = "nuclear"


class VoiceMode(str, Enum):
    """Named voice persona mapped to a provider voice."""

    silly = "silly"
    robot = "robot"
    deep = "deep"
    sultry = "sultry"


DEFAULT_TIER = Tier.tame
DEFAULT_VOICE_MODE = VoiceMode.silly


class WorkflowState(str, Enum):
    """States of a single roast workflow run, in transition order."""

    received = "received"
    validated = "validated"
    consent_checked = "consent_checked"
    policy_checked = "policy_checked"
    rate_checked = "rate_checked"
    content_selected = "content_selected"
    filter_checked = "filter_checked"
    synthesized = "synthesized"
    delivered = "delivered"
    logged = "logged"
    aborted = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (WorkflowState.logged, WorkflowState.aborted)


@dataclass
class UserConsent:
    user_id: str
    allow_roasts: bool = False


@dataclass
class GroupPolicy:
    """Per-group policy flags; missing fields take these defaults."""

    group_id: str
    safe_mode: bool = False
    nuclear_ok: bool = False
    default_voice_mode: VoiceMode = DEFAULT_VOICE_MODE


@dataclass
class Cooldown:
    user_id: str
    last_roast_time: int = 0  # epoch milliseconds


@dataclass
class RoastEvent:
    """One successfully delivered roast."""

    timestamp: int  # epoch milliseconds
    target_user_id: str
    issuer_user_id: str
    tier: Tier
    group_id: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "targetUserId": self.target_user_id,
            "issuerUserId": self.issuer_user_id,
            "tier": self.tier.value,
            "groupId": self.group_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RoastEvent":
        return cls(
            timestamp=int(d.get("timestamp", 0)),
            target_user_id=str(d.get("targetUserId", "")),
            issuer_user_id=str(d.get("issuerUserId", "")),
            tier=Tier(d.get("tier", DEFAULT_TIER.value)),
            group_id=str(d.get("groupId", "")),
        )


@dataclass
class RoastCommand:
    """Raw, unvalidated roast request as received from a chat surface."""

    group_id: str
    issuer_id: str
    target_id: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    tier: Optional[str] = None
    voice_mode: Optional[str] = None


@dataclass(frozen=True)
class RoastRequest:
    """A roast request that passed validation."""

    group_id: str
    issuer_id: str
    target_id: str
    reply_to_message_id: str
    tier: Tier
    voice_mode: VoiceMode


@dataclass
class DeliveryReceipt:
    delivered: bool
    message_id: str = ""
    detail: str = ""


@dataclass
class RoastOutcome:
    """Result of a workflow run; ``state`` is always terminal."""

    state: WorkflowState
    reason: str = ""
    message: str = ""
    line: str = ""
    event: Optional[RoastEvent] = None
    receipt: Optional[DeliveryReceipt] = None
    remaining_minutes: int = 0
    trail: list[WorkflowState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == WorkflowState.logged
