"""Pydantic models for API request/response serialization.

These models mirror the roaster dataclasses and provide JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from roaster.models import Tier, VoiceMode


# ---------------------------------------------------------------------------
# Consent models
# ---------------------------------------------------------------------------


class ConsentRequest(BaseModel):
    allow_roasts: bool


class ConsentResponse(BaseModel):
    user_id: str
    allow_roasts: bool


# ---------------------------------------------------------------------------
# Group policy models
# ---------------------------------------------------------------------------


class GroupPolicyResponse(BaseModel):
    """Mirrors roaster.models.GroupPolicy."""

    group_id: str
    safe_mode: bool = False
    nuclear_ok: bool = False
    default_voice_mode: VoiceMode = VoiceMode.silly


class UpdateGroupPolicyRequest(BaseModel):
    """Fields left as ``None`` are not changed."""

    actor_id: str
    safe_mode: Optional[bool] = None
    nuclear_ok: Optional[bool] = None
    default_voice_mode: Optional[VoiceMode] = None


# ---------------------------------------------------------------------------
# Roast models
# ---------------------------------------------------------------------------


class RoastEventResponse(BaseModel):
    """Mirrors roaster.models.RoastEvent."""

    timestamp: int
    target_user_id: str
    issuer_user_id: str
    tier: Tier
    group_id: str


class RoastRequestBody(BaseModel):
    """Inbound roast command; tier and voice mode are validated by the workflow."""

    issuer_id: str
    target_id: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    tier: Optional[str] = None
    voice_mode: Optional[str] = None


class RoastOutcomeResponse(BaseModel):
    """Mirrors roaster.models.RoastOutcome."""

    state: str
    reason: str = ""
    message: str = ""
    remaining_minutes: int = 0
    message_id: str = ""
    event: Optional[RoastEventResponse] = None
    trail: list[str] = Field(default_factory=list)
