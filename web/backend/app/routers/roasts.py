"""Roasts router -- consent, group policy, roast log, and roast requests."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from roaster.config import load_settings
from roaster.errors import AdminRequired, PersistenceAlarm, RoastError
from roaster.models import GroupPolicy, RoastCommand, RoastEvent, RoastOutcome
from roaster.services import RoasterServices, build_services
from web.backend.app.models.api import (
    ConsentRequest,
    ConsentResponse,
    GroupPolicyResponse,
    RoastEventResponse,
    RoastOutcomeResponse,
    RoastRequestBody,
    UpdateGroupPolicyRequest,
)

router = APIRouter(prefix="/api", tags=["roasts"])


# ---------------------------------------------------------------------------
# Service singleton
# ---------------------------------------------------------------------------

_services: RoasterServices | None = None


def get_services() -> RoasterServices:
    global _services
    if _services is None:
        _services = build_services(load_settings())
    return _services


def set_services(services: RoasterServices | None) -> None:
    """Replace the service singleton (used by tests and custom wiring)."""
    global _services
    _services = services


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _policy_response(p: GroupPolicy) -> GroupPolicyResponse:
    return GroupPolicyResponse(
        group_id=p.group_id,
        safe_mode=p.safe_mode,
        nuclear_ok=p.nuclear_ok,
        default_voice_mode=p.default_voice_mode,
    )


def _event_response(e: RoastEvent) -> RoastEventResponse:
    return RoastEventResponse(
        timestamp=e.timestamp,
        target_user_id=e.target_user_id,
        issuer_user_id=e.issuer_user_id,
        tier=e.tier,
        group_id=e.group_id,
    )


def _outcome_response(o: RoastOutcome) -> RoastOutcomeResponse:
    return RoastOutcomeResponse(
        state=o.state.value,
        reason=o.reason,
        message=o.message,
        remaining_minutes=o.remaining_minutes,
        message_id=o.receipt.message_id if o.receipt else "",
        event=_event_response(o.event) if o.event else None,
        trail=[s.value for s in o.trail],
    )


def _raise_for(exc: RoastError) -> None:
    if isinstance(exc, AdminRequired):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)
    if exc.code == "invalid_argument":
        raise HTTPException(status_code=422, detail=exc.message)
    if exc.code == "synthesis_failed":
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)


# ---------------------------------------------------------------------------
# Consent endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/users/{user_id}/consent",
    response_model=ConsentResponse,
    summary="Get a user's roast consent",
)
def get_consent(user_id: str):
    services = get_services()
    try:
        allowed = services.store.is_consenting(user_id)
    except RoastError as exc:
        _raise_for(exc)
    return ConsentResponse(user_id=user_id, allow_roasts=allowed)


@router.post(
    "/users/{user_id}/consent",
    response_model=ConsentResponse,
    summary="Opt a user in to or out of roasts",
)
def set_consent(user_id: str, body: ConsentRequest):
    services = get_services()
    try:
        if body.allow_roasts:
            services.admin.opt_in(user_id)
        else:
            services.admin.opt_out(user_id)
    except RoastError as exc:
        _raise_for(exc)
    return ConsentResponse(user_id=user_id, allow_roasts=body.allow_roasts)


# ---------------------------------------------------------------------------
# Group policy endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/groups/{group_id}/policy",
    response_model=GroupPolicyResponse,
    summary="Get a group's roast policy",
)
def get_policy(group_id: str):
    services = get_services()
    try:
        policy = services.store.get_group_policy(group_id)
    except RoastError as exc:
        _raise_for(exc)
    return _policy_response(policy)


@router.put(
    "/groups/{group_id}/policy",
    response_model=GroupPolicyResponse,
    summary="Update a group's roast policy (admins only)",
)
def update_policy(group_id: str, body: UpdateGroupPolicyRequest):
    services = get_services()
    try:
        policy = services.admin.update_policy(
            group_id,
            body.actor_id,
            safe_mode=body.safe_mode,
            nuclear_ok=body.nuclear_ok,
            default_voice_mode=body.default_voice_mode.value if body.default_voice_mode else None,
        )
    except RoastError as exc:
        _raise_for(exc)
    return _policy_response(policy)


@router.get(
    "/groups/{group_id}/log",
    response_model=list[RoastEventResponse],
    summary="Recent roasts in a group, newest first (admins only)",
)
def get_roast_log(group_id: str, actor_id: str, limit: int = 10):
    services = get_services()
    try:
        events = services.admin.roast_log(group_id, actor_id, limit)
    except RoastError as exc:
        _raise_for(exc)
    return [_event_response(e) for e in events]


# ---------------------------------------------------------------------------
# Roast endpoint
# ---------------------------------------------------------------------------


@router.post(
    "/groups/{group_id}/roasts",
    response_model=RoastOutcomeResponse,
    summary="Request a voice roast",
)
def create_roast(group_id: str, body: RoastRequestBody):
    """Run the roast workflow.

    Gate aborts are normal results and come back with ``state="aborted"``
    and a reason code.
    """
    services = get_services()
    command = RoastCommand(
        group_id=group_id,
        issuer_id=body.issuer_id,
        target_id=body.target_id,
        reply_to_message_id=body.reply_to_message_id,
        tier=body.tier,
        voice_mode=body.voice_mode,
    )
    try:
        outcome = services.orchestrator.run(command)
    except PersistenceAlarm as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Roast delivered but not recorded: {exc.cause}",
        )
    return _outcome_response(outcome)
