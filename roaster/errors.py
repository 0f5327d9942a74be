"""Error taxonomy for the roast workflow.

Every workflow abort is a :class:`RoastError` subclass carrying a stable
``code`` (used in logs, audit entries and API responses) and a
user-facing ``message``.
"""

from __future__ import annotations

from typing import Any


class RoastError(Exception):
    """Base class for every workflow abort reason."""

    code = "roast_error"
    default_message = "Something went wrong with that roast."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(RoastError):
    code = "invalid_argument"
    default_message = "That roast request is not valid."


class ConsentDenied(RoastError):
    code = "consent_denied"
    default_message = "That user hasn't opted in to receive roasts."


class TierDisabled(RoastError):
    code = "tier_disabled"
    default_message = "Nuclear roasts are disabled in this group. An admin needs to enable them first."


class RateLimited(RoastError):
    code = "rate_limited"

    def __init__(self, remaining_minutes: int, message: str | None = None) -> None:
        self.remaining_minutes = remaining_minutes
        super().__init__(
            message or f"Slow down! You can roast again in {remaining_minutes} minutes."
        )


class ContentUnavailable(RoastError):
    code = "content_unavailable"
    default_message = "No roasts are available for that tier."


class ProfanityBlocked(RoastError):
    code = "profanity_blocked"
    default_message = (
        "That roast contains profanity and safemode is enabled. "
        "Try again or ask an admin to disable safemode."
    )


class SynthesisFailed(RoastError):
    code = "synthesis_failed"
    default_message = "Sorry, there was an error generating your roast. Please try again later."


class ProviderError(SynthesisFailed):
    """Text-to-speech provider failure (network, auth, quota, timeout)."""


class TranscodeError(SynthesisFailed):
    """Audio transcoding failure (bad input, missing codec, timeout)."""


class DeliveryFailed(RoastError):
    code = "delivery_failed"
    default_message = "The voice roast could not be delivered."


class StorageError(RoastError):
    code = "storage_error"
    default_message = "Database error occurred."


class AdminRequired(RoastError):
    code = "admin_required"
    default_message = "Only group admins can do that."


class ConfigError(Exception):
    """Raised when settings fail validation at start-up."""


class PersistenceAlarm(Exception):
    """A roast was delivered but its cooldown and log entry were not saved.

    This is the one inconsistency window the workflow cannot roll back.
    It is raised to the caller instead of being reported as an abort.
    """

    def __init__(self, event: Any, receipt: Any, cause: BaseException) -> None:
        self.event = event
        self.receipt = receipt
        self.cause = cause
        super().__init__(f"Roast delivered but not recorded: {cause}")
