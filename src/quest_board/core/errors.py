"""Domain error taxonomy for the registration engine.

Every business rejection is a :class:`RegistrationError` carrying a stable
``code`` (used as the ``reason`` field in API responses) and a user-facing
``message``. These are terminal for the request: they are raised before any
ledger write, or from inside a transaction that is then rolled back.

``NotificationFailed`` is the one non-fatal member. The dispatcher creates it
to describe a failed delivery in logs and in the outbox row; it is never
raised to a caller.
"""

from __future__ import annotations


class RegistrationError(Exception):
    """Base class for business rejections surfaced to the player."""

    code = "registration_error"
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None, *, errors: dict[str, str] | None = None):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)

    def to_payload(self) -> dict:
        """Render the ``success: false`` body returned by the HTTP layer."""
        payload: dict = {"success": False, "reason": self.code, "message": self.message}
        if self.errors:
            payload["errors"] = dict(self.errors)
        return payload


class InvalidToken(RegistrationError):
    code = "invalid_token"
    default_message = "Session expired. Please refresh the page and try again."


class RateLimited(RegistrationError):
    code = "rate_limited"
    default_message = "Too many sign-up attempts. Please wait a few minutes and try again."


class ValidationFailed(RegistrationError):
    code = "validation_failed"
    default_message = "Please fix the following errors:"


class SessionNotOpen(RegistrationError):
    code = "session_not_open"
    default_message = "This session is no longer accepting sign-ups."


class TierMismatch(RegistrationError):
    code = "tier_mismatch"
    default_message = "Your character's level is outside this session's level tier."


class SessionFull(RegistrationError):
    code = "session_full"
    default_message = "This session is full. Check the calendar for other open sessions!"


class DuplicateRegistration(RegistrationError):
    code = "duplicate_registration"
    default_message = "You are already registered for this session."


class InvalidTransition(RegistrationError):
    """A status change not present in the ledger transition table."""

    code = "invalid_transition"

    def __init__(self, from_status: str | None, to_status: str, trigger: str):
        self.from_status = from_status
        self.to_status = to_status
        self.trigger = trigger
        source = from_status or "(new)"
        super().__init__(f"Cannot move a registration from {source} to {to_status} ({trigger}).")


class NotFound(RegistrationError):
    code = "not_found"
    default_message = "Registration not found."


class NotPermitted(RegistrationError):
    code = "not_permitted"
    default_message = "You are not allowed to perform this action."


class NotificationFailed(Exception):
    """Describes a failed notification delivery. Logged, never propagated."""

    def __init__(self, kind: str, recipient: str, detail: str):
        self.kind = kind
        self.recipient = recipient
        self.detail = detail
        super().__init__(f"{kind} notification to {recipient} failed: {detail}")
