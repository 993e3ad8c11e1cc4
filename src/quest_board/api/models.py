"""
Pydantic models for API requests and responses.

Request models describe what the client sends; response models describe the
``success`` envelope every endpoint returns. Business rejections are not
modelled here: they are rendered from the domain error by the exception
handler in :mod:`quest_board.api.server` as
``{success: false, reason, message, errors?}``.
"""

from typing import Any

from pydantic import BaseModel, Field

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class SignupForm(BaseModel):
    """
    Sign-up submission.

    Identity (email and display name) comes from request headers, not the
    body. ``name`` overrides the display name when given.

    Attributes:
        token: One-time form token from ``GET /csrf-token``
        session_id: Session being signed up for
        character_class: Class tags, as a list or a comma-separated string
        character_level: 1-20; strings are accepted and parsed
    """

    token: str | None = None
    session_id: str
    name: str | None = None
    character_name: str | None = None
    character_class: list[str] | str | None = None
    character_level: int | str | None = None
    character_race: str | None = None
    player_notes: str = ""


class CancelByTokenRequest(BaseModel):
    token: str


class RejectRequest(BaseModel):
    reason: str | None = None


class AttendanceRequest(BaseModel):
    attended: bool


class SessionCancelRequest(BaseModel):
    reason: str | None = None


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class TokenResponse(BaseModel):
    token: str


class SignupResponse(BaseModel):
    success: bool
    message: str
    registration_id: str | None = None
    status: str | None = None
    waitlisted: bool = False


class RegistrationActionResponse(BaseModel):
    """Result of an approve/reject/cancel/attendance action."""

    success: bool
    message: str
    registration: dict[str, Any] | None = None
    promoted: dict[str, Any] | None = None


class SessionActionResponse(BaseModel):
    success: bool
    message: str
    session_id: str
    affected: int = 0


class MyRegistrationsResponse(BaseModel):
    success: bool = True
    upcoming: list[dict[str, Any]] = Field(default_factory=list)
    past: list[dict[str, Any]] = Field(default_factory=list)


class NotificationsResponse(BaseModel):
    success: bool = True
    notifications: list[dict[str, Any]] = Field(default_factory=list)


class MarkReadResponse(BaseModel):
    success: bool
    updated: int = 0


class RosterResponse(BaseModel):
    success: bool = True
    session_id: str
    title: str = ""
    session_date: str | None = None
    status: str
    capacity: int
    seats_taken: int
    seats_available: int
    waitlisted: int
    roster: list[dict[str, Any]] = Field(default_factory=list)


class PendingRegistrationsResponse(BaseModel):
    success: bool = True
    registrations: list[dict[str, Any]] = Field(default_factory=list)


class AuditResponse(BaseModel):
    success: bool = True
    entries: list[dict[str, Any]] = Field(default_factory=list)
