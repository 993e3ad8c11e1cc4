"""Notification kinds and the single template each one renders.

Templates are plain ``str.format`` strings. The dispatcher fills them from the
outbox payload plus the player and session it resolves at delivery time, so
a template may use any of:

    player_name, session_title, session_date, character_name, status,
    reason, cancel_url
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NotificationKind(str, Enum):
    SIGNUP_RECEIVED = "SignupReceived"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    WAITLIST_PROMOTED = "WaitlistPromoted"
    CANCELLED = "Cancelled"
    REMINDER = "Reminder"


@dataclass(frozen=True, slots=True)
class Template:
    """One notification template: an email subject/body and an in-app line."""

    subject: str
    body: str
    notice: str


@dataclass(frozen=True, slots=True)
class RenderedNotification:
    kind: NotificationKind
    subject: str
    body: str
    notice: str


TEMPLATES: dict[NotificationKind, Template] = {
    NotificationKind.SIGNUP_RECEIVED: Template(
        subject="Sign-up received: {session_title}",
        body=(
            "Hi {player_name},\n\n"
            "We received {character_name}'s sign-up for {session_title} ({session_date}).\n"
            "Current status: {status}.\n\n"
            "Can't make it? Cancel here: {cancel_url}\n"
        ),
        notice="{character_name} is {status} for {session_title}.",
    ),
    NotificationKind.APPROVED: Template(
        subject="You're confirmed: {session_title}",
        body=(
            "Hi {player_name},\n\n"
            "{character_name} has been approved for {session_title} ({session_date}). "
            "See you at the table!\n"
        ),
        notice="{character_name} was approved for {session_title}.",
    ),
    NotificationKind.REJECTED: Template(
        subject="Sign-up not accepted: {session_title}",
        body=(
            "Hi {player_name},\n\n"
            "{character_name}'s sign-up for {session_title} ({session_date}) "
            "was not accepted.\n{reason}\n"
        ),
        notice="{character_name}'s sign-up for {session_title} was not accepted.",
    ),
    NotificationKind.WAITLIST_PROMOTED: Template(
        subject="A seat opened up: {session_title}",
        body=(
            "Hi {player_name},\n\n"
            "A seat opened in {session_title} ({session_date}) and "
            "{character_name} has been moved off the waitlist. You're confirmed!\n"
        ),
        notice="{character_name} was promoted from the waitlist for {session_title}.",
    ),
    NotificationKind.CANCELLED: Template(
        subject="Registration cancelled: {session_title}",
        body=(
            "Hi {player_name},\n\n"
            "{character_name}'s registration for {session_title} ({session_date}) "
            "has been cancelled.\n{reason}\n"
        ),
        notice="{character_name}'s registration for {session_title} was cancelled.",
    ),
    NotificationKind.REMINDER: Template(
        subject="Reminder: {session_title} is coming up",
        body=(
            "Hi {player_name},\n\n"
            "Just a reminder that {session_title} is on {session_date}. "
            "{character_name} has a seat at the table.\n"
        ),
        notice="Reminder: {session_title} on {session_date}.",
    ),
}

_DEFAULTS = {
    "player_name": "adventurer",
    "session_title": "your session",
    "session_date": "TBD",
    "character_name": "Your character",
    "status": "",
    "reason": "",
    "cancel_url": "",
}


class _Context(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(kind: NotificationKind | str, data: dict) -> RenderedNotification:
    """Render the template for ``kind``. Unknown keys in a template render empty."""
    resolved = NotificationKind(kind)
    template = TEMPLATES[resolved]
    context = _Context(_DEFAULTS)
    context.update({key: value for key, value in data.items() if value not in (None, "")})
    return RenderedNotification(
        kind=resolved,
        subject=template.subject.format_map(context),
        body=template.body.format_map(context),
        notice=template.notice.format_map(context),
    )
