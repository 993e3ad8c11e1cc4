"""
Eligibility validation for a sign-up against a session.

The validator is pure: it reads a :class:`SessionRecord`, a
:class:`SignupRequest` and the current time, and returns the first rejection
(or ``None``). A client may run it before submitting; the server re-runs it
identically at submit time.

Checks, first failure wins:
    1. Session status is Scheduled.
    2. The sign-up deadline, when set, has not passed.
    3. The character level lies inside the session's level tier.
    4. Required fields are present and well-formed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from quest_board.core.errors import (
    RegistrationError,
    SessionNotOpen,
    TierMismatch,
    ValidationFailed,
)
from quest_board.db.types import CharacterSnapshot, SessionRecord

MIN_LEVEL = 1
MAX_LEVEL = 20


class LevelTier(Enum):
    """Named inclusive character-level ranges."""

    ANY = ("any", 1, 20)
    TIER1 = ("tier1", 1, 4)
    TIER2 = ("tier2", 5, 10)
    TIER3 = ("tier3", 11, 16)
    TIER4 = ("tier4", 17, 20)

    def __init__(self, key: str, min_level: int, max_level: int) -> None:
        self.key = key
        self.min_level = min_level
        self.max_level = max_level

    def contains(self, level: int) -> bool:
        return self.min_level <= level <= self.max_level

    @classmethod
    def from_key(cls, key: str | None) -> LevelTier:
        """Look up a tier by its stored key; unknown or empty keys mean ANY."""
        normalized = (key or "any").strip().lower()
        for tier in cls:
            if tier.key == normalized:
                return tier
        return cls.ANY


@dataclass
class SignupRequest:
    """A player's sign-up submission after identity has been resolved."""

    session_id: str
    email: str
    name: str
    character_name: str | None = None
    character_class: list[str] | str | None = None
    character_level: int | str | None = None
    character_race: str | None = None
    player_notes: str = ""
    token: str | None = None

    def class_tags(self) -> list[str]:
        """Normalize the class field into a list of non-empty tags."""
        raw = self.character_class
        if raw is None:
            return []
        if isinstance(raw, str):
            raw = raw.split(",")
        return [str(tag).strip() for tag in raw if str(tag).strip()]

    def level(self) -> int | None:
        """Parse ``character_level`` into an int, or ``None`` when it is not one."""
        value = self.character_level
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return None

    def snapshot(self) -> CharacterSnapshot:
        """Freeze the character details; call only after validation passed."""
        level = self.level()
        assert level is not None
        return CharacterSnapshot(
            name=(self.character_name or "").strip(),
            character_class=", ".join(self.class_tags()),
            level=level,
            race=(self.character_race or "").strip(),
        )


def field_errors(request: SignupRequest) -> dict[str, str]:
    """Collect every missing or malformed required field."""
    errors: dict[str, str] = {}
    if not (request.name or "").strip():
        errors["name"] = "Name is required."
    if not (request.email or "").strip():
        errors["email"] = "Email is required."
    if not (request.character_name or "").strip():
        errors["character_name"] = "Character name is required."
    if not request.class_tags():
        errors["character_class"] = "Select at least one class."
    level = request.level()
    if level is None or not MIN_LEVEL <= level <= MAX_LEVEL:
        errors["character_level"] = f"Level must be {MIN_LEVEL}-{MAX_LEVEL}."
    if not (request.character_race or "").strip():
        errors["character_race"] = "Race/ancestry is required."
    return errors


def check(
    session: SessionRecord, request: SignupRequest, now: datetime
) -> RegistrationError | None:
    """Return the first eligibility failure, or ``None`` when the sign-up is eligible."""
    if session.status != "Scheduled":
        return SessionNotOpen()

    if session.signup_deadline is not None and now > session.signup_deadline:
        return SessionNotOpen("The sign-up deadline for this session has passed.")

    tier = LevelTier.from_key(session.level_tier)
    level = request.level()
    # out-of-range levels are reported as a field error below
    if level is not None and MIN_LEVEL <= level <= MAX_LEVEL and not tier.contains(level):
        return TierMismatch(
            f"This session is for levels {tier.min_level}-{tier.max_level}; "
            f"your character is level {level}."
        )

    errors = field_errors(request)
    if errors:
        return ValidationFailed(errors=errors)

    return None


def validate(session: SessionRecord, request: SignupRequest, now: datetime) -> None:
    """Raise the first eligibility failure.

    Raises:
        SessionNotOpen, TierMismatch, ValidationFailed
    """
    failure = check(session, request, now)
    if failure is not None:
        raise failure
