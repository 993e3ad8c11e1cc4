"""Typed row records returned by the repository modules."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime

from quest_board.core.clock import parse_timestamp
from quest_board.core.states import RegistrationStatus


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """A scheduled game session as supplied by the session directory."""

    id: str
    capacity: int
    level_tier: str = "any"
    signup_deadline: datetime | None = None
    status: str = "Scheduled"
    title: str = ""
    campaign: str = ""
    session_date: str | None = None
    requires_approval: bool | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SessionRecord:
        approval = row["requires_approval"]
        return cls(
            id=row["id"],
            capacity=int(row["capacity"]),
            level_tier=row["level_tier"] or "any",
            signup_deadline=parse_timestamp(row["signup_deadline"]),
            status=row["status"],
            title=row["title"] or "",
            campaign=row["campaign"] or "",
            session_date=row["session_date"],
            requires_approval=None if approval is None else bool(approval),
        )

    @property
    def label(self) -> str:
        """Short human label used in messages and audit details."""
        name = self.title or self.campaign or self.id
        return f"{name} on {self.session_date}" if self.session_date else name


@dataclass(frozen=True, slots=True)
class PlayerRecord:
    id: str
    email: str
    display_name: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PlayerRecord:
        return cls(id=row["id"], email=row["email"], display_name=row["display_name"])


@dataclass(frozen=True, slots=True)
class CharacterSnapshot:
    """Character details frozen onto a registration at sign-up time."""

    name: str
    character_class: str
    level: int
    race: str


@dataclass(frozen=True, slots=True)
class RegistrationRecord:
    id: str
    session_id: str
    player_id: str
    character: CharacterSnapshot
    status: RegistrationStatus
    attendance_confirmed: bool
    created_at: str
    updated_at: str
    player_notes: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> RegistrationRecord:
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            player_id=row["player_id"],
            character=CharacterSnapshot(
                name=row["character_name"],
                character_class=row["character_class"],
                level=int(row["character_level"]),
                race=row["character_race"],
            ),
            status=RegistrationStatus(row["status"]),
            attendance_confirmed=bool(row["attendance_confirmed"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            player_notes=row["player_notes"] or "",
        )

    def to_dict(self) -> dict:
        return {
            "registration_id": self.id,
            "session_id": self.session_id,
            "player_id": self.player_id,
            "character_name": self.character.name,
            "character_class": self.character.character_class,
            "character_level": self.character.level,
            "character_race": self.character.race,
            "status": self.status.value,
            "attendance_confirmed": self.attendance_confirmed,
            "created_at": self.created_at,
        }
