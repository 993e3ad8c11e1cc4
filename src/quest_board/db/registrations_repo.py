"""Registration row access.

Every function takes the caller's connection so the ledger can compose reads
and writes into one ``BEGIN IMMEDIATE`` unit. Nothing here decides whether a
status change is legal; that belongs to :mod:`quest_board.core.ledger`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable

from quest_board.core.states import SEATED_STATUSES, RegistrationStatus
from quest_board.db.errors import raise_read_error, raise_write_error
from quest_board.db.types import CharacterSnapshot, RegistrationRecord

_SEATED = tuple(status.value for status in SEATED_STATUSES)


def get_registration(conn: sqlite3.Connection, registration_id: str) -> RegistrationRecord | None:
    try:
        row = conn.execute(
            "SELECT * FROM registrations WHERE id = ?", (registration_id,)
        ).fetchone()
    except sqlite3.Error as exc:
        raise_read_error(
            "registrations.get_registration", exc, details=f"registration_id={registration_id!r}"
        )
    return RegistrationRecord.from_row(row) if row else None


def find_for_pair(
    conn: sqlite3.Connection, session_id: str, player_id: str
) -> RegistrationRecord | None:
    """Return the single row for a (session, player) pair, whatever its status."""
    try:
        row = conn.execute(
            "SELECT * FROM registrations WHERE session_id = ? AND player_id = ?",
            (session_id, player_id),
        ).fetchone()
    except sqlite3.Error as exc:
        raise_read_error("registrations.find_for_pair", exc, details=f"session_id={session_id!r}")
    return RegistrationRecord.from_row(row) if row else None


def count_seated(conn: sqlite3.Connection, session_id: str) -> int:
    """Count registrations that occupy a seat (Confirmed or Attended)."""
    try:
        row = conn.execute(
            f"""
            SELECT COUNT(*) FROM registrations
            WHERE session_id = ? AND status IN ({", ".join("?" for _ in _SEATED)})
            """,
            (session_id, *_SEATED),
        ).fetchone()
    except sqlite3.Error as exc:
        raise_read_error("registrations.count_seated", exc, details=f"session_id={session_id!r}")
    return int(row[0])


def count_by_status(conn: sqlite3.Connection, session_id: str) -> dict[str, int]:
    try:
        rows = conn.execute(
            "SELECT status, COUNT(*) AS n FROM registrations WHERE session_id = ? GROUP BY status",
            (session_id,),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("registrations.count_by_status", exc, details=f"session_id={session_id!r}")
    return {row["status"]: int(row["n"]) for row in rows}


def oldest_waitlisted(conn: sqlite3.Connection, session_id: str) -> RegistrationRecord | None:
    """Return the first Waitlisted registration in arrival order."""
    try:
        row = conn.execute(
            """
            SELECT * FROM registrations
            WHERE session_id = ? AND status = ?
            ORDER BY created_at ASC, rowid ASC
            LIMIT 1
            """,
            (session_id, RegistrationStatus.WAITLISTED.value),
        ).fetchone()
    except sqlite3.Error as exc:
        raise_read_error(
            "registrations.oldest_waitlisted", exc, details=f"session_id={session_id!r}"
        )
    return RegistrationRecord.from_row(row) if row else None


def list_for_session(
    conn: sqlite3.Connection,
    session_id: str,
    statuses: Iterable[RegistrationStatus] | None = None,
) -> list[RegistrationRecord]:
    """List a session's registrations in arrival order."""
    params: list = [session_id]
    sql = "SELECT * FROM registrations WHERE session_id = ?"
    if statuses is not None:
        values = [status.value for status in statuses]
        sql += f" AND status IN ({', '.join('?' for _ in values)})"
        params.extend(values)
    sql += " ORDER BY created_at ASC, rowid ASC"
    try:
        rows = conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise_read_error(
            "registrations.list_for_session", exc, details=f"session_id={session_id!r}"
        )
    return [RegistrationRecord.from_row(row) for row in rows]


def list_by_status(
    conn: sqlite3.Connection, status: RegistrationStatus
) -> list[RegistrationRecord]:
    try:
        rows = conn.execute(
            "SELECT * FROM registrations WHERE status = ? ORDER BY created_at ASC, rowid ASC",
            (status.value,),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("registrations.list_by_status", exc, details=f"status={status.value!r}")
    return [RegistrationRecord.from_row(row) for row in rows]


def list_for_player_with_sessions(conn: sqlite3.Connection, player_id: str) -> list[sqlite3.Row]:
    """Join a player's non-cancelled registrations with their sessions."""
    try:
        return conn.execute(
            """
            SELECT r.*, s.title, s.campaign, s.session_date, s.status AS session_status
            FROM registrations r
            JOIN sessions s ON r.session_id = s.id
            WHERE r.player_id = ? AND r.status != ?
            ORDER BY s.session_date, r.created_at
            """,
            (player_id, RegistrationStatus.CANCELLED.value),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error(
            "registrations.list_for_player_with_sessions", exc, details=f"player_id={player_id!r}"
        )


def insert_registration(
    conn: sqlite3.Connection,
    *,
    registration_id: str,
    session_id: str,
    player_id: str,
    character: CharacterSnapshot,
    status: RegistrationStatus,
    timestamp: str,
    player_notes: str = "",
) -> None:
    """Insert a new registration row. Constraint violations propagate as
    ``sqlite3.IntegrityError`` so the ledger can map them to domain errors."""
    conn.execute(
        """
        INSERT INTO registrations (
            id, session_id, player_id, character_name, character_class,
            character_level, character_race, player_notes, status,
            attendance_confirmed, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        """,
        (
            registration_id,
            session_id,
            player_id,
            character.name,
            character.character_class,
            character.level,
            character.race,
            player_notes,
            status.value,
            timestamp,
            timestamp,
        ),
    )


def reopen_registration(
    conn: sqlite3.Connection,
    *,
    registration_id: str,
    character: CharacterSnapshot,
    status: RegistrationStatus,
    timestamp: str,
    player_notes: str = "",
) -> None:
    """Reuse a Cancelled row for a fresh sign-up: new snapshot, new queue position."""
    conn.execute(
        """
        UPDATE registrations SET
            character_name = ?, character_class = ?, character_level = ?,
            character_race = ?, player_notes = ?, status = ?,
            attendance_confirmed = 0, created_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            character.name,
            character.character_class,
            character.level,
            character.race,
            player_notes,
            status.value,
            timestamp,
            timestamp,
            registration_id,
        ),
    )


def update_status(
    conn: sqlite3.Connection,
    registration_id: str,
    *,
    expected: RegistrationStatus,
    status: RegistrationStatus,
    timestamp: str,
    attendance_confirmed: bool | None = None,
) -> bool:
    """Compare-and-set a registration's status.

    Returns:
        False when the row no longer holds ``expected``.
    """
    try:
        if attendance_confirmed is None:
            cursor = conn.execute(
                "UPDATE registrations SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
                (status.value, timestamp, registration_id, expected.value),
            )
        else:
            cursor = conn.execute(
                """
                UPDATE registrations SET status = ?, updated_at = ?, attendance_confirmed = ?
                WHERE id = ? AND status = ?
                """,
                (
                    status.value,
                    timestamp,
                    int(attendance_confirmed),
                    registration_id,
                    expected.value,
                ),
            )
    except sqlite3.IntegrityError:
        raise
    except sqlite3.Error as exc:
        raise_write_error(
            "registrations.update_status", exc, details=f"registration_id={registration_id!r}"
        )
    return int(cursor.rowcount or 0) > 0


def public_roster(conn: sqlite3.Connection, session_id: str) -> list[dict]:
    """Character names, classes and levels of seated registrations."""
    try:
        rows = conn.execute(
            f"""
            SELECT character_name, character_class, character_level
            FROM registrations
            WHERE session_id = ? AND status IN ({", ".join("?" for _ in _SEATED)})
            ORDER BY created_at ASC, rowid ASC
            """,
            (session_id, *_SEATED),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("registrations.public_roster", exc, details=f"session_id={session_id!r}")
    return [
        {
            "character_name": row["character_name"],
            "character_class": row["character_class"],
            "character_level": int(row["character_level"]),
        }
        for row in rows
    ]
