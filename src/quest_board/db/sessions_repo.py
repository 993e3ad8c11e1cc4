"""Session directory operations.

The registration engine only reads sessions. Writes here back the admin and
CLI surfaces (seeding a session, marking it Completed or Cancelled).
"""

from __future__ import annotations

import sqlite3
import uuid

from quest_board.core.clock import to_timestamp
from quest_board.db.errors import raise_read_error, raise_write_error
from quest_board.db.types import SessionRecord


def get_session(conn: sqlite3.Connection, session_id: str) -> SessionRecord | None:
    """Return the session with ``session_id`` or ``None``."""
    try:
        row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
    except sqlite3.Error as exc:
        raise_read_error("sessions.get_session", exc, details=f"session_id={session_id!r}")
    return SessionRecord.from_row(row) if row else None


def list_sessions(conn: sqlite3.Connection, *, status: str | None = None) -> list[SessionRecord]:
    """List sessions ordered by date, optionally filtered by status."""
    try:
        if status:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE status = ? ORDER BY session_date, id", (status,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM sessions ORDER BY session_date, id").fetchall()
    except sqlite3.Error as exc:
        raise_read_error("sessions.list_sessions", exc)
    return [SessionRecord.from_row(row) for row in rows]


def create_session(
    conn: sqlite3.Connection,
    *,
    capacity: int,
    level_tier: str = "any",
    signup_deadline=None,
    title: str = "",
    campaign: str = "",
    session_date: str | None = None,
    requires_approval: bool | None = None,
    session_id: str | None = None,
) -> SessionRecord:
    """Insert a Scheduled session and return it.

    ``signup_deadline`` may be a ``datetime`` or an ISO-8601 string.
    """
    new_id = session_id or uuid.uuid4().hex
    deadline = signup_deadline
    if deadline is not None and not isinstance(deadline, str):
        deadline = to_timestamp(deadline)
    try:
        conn.execute(
            """
            INSERT INTO sessions (
                id, title, campaign, session_date, capacity, level_tier,
                signup_deadline, status, requires_approval
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'Scheduled', ?)
            """,
            (
                new_id,
                title,
                campaign,
                session_date,
                capacity,
                level_tier,
                deadline,
                None if requires_approval is None else int(requires_approval),
            ),
        )
    except sqlite3.Error as exc:
        raise_write_error("sessions.create_session", exc, details=f"session_id={new_id!r}")
    created = get_session(conn, new_id)
    assert created is not None
    return created


def set_session_status(conn: sqlite3.Connection, session_id: str, status: str) -> bool:
    """Set a session's status. Returns False when the session does not exist."""
    try:
        cursor = conn.execute("UPDATE sessions SET status = ? WHERE id = ?", (status, session_id))
    except sqlite3.Error as exc:
        raise_write_error(
            "sessions.set_session_status",
            exc,
            details=f"session_id={session_id!r}, status={status!r}",
        )
    return int(cursor.rowcount or 0) > 0
