"""Append-only audit trail.

This is the sink for ``(action_type, details, actor, related_id)`` records and
the ledger's own transition history. Rows are never updated or deleted; the
schema installs triggers that abort any attempt to do so.
"""

from __future__ import annotations

import sqlite3

from quest_board.core.clock import to_timestamp, utc_now
from quest_board.db.errors import raise_read_error, raise_write_error


def append(
    conn: sqlite3.Connection,
    action_type: str,
    details: str,
    actor: str,
    related_id: str | None,
    *,
    from_status: str | None = None,
    to_status: str | None = None,
    timestamp: str | None = None,
) -> int:
    """Append one audit record and return its id."""
    try:
        cursor = conn.execute(
            """
            INSERT INTO audit_log (
                action_type, details, actor, related_id, from_status, to_status, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                action_type,
                details,
                actor,
                related_id,
                from_status,
                to_status,
                timestamp or to_timestamp(utc_now()),
            ),
        )
    except sqlite3.Error as exc:
        raise_write_error("audit.append", exc, details=f"action_type={action_type!r}")
    return int(cursor.lastrowid or 0)


def list_for_related(conn: sqlite3.Connection, related_id: str) -> list[dict]:
    """Return the trail for one registration or session, oldest first."""
    try:
        rows = conn.execute(
            "SELECT * FROM audit_log WHERE related_id = ? ORDER BY id ASC", (related_id,)
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("audit.list_for_related", exc, details=f"related_id={related_id!r}")
    return [dict(row) for row in rows]


def list_recent(conn: sqlite3.Connection, limit: int = 100) -> list[dict]:
    try:
        rows = conn.execute(
            "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("audit.list_recent", exc)
    return [dict(row) for row in rows]
