"""In-app notices and the notification outbox.

Outbox rows are written by the ledger inside its transaction, so a committed
transition always has its notification recorded. The dispatcher claims each
row exactly once with a conditional ``pending -> sending`` update.
"""

from __future__ import annotations

import json
import sqlite3
import uuid

from quest_board.core.clock import to_timestamp, utc_now
from quest_board.db.errors import raise_read_error, raise_write_error

# ============================================================================
# IN-APP NOTICES
# ============================================================================


def create_notice(
    conn: sqlite3.Connection,
    player_id: str,
    kind: str,
    message: str,
    related_id: str | None = None,
) -> str:
    notice_id = uuid.uuid4().hex
    try:
        conn.execute(
            """
            INSERT INTO notifications (id, player_id, kind, message, related_id, read, created_at)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            """,
            (notice_id, player_id, kind, message, related_id, to_timestamp(utc_now())),
        )
    except sqlite3.Error as exc:
        raise_write_error("notifications.create_notice", exc, details=f"kind={kind!r}")
    return notice_id


def list_unread(conn: sqlite3.Connection, player_id: str, limit: int = 20) -> list[dict]:
    try:
        rows = conn.execute(
            """
            SELECT * FROM notifications WHERE player_id = ? AND read = 0
            ORDER BY created_at DESC LIMIT ?
            """,
            (player_id, limit),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("notifications.list_unread", exc, details=f"player_id={player_id!r}")
    return [dict(row) for row in rows]


def list_for_player(conn: sqlite3.Connection, player_id: str, limit: int = 50) -> list[dict]:
    try:
        rows = conn.execute(
            "SELECT * FROM notifications WHERE player_id = ? ORDER BY created_at DESC LIMIT ?",
            (player_id, limit),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("notifications.list_for_player", exc, details=f"player_id={player_id!r}")
    return [dict(row) for row in rows]


def mark_read(conn: sqlite3.Connection, notice_id: str, player_id: str) -> bool:
    try:
        cursor = conn.execute(
            "UPDATE notifications SET read = 1 WHERE id = ? AND player_id = ?",
            (notice_id, player_id),
        )
    except sqlite3.Error as exc:
        raise_write_error("notifications.mark_read", exc, details=f"notice_id={notice_id!r}")
    return int(cursor.rowcount or 0) > 0


def mark_all_read(conn: sqlite3.Connection, player_id: str) -> int:
    try:
        cursor = conn.execute(
            "UPDATE notifications SET read = 1 WHERE player_id = ? AND read = 0", (player_id,)
        )
    except sqlite3.Error as exc:
        raise_write_error("notifications.mark_all_read", exc, details=f"player_id={player_id!r}")
    return int(cursor.rowcount or 0)


# ============================================================================
# OUTBOX
# ============================================================================


def enqueue(
    conn: sqlite3.Connection,
    kind: str,
    player_id: str,
    registration_id: str | None,
    payload: dict,
) -> int:
    """Record a notification to be delivered after the surrounding commit."""
    try:
        cursor = conn.execute(
            """
            INSERT INTO notification_outbox (
                kind, registration_id, player_id, payload_json, status, created_at
            )
            VALUES (?, ?, ?, ?, 'pending', ?)
            """,
            (
                kind,
                registration_id,
                player_id,
                json.dumps(payload, sort_keys=True),
                to_timestamp(utc_now()),
            ),
        )
    except sqlite3.Error as exc:
        raise_write_error("outbox.enqueue", exc, details=f"kind={kind!r}")
    return int(cursor.lastrowid or 0)


def pending_ids(conn: sqlite3.Connection, limit: int = 100) -> list[int]:
    try:
        rows = conn.execute(
            "SELECT id FROM notification_outbox WHERE status = 'pending' ORDER BY id LIMIT ?",
            (limit,),
        ).fetchall()
    except sqlite3.Error as exc:
        raise_read_error("outbox.pending_ids", exc)
    return [int(row["id"]) for row in rows]


def claim(conn: sqlite3.Connection, entry_id: int) -> dict | None:
    """Move one row from pending to sending.

    Returns:
        The claimed row (with ``payload`` decoded), or ``None`` when another
        worker claimed it first.
    """
    try:
        cursor = conn.execute(
            """
            UPDATE notification_outbox SET status = 'sending', attempts = attempts + 1
            WHERE id = ? AND status = 'pending'
            """,
            (entry_id,),
        )
        if int(cursor.rowcount or 0) == 0:
            return None
        row = conn.execute("SELECT * FROM notification_outbox WHERE id = ?", (entry_id,)).fetchone()
    except sqlite3.Error as exc:
        raise_write_error("outbox.claim", exc, details=f"entry_id={entry_id}")
    entry = dict(row)
    entry["payload"] = json.loads(entry.pop("payload_json") or "{}")
    return entry


def finish(conn: sqlite3.Connection, entry_id: int, *, error: str | None = None) -> None:
    """Mark a claimed row as sent, or failed with ``error``."""
    status = "failed" if error else "sent"
    try:
        conn.execute(
            """
            UPDATE notification_outbox SET status = ?, last_error = ?, dispatched_at = ?
            WHERE id = ?
            """,
            (status, error, to_timestamp(utc_now()), entry_id),
        )
    except sqlite3.Error as exc:
        raise_write_error("outbox.finish", exc, details=f"entry_id={entry_id}")


def list_entries(conn: sqlite3.Connection, *, status: str | None = None) -> list[dict]:
    try:
        if status:
            rows = conn.execute(
                "SELECT * FROM notification_outbox WHERE status = ? ORDER BY id", (status,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM notification_outbox ORDER BY id").fetchall()
    except sqlite3.Error as exc:
        raise_read_error("outbox.list_entries", exc)
    return [dict(row) for row in rows]
