"""Player identity persistence.

Players are created on first sign-up from the identity provider's
``{email, display_name}`` and never deleted here. Email is the natural key and
is compared case-insensitively.
"""

from __future__ import annotations

import sqlite3
import uuid

from quest_board.core.clock import to_timestamp, utc_now
from quest_board.db.errors import raise_read_error, raise_write_error
from quest_board.db.types import PlayerRecord


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_player_by_email(conn: sqlite3.Connection, email: str) -> PlayerRecord | None:
    try:
        row = conn.execute(
            "SELECT * FROM players WHERE email = ?", (normalize_email(email),)
        ).fetchone()
    except sqlite3.Error as exc:
        raise_read_error("players.get_player_by_email", exc)
    return PlayerRecord.from_row(row) if row else None


def get_player(conn: sqlite3.Connection, player_id: str) -> PlayerRecord | None:
    try:
        row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
    except sqlite3.Error as exc:
        raise_read_error("players.get_player", exc, details=f"player_id={player_id!r}")
    return PlayerRecord.from_row(row) if row else None


def upsert_player(conn: sqlite3.Connection, email: str, display_name: str) -> PlayerRecord:
    """Create the player for ``email`` or refresh its display name.

    Returns:
        The stored player record.
    """
    normalized = normalize_email(email)
    name = display_name.strip()
    try:
        conn.execute(
            """
            INSERT INTO players (id, email, display_name, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET
                display_name = CASE
                    WHEN excluded.display_name != '' THEN excluded.display_name
                    ELSE players.display_name
                END
            """,
            (uuid.uuid4().hex, normalized, name, to_timestamp(utc_now())),
        )
    except sqlite3.Error as exc:
        raise_write_error("players.upsert_player", exc)
    player = get_player_by_email(conn, normalized)
    assert player is not None
    return player
