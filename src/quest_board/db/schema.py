"""Schema creation and invariant trigger wiring for the SQLite backend.

The schema layer is isolated from query code so schema changes are reviewable
without wading through repository logic.

Tables:
    sessions             Session directory (capacity, tier, deadline, status)
    players              Player identities keyed by lower-cased email
    registrations        One row per (session, player) pair, ever
    audit_log            Append-only transition and admin action history
    notifications        In-app notices shown to players
    notification_outbox  Pending notification events written with the ledger
"""

from __future__ import annotations

import logging
import sqlite3

from quest_board.db.connection import get_connection

logger = logging.getLogger(__name__)

REGISTRATION_STATUSES = ("Pending", "Confirmed", "Waitlisted", "Cancelled", "Attended", "No-Show")
SESSION_STATUSES = ("Scheduled", "Completed", "Cancelled")
LEVEL_TIERS = ("any", "tier1", "tier2", "tier3", "tier4")


def _quoted(values: tuple[str, ...]) -> str:
    return ", ".join(f"'{value}'" for value in values)


TABLE_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL DEFAULT '',
        campaign TEXT NOT NULL DEFAULT '',
        session_date TEXT,
        capacity INTEGER NOT NULL CHECK (capacity > 0),
        level_tier TEXT NOT NULL DEFAULT 'any' CHECK (level_tier IN ({_quoted(LEVEL_TIERS)})),
        signup_deadline TEXT,
        status TEXT NOT NULL DEFAULT 'Scheduled'
            CHECK (status IN ({_quoted(SESSION_STATUSES)})),
        requires_approval INTEGER,
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        display_name TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS registrations (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL REFERENCES sessions(id),
        player_id TEXT NOT NULL REFERENCES players(id),
        character_name TEXT NOT NULL,
        character_class TEXT NOT NULL,
        character_level INTEGER NOT NULL CHECK (character_level BETWEEN 1 AND 20),
        character_race TEXT NOT NULL,
        player_notes TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL CHECK (status IN ({_quoted(REGISTRATION_STATUSES)})),
        attendance_confirmed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (session_id, player_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        action_type TEXT NOT NULL,
        details TEXT NOT NULL DEFAULT '',
        actor TEXT NOT NULL DEFAULT '',
        related_id TEXT,
        from_status TEXT,
        to_status TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        player_id TEXT NOT NULL REFERENCES players(id),
        kind TEXT NOT NULL,
        message TEXT NOT NULL,
        related_id TEXT,
        read INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_outbox (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL,
        registration_id TEXT,
        player_id TEXT NOT NULL,
        payload_json TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'sending', 'sent', 'failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        created_at TEXT NOT NULL,
        dispatched_at TEXT
    )
    """,
)

# Hot-path indexes:
# 1. capacity counts and waitlist selection are always session + status scoped.
# 2. "my registrations" is player scoped.
# 3. the outbox drain scans pending rows in insertion order.
INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_registrations_session_status "
    "ON registrations(session_id, status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_registrations_player ON registrations(player_id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_related ON audit_log(related_id, id)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_action ON audit_log(action_type)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_player_read ON notifications(player_id, read)",
    "CREATE INDEX IF NOT EXISTS idx_outbox_status ON notification_outbox(status, id)",
)


def create_capacity_triggers(conn: sqlite3.Connection) -> None:
    """Create triggers that enforce the seat-limit invariant at the storage layer.

    Invariant model:
        ``count(status IN ('Confirmed', 'Attended'))`` for a session never
        exceeds ``sessions.capacity``.

    The coordinator already serializes capacity decisions per session; these
    triggers turn any write that slips past it into ``capacity_exceeded``
    instead of an overfilled table. Confirmed -> Attended does not occupy a
    new seat and is therefore not guarded.
    """
    seated = "('Confirmed', 'Attended')"
    conn.execute(
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_registrations_capacity_insert
        BEFORE INSERT ON registrations
        WHEN NEW.status IN {seated}
        BEGIN
            SELECT RAISE(ABORT, 'capacity_exceeded')
            WHERE (
                SELECT COUNT(*) FROM registrations
                WHERE session_id = NEW.session_id AND status IN {seated}
            ) >= (SELECT capacity FROM sessions WHERE id = NEW.session_id);
        END
        """
    )
    conn.execute(
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_registrations_capacity_update
        BEFORE UPDATE OF status ON registrations
        WHEN NEW.status IN {seated} AND OLD.status NOT IN {seated}
        BEGIN
            SELECT RAISE(ABORT, 'capacity_exceeded')
            WHERE (
                SELECT COUNT(*) FROM registrations
                WHERE session_id = NEW.session_id AND status IN {seated}
            ) >= (SELECT capacity FROM sessions WHERE id = NEW.session_id);
        END
        """
    )


def create_audit_immutability_triggers(conn: sqlite3.Connection) -> None:
    """Reject UPDATE and DELETE on ``audit_log`` so history stays append-only."""
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_audit_log_no_update
        BEFORE UPDATE ON audit_log
        BEGIN
            SELECT RAISE(ABORT, 'audit_log_is_append_only');
        END
        """
    )
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_audit_log_no_delete
        BEFORE DELETE ON audit_log
        BEGIN
            SELECT RAISE(ABORT, 'audit_log_is_append_only');
        END
        """
    )


def init_database() -> None:
    """Create all tables, indexes and invariant triggers if they do not exist.

    Safe to call repeatedly; every statement is idempotent.
    """
    conn = get_connection()
    try:
        conn.execute("PRAGMA journal_mode = WAL")
        for statement in TABLE_STATEMENTS:
            conn.execute(statement)
        for statement in INDEX_STATEMENTS:
            conn.execute(statement)
        create_capacity_triggers(conn)
        create_audit_immutability_triggers(conn)
        conn.commit()
    finally:
        conn.close()
    logger.info("Database schema ready")
