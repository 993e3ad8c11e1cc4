"""Schema invariants enforced by SQLite itself (quest_board/db/schema.py)."""

from __future__ import annotations

import sqlite3

import pytest

from quest_board.db import audit_repo, players_repo
from quest_board.db.connection import connection_scope, get_connection
from quest_board.db.schema import init_database


def _insert_registration(conn, reg_id, session_id, player_id, status="Confirmed"):
    conn.execute(
        """
        INSERT INTO registrations (
            id, session_id, player_id, character_name, character_class,
            character_level, character_race, status, created_at, updated_at
        )
        VALUES (?, ?, ?, 'Brindle', 'Rogue', 3, 'Halfling', ?, '2026-01-01', '2026-01-01')
        """,
        (reg_id, session_id, player_id, status),
    )


def _players(count: int) -> list[str]:
    with connection_scope(write=True) as conn:
        return [
            players_repo.upsert_player(conn, f"p{index}@example.com", f"P{index}").id
            for index in range(count)
        ]


@pytest.mark.unit
@pytest.mark.db
def test_init_database_is_idempotent(test_db):
    """Running init twice must not fail or duplicate triggers."""
    init_database()

    conn = get_connection()
    triggers = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name"
    ).fetchall()
    conn.close()

    assert [row["name"] for row in triggers] == [
        "trg_audit_log_no_delete",
        "trg_audit_log_no_update",
        "trg_registrations_capacity_insert",
        "trg_registrations_capacity_update",
    ]


@pytest.mark.unit
@pytest.mark.db
def test_capacity_trigger_blocks_seated_insert_over_capacity(make_session):
    session = make_session(capacity=1)
    first, second = _players(2)

    conn = get_connection()
    _insert_registration(conn, "r1", session.id, first)
    with pytest.raises(sqlite3.IntegrityError, match="capacity_exceeded"):
        _insert_registration(conn, "r2", session.id, second)
    _insert_registration(conn, "r3", session.id, second, status="Waitlisted")
    conn.commit()
    conn.close()


@pytest.mark.unit
@pytest.mark.db
def test_capacity_trigger_blocks_promotion_over_capacity(make_session):
    session = make_session(capacity=1)
    first, second = _players(2)

    conn = get_connection()
    _insert_registration(conn, "r1", session.id, first)
    _insert_registration(conn, "r2", session.id, second, status="Waitlisted")
    with pytest.raises(sqlite3.IntegrityError, match="capacity_exceeded"):
        conn.execute("UPDATE registrations SET status = 'Confirmed' WHERE id = 'r2'")
    conn.execute("UPDATE registrations SET status = 'Attended' WHERE id = 'r1'")
    conn.commit()
    conn.close()


@pytest.mark.unit
@pytest.mark.db
def test_one_row_per_session_player_pair(make_session):
    session = make_session()
    (player,) = _players(1)

    conn = get_connection()
    _insert_registration(conn, "r1", session.id, player, status="Cancelled")
    with pytest.raises(sqlite3.IntegrityError, match="UNIQUE"):
        _insert_registration(conn, "r2", session.id, player)
    conn.close()


@pytest.mark.unit
@pytest.mark.db
def test_registration_requires_existing_session(test_db):
    """Foreign keys are enforced on every connection."""
    (player,) = _players(1)

    conn = get_connection()
    with pytest.raises(sqlite3.IntegrityError):
        _insert_registration(conn, "r1", "no-such-session", player)
    conn.close()


@pytest.mark.unit
@pytest.mark.db
@pytest.mark.parametrize(
    ("column", "value"),
    [("status", "Maybe"), ("character_level", 21)],
)
def test_check_constraints(make_session, column, value):
    session = make_session()
    (player,) = _players(1)

    conn = get_connection()
    _insert_registration(conn, "r1", session.id, player, status="Waitlisted")
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(f"UPDATE registrations SET {column} = ? WHERE id = 'r1'", (value,))  # nosec B608
    conn.close()


@pytest.mark.unit
@pytest.mark.db
def test_audit_log_is_append_only(test_db):
    with connection_scope(write=True) as conn:
        audit_id = audit_repo.append(conn, "TEST", "details", "tester", "x")

    conn = get_connection()
    with pytest.raises(sqlite3.IntegrityError, match="audit_log_is_append_only"):
        conn.execute("UPDATE audit_log SET details = 'changed' WHERE id = ?", (audit_id,))
    with pytest.raises(sqlite3.IntegrityError, match="audit_log_is_append_only"):
        conn.execute("DELETE FROM audit_log WHERE id = ?", (audit_id,))
    conn.close()


@pytest.mark.unit
@pytest.mark.db
def test_waitlist_query_uses_session_status_index(make_session):
    """Waitlist selection should use ``idx_registrations_session_status``."""
    session = make_session()

    conn = get_connection()
    details = [
        str(row[3])
        for row in conn.execute(
            "EXPLAIN QUERY PLAN SELECT * FROM registrations "
            "WHERE session_id = ? AND status = ? ORDER BY created_at ASC",
            (session.id, "Waitlisted"),
        ).fetchall()
    ]
    conn.close()

    assert any("idx_registrations_session_status" in detail for detail in details)
