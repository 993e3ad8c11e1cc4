"""Focused tests for ``quest_board.db.sessions_repo`` and ``players_repo``."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from quest_board.db import players_repo, sessions_repo
from quest_board.db.connection import connection_scope, get_connection
from quest_board.db.errors import DatabaseReadError, DatabaseWriteError


@pytest.mark.unit
@pytest.mark.db
def test_create_session_round_trips_fields(test_db):
    deadline = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
    with connection_scope(write=True) as conn:
        created = sessions_repo.create_session(
            conn,
            capacity=5,
            level_tier="tier2",
            signup_deadline=deadline,
            title="Dragon's Lair",
            session_date="2026-06-05",
            requires_approval=True,
            session_id="lair",
        )

    assert created.id == "lair"
    assert created.status == "Scheduled"
    assert created.signup_deadline == deadline
    assert created.requires_approval is True
    assert created.label == "Dragon's Lair on 2026-06-05"


@pytest.mark.unit
@pytest.mark.db
def test_unset_approval_flag_reads_as_none(test_db):
    with connection_scope(write=True) as conn:
        created = sessions_repo.create_session(conn, capacity=2)

    assert created.requires_approval is None
    assert created.level_tier == "any"


@pytest.mark.unit
@pytest.mark.db
def test_list_and_status_updates(make_session):
    first = make_session(session_date="2026-06-01")
    second = make_session(session_date="2026-07-01")

    with connection_scope(write=True) as conn:
        assert sessions_repo.set_session_status(conn, first.id, "Completed") is True
        assert sessions_repo.set_session_status(conn, "missing", "Completed") is False

    with connection_scope() as conn:
        scheduled = sessions_repo.list_sessions(conn, status="Scheduled")
        everything = sessions_repo.list_sessions(conn)

    assert [session.id for session in scheduled] == [second.id]
    assert [session.id for session in everything] == [first.id, second.id]


@pytest.mark.unit
@pytest.mark.db
def test_upsert_player_is_case_insensitive(test_db):
    with connection_scope(write=True) as conn:
        first = players_repo.upsert_player(conn, "Ana@Example.com ", "Ana")
        second = players_repo.upsert_player(conn, "ana@example.com", "")
        third = players_repo.upsert_player(conn, "ANA@EXAMPLE.COM", "Ana the Bold")

    assert first.id == second.id == third.id
    assert first.email == "ana@example.com"
    assert second.display_name == "Ana"
    assert third.display_name == "Ana the Bold"


@pytest.mark.unit
@pytest.mark.db
def test_repositories_raise_typed_errors_on_closed_connection(test_db):
    """Repository helpers should surface SQLite failures as typed DB errors."""
    conn = get_connection()
    conn.close()

    with pytest.raises(DatabaseReadError):
        sessions_repo.get_session(conn, "x")
    with pytest.raises(DatabaseReadError):
        players_repo.get_player_by_email(conn, "ana@example.com")
    with pytest.raises(DatabaseWriteError):
        sessions_repo.set_session_status(conn, "x", "Cancelled")
    with pytest.raises(DatabaseWriteError) as exc_info:
        players_repo.upsert_player(conn, "ana@example.com", "Ana")

    assert exc_info.value.context.operation == "players.upsert_player"
