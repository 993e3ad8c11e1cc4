"""
Tests for the notification dispatcher (quest_board/notifications/dispatcher.py).

Delivery is best-effort: a failed email marks the outbox row failed and
never changes the registration that produced it.
"""

from __future__ import annotations

import pytest

from quest_board.db import notifications_repo, players_repo
from quest_board.db.connection import connection_scope
from quest_board.db.errors import DatabaseOperationContext, DatabaseReadError
from quest_board.notifications.dispatcher import NotificationDispatcher, NotificationEvent
from quest_board.notifications.templates import NotificationKind


def _outbox(status=None):
    with connection_scope() as conn:
        return notifications_repo.list_entries(conn, status=status)


@pytest.mark.unit
@pytest.mark.db
def test_drain_delivers_signup_received(make_session, signup, service, transport):
    session = make_session()
    result = signup(session.id, "ana@example.com")

    report = service.drain_notifications()

    assert (report.sent, report.failed, report.total) == (1, 0, 1)
    recipient, kind, data = transport.sent[0]
    assert (recipient, kind) == ("ana@example.com", "SignupReceived")
    assert data["registration_id"] == result.registration.id
    assert data["session_title"] == "The Sunken Crypt"
    assert data["subject"] == "Sign-up received: The Sunken Crypt"
    assert data["cancel_url"].startswith("http://questboard.test/cancel?token=")
    assert [row["status"] for row in _outbox()] == ["sent"]


@pytest.mark.unit
@pytest.mark.db
def test_drain_creates_in_app_notice(make_session, signup, service):
    session = make_session()
    signup(session.id, "ana@example.com")

    service.drain_notifications()

    notices = service.notifications_for("ana@example.com")
    assert len(notices) == 1
    assert notices[0]["kind"] == "SignupReceived"
    assert "Confirmed" in notices[0]["message"]


@pytest.mark.unit
@pytest.mark.db
def test_transport_exception_marks_row_failed_only(make_session, signup, service, transport):
    session = make_session()
    result = signup(session.id, "ana@example.com")
    transport.error = RuntimeError("smtp exploded")

    report = service.drain_notifications()

    assert (report.sent, report.failed) == (0, 1)
    failed = _outbox("failed")
    assert failed[0]["last_error"] == "smtp exploded"
    assert service.my_registrations("ana@example.com").upcoming[0]["status"] == "Confirmed"
    assert result.registration.status.value == "Confirmed"


@pytest.mark.unit
@pytest.mark.db
def test_deferred_result_counts_as_failure(make_session, signup, service, transport):
    session = make_session()
    signup(session.id, "ana@example.com")
    transport.result = "deferred"

    report = service.drain_notifications()

    assert report.failed == 1
    assert "deferred" in _outbox("failed")[0]["last_error"]


@pytest.mark.unit
@pytest.mark.db
def test_rows_are_delivered_once_across_drains(make_session, signup, service, transport):
    session = make_session()
    signup(session.id, "ana@example.com")
    signup(session.id, "bo@example.com")

    first = service.drain_notifications()
    second = service.drain_notifications()

    assert first.sent == 2
    assert second.total == 0
    assert len(transport.sent) == 2


@pytest.mark.unit
@pytest.mark.db
def test_failed_rows_are_not_retried(make_session, signup, service, transport):
    session = make_session()
    signup(session.id, "ana@example.com")
    transport.error = RuntimeError("down")
    service.drain_notifications()

    transport.error = None
    report = service.drain_notifications()

    assert report.total == 0
    assert transport.sent == []


@pytest.mark.unit
@pytest.mark.db
def test_lookup_error_marks_row_failed_and_drain_continues(
    make_session, signup, service, transport, monkeypatch
):
    session = make_session()
    broken = signup(session.id, "ana@example.com")
    signup(session.id, "bo@example.com")
    real_get_player = players_repo.get_player

    def flaky_get_player(conn, player_id):
        if player_id == broken.registration.player_id:
            context = DatabaseOperationContext(operation="players.get_player")
            raise DatabaseReadError(context=context)
        return real_get_player(conn, player_id)

    monkeypatch.setattr(players_repo, "get_player", flaky_get_player)

    report = service.drain_notifications()

    assert (report.sent, report.failed) == (1, 1)
    assert sorted(row["status"] for row in _outbox()) == ["failed", "sent"]
    assert "lookup failed" in _outbox("failed")[0]["last_error"]
    assert [recipient for recipient, _, _ in transport.sent] == ["bo@example.com"]

    ok = service.dispatcher.notify(
        NotificationEvent(NotificationKind.REMINDER, player_id=broken.registration.player_id)
    )
    assert ok is False


@pytest.mark.unit
@pytest.mark.db
def test_notify_unknown_player_returns_false(test_db, transport):
    dispatcher = NotificationDispatcher(transport)

    ok = dispatcher.notify(NotificationEvent(NotificationKind.APPROVED, player_id="ghost"))

    assert ok is False
    assert transport.sent == []


@pytest.mark.unit
@pytest.mark.db
def test_notify_direct_event(test_db, transport):
    with connection_scope(write=True) as conn:
        player = players_repo.upsert_player(conn, "ana@example.com", "Ana")
    dispatcher = NotificationDispatcher(transport)

    ok = dispatcher.notify(
        NotificationEvent(
            NotificationKind.REMINDER,
            player_id=player.id,
            payload={"character_name": "Brindle"},
        )
    )

    assert ok is True
    recipient, kind, data = transport.sent[0]
    assert (recipient, kind) == ("ana@example.com", "Reminder")
    assert data["player_name"] == "Ana"
    assert data["subject"] == "Reminder: your session is coming up"
