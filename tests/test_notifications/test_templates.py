"""Tests for notification template rendering."""

import pytest

from quest_board.notifications.templates import TEMPLATES, NotificationKind, render


@pytest.mark.unit
def test_every_kind_has_a_template():
    assert set(TEMPLATES) == set(NotificationKind)


@pytest.mark.unit
def test_signup_received_includes_cancel_link():
    rendered = render(
        NotificationKind.SIGNUP_RECEIVED,
        {
            "player_name": "Ana",
            "session_title": "The Sunken Crypt",
            "session_date": "2026-06-05",
            "character_name": "Brindle",
            "status": "Waitlisted",
            "cancel_url": "http://questboard.test/cancel?token=abc",
        },
    )

    assert rendered.subject == "Sign-up received: The Sunken Crypt"
    assert "Current status: Waitlisted." in rendered.body
    assert "http://questboard.test/cancel?token=abc" in rendered.body
    assert rendered.notice == "Brindle is Waitlisted for The Sunken Crypt."


@pytest.mark.unit
def test_missing_values_fall_back_to_defaults():
    rendered = render("WaitlistPromoted", {"character_name": None, "session_title": ""})

    assert rendered.kind is NotificationKind.WAITLIST_PROMOTED
    assert rendered.subject == "A seat opened up: your session"
    assert "Your character has been moved off the waitlist" in rendered.body


@pytest.mark.unit
def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        render("Telegram", {})
