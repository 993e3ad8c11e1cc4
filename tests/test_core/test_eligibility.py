"""Unit tests for the eligibility validator (quest_board/core/eligibility.py)."""

from datetime import UTC, datetime, timedelta

import pytest

from quest_board.core.eligibility import LevelTier, SignupRequest, check, validate
from quest_board.core.errors import SessionNotOpen, TierMismatch, ValidationFailed
from quest_board.db.types import SessionRecord

NOW = datetime(2026, 5, 1, 18, 0, tzinfo=UTC)


def make_request(**overrides) -> SignupRequest:
    fields = {
        "session_id": "s1",
        "email": "ana@example.com",
        "name": "Ana",
        "character_name": "Brindle",
        "character_class": ["Rogue"],
        "character_level": 3,
        "character_race": "Halfling",
    }
    fields.update(overrides)
    return SignupRequest(**fields)


def make_session(**overrides) -> SessionRecord:
    fields = {"id": "s1", "capacity": 4}
    fields.update(overrides)
    return SessionRecord(**fields)


@pytest.mark.unit
def test_valid_request_passes():
    assert check(make_session(), make_request(), NOW) is None
    validate(make_session(), make_request(), NOW)


@pytest.mark.unit
@pytest.mark.parametrize("status", ["Completed", "Cancelled"])
def test_session_must_be_scheduled(status):
    with pytest.raises(SessionNotOpen):
        validate(make_session(status=status), make_request(), NOW)


@pytest.mark.unit
def test_deadline_passed_is_rejected_regardless_of_capacity():
    session = make_session(capacity=50, signup_deadline=NOW - timedelta(days=1))

    with pytest.raises(SessionNotOpen) as exc_info:
        validate(session, make_request(), NOW)

    assert "deadline" in exc_info.value.message


@pytest.mark.unit
def test_deadline_is_inclusive():
    session = make_session(signup_deadline=NOW)

    assert check(session, make_request(), NOW) is None


@pytest.mark.unit
def test_tier1_rejects_level_ten():
    with pytest.raises(TierMismatch):
        validate(make_session(level_tier="tier1"), make_request(character_level=10), NOW)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("tier", "level", "ok"),
    [
        ("any", 1, True),
        ("any", 20, True),
        ("tier1", 4, True),
        ("tier1", 5, False),
        ("tier2", 5, True),
        ("tier2", 10, True),
        ("tier2", 11, False),
        ("tier3", 11, True),
        ("tier3", 16, True),
        ("tier3", 17, False),
        ("tier4", 17, True),
        ("tier4", 16, False),
    ],
)
def test_tier_boundaries(tier, level, ok):
    failure = check(make_session(level_tier=tier), make_request(character_level=level), NOW)

    assert (failure is None) is ok


@pytest.mark.unit
def test_status_checked_before_tier():
    session = make_session(status="Cancelled", level_tier="tier1")

    failure = check(session, make_request(character_level=15), NOW)

    assert isinstance(failure, SessionNotOpen)


@pytest.mark.unit
def test_tier_checked_before_required_fields():
    failure = check(
        make_session(level_tier="tier1"),
        make_request(character_level=12, character_race=""),
        NOW,
    )

    assert isinstance(failure, TierMismatch)


@pytest.mark.unit
def test_missing_fields_are_collected():
    request = make_request(
        name=" ", character_name=None, character_class=[], character_race=None
    )

    with pytest.raises(ValidationFailed) as exc_info:
        validate(make_session(), request, NOW)

    assert set(exc_info.value.errors) == {
        "name",
        "character_name",
        "character_class",
        "character_race",
    }
    assert exc_info.value.errors["character_class"] == "Select at least one class."


@pytest.mark.unit
@pytest.mark.parametrize("level", [0, 21, "abc", None, True])
def test_bad_level_is_a_field_error(level):
    failure = check(make_session(), make_request(character_level=level), NOW)

    assert isinstance(failure, ValidationFailed)
    assert failure.errors["character_level"] == "Level must be 1-20."


@pytest.mark.unit
def test_level_string_is_parsed():
    request = make_request(character_level=" 7 ")

    assert request.level() == 7
    assert check(make_session(level_tier="tier2"), request, NOW) is None


@pytest.mark.unit
def test_class_tags_accept_comma_string():
    request = make_request(character_class="Fighter, Wizard,,")

    assert request.class_tags() == ["Fighter", "Wizard"]
    assert request.snapshot().character_class == "Fighter, Wizard"


@pytest.mark.unit
def test_unknown_tier_key_means_any():
    assert LevelTier.from_key("mythic") is LevelTier.ANY
    assert LevelTier.from_key(None) is LevelTier.ANY
    assert LevelTier.from_key("TIER3") is LevelTier.TIER3
