"""UTC time helpers shared by the ledger, validator and repositories."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current aware UTC time."""
    return datetime.now(UTC)


def to_timestamp(moment: datetime) -> str:
    """Serialize ``moment`` as a fixed-width UTC ISO-8601 string.

    Fixed width keeps lexical order equal to chronological order, which the
    waitlist relies on when it sorts by ``created_at`` in SQL.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string; naive values are taken as UTC.

    Returns ``None`` for empty or unparseable input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
