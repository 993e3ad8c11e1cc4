"""
Registration status model and the ledger transition table.

A registration's status is a closed enum. The only way to change it is a
``(from_status, to_status, trigger)`` triple that appears in
:data:`TRANSITIONS`; every other combination is rejected before any write.

Lifecycle summary:

    (new) ──SIGNUP──▶ Pending ──APPROVE──▶ Confirmed ──MARK_ATTENDED──▶ Attended
      │                  │                    │  ▲      ──MARK_NO_SHOW──▶ No-Show
      │                  └─REJECT─┐           │  │
      └──SIGNUP──▶ Waitlisted ──PROMOTE───────┘  │
                         │        ▼              │
                         └────▶ Cancelled ◀──────┘ (PLAYER_CANCEL / ADMIN_CANCEL)
                                   │
                                   └──SIGNUP──▶ Pending | Confirmed | Waitlisted

Cancelled may only be left through a fresh sign-up by the same player for the
same session; Attended and No-Show never change again.
"""

from __future__ import annotations

from enum import Enum


class RegistrationStatus(str, Enum):
    """Registration states. Values are the strings stored in the database."""

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    WAITLISTED = "Waitlisted"
    CANCELLED = "Cancelled"
    ATTENDED = "Attended"
    NO_SHOW = "No-Show"

    @property
    def occupies_seat(self) -> bool:
        """Confirmed and Attended registrations count against capacity."""
        return self in SEATED_STATUSES

    @property
    def is_active(self) -> bool:
        """Everything except Cancelled blocks a second sign-up for the pair."""
        return self is not RegistrationStatus.CANCELLED


class Trigger(str, Enum):
    """What caused a transition. Recorded in the audit trail."""

    SIGNUP = "signup"
    APPROVE = "approve"
    REJECT = "reject"
    PLAYER_CANCEL = "player_cancel"
    ADMIN_CANCEL = "admin_cancel"
    PROMOTE = "promote"
    MARK_ATTENDED = "mark_attended"
    MARK_NO_SHOW = "mark_no_show"
    SESSION_CANCELLED = "session_cancelled"


SEATED_STATUSES = frozenset({RegistrationStatus.CONFIRMED, RegistrationStatus.ATTENDED})

S = RegistrationStatus
T = Trigger

# (from_status or None for a brand-new row, to_status) -> allowed triggers
TRANSITIONS: dict[tuple[RegistrationStatus | None, RegistrationStatus], frozenset[Trigger]] = {
    (None, S.PENDING): frozenset({T.SIGNUP}),
    (None, S.CONFIRMED): frozenset({T.SIGNUP}),
    (None, S.WAITLISTED): frozenset({T.SIGNUP}),
    (S.PENDING, S.CONFIRMED): frozenset({T.APPROVE}),
    (S.PENDING, S.CANCELLED): frozenset({T.REJECT, T.SESSION_CANCELLED}),
    (S.CONFIRMED, S.CANCELLED): frozenset({T.PLAYER_CANCEL, T.ADMIN_CANCEL, T.SESSION_CANCELLED}),
    (S.CONFIRMED, S.ATTENDED): frozenset({T.MARK_ATTENDED}),
    (S.CONFIRMED, S.NO_SHOW): frozenset({T.MARK_NO_SHOW}),
    (S.WAITLISTED, S.CONFIRMED): frozenset({T.PROMOTE}),
    (S.WAITLISTED, S.CANCELLED): frozenset({T.PLAYER_CANCEL, T.ADMIN_CANCEL, T.SESSION_CANCELLED}),
    (S.CANCELLED, S.PENDING): frozenset({T.SIGNUP}),
    (S.CANCELLED, S.CONFIRMED): frozenset({T.SIGNUP}),
    (S.CANCELLED, S.WAITLISTED): frozenset({T.SIGNUP}),
}

del S, T


def is_allowed(
    from_status: RegistrationStatus | None,
    to_status: RegistrationStatus,
    trigger: Trigger,
) -> bool:
    """Return True when the triple is listed in :data:`TRANSITIONS`."""
    return trigger in TRANSITIONS.get((from_status, to_status), frozenset())
