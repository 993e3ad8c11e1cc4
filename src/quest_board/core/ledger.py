"""
Registration ledger: the only writer of registration status.

Every write goes through :class:`RegistrationLedger` on a connection that the
caller already holds inside a transaction. For each status change the ledger:

    1. checks the ``(from, to, trigger)`` triple against the transition table,
    2. applies a compare-and-set update (or an insert for a new pair),
    3. appends the transition to the audit trail,
    4. enqueues the player notification in the outbox.

All four happen in the caller's transaction, so a rolled-back transition
leaves no audit row and no notification behind.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable

from quest_board.core.clock import to_timestamp, utc_now
from quest_board.core.errors import (
    DuplicateRegistration,
    InvalidTransition,
    NotFound,
    SessionFull,
)
from quest_board.core.states import RegistrationStatus, Trigger, is_allowed
from quest_board.db import audit_repo, notifications_repo, registrations_repo
from quest_board.db.errors import raise_write_error
from quest_board.db.types import (
    CharacterSnapshot,
    PlayerRecord,
    RegistrationRecord,
    SessionRecord,
)

logger = logging.getLogger(__name__)

# Audit action types, one per trigger.
ACTION_TYPES: dict[Trigger, str] = {
    Trigger.SIGNUP: "REGISTRATION_CREATED",
    Trigger.APPROVE: "REGISTRATION_APPROVED",
    Trigger.REJECT: "REGISTRATION_REJECTED",
    Trigger.PLAYER_CANCEL: "REGISTRATION_CANCELLED",
    Trigger.ADMIN_CANCEL: "REGISTRATION_CANCELLED_BY_ADMIN",
    Trigger.PROMOTE: "WAITLIST_PROMOTED",
    Trigger.MARK_ATTENDED: "ATTENDANCE_MARKED",
    Trigger.MARK_NO_SHOW: "ATTENDANCE_MARKED",
    Trigger.SESSION_CANCELLED: "SESSION_CANCELLED_REGISTRATION",
}
REOPENED_ACTION = "REGISTRATION_REOPENED"

# Notification kind enqueued for each trigger; attendance marking is silent.
NOTIFY_KINDS: dict[Trigger, str] = {
    Trigger.SIGNUP: "SignupReceived",
    Trigger.APPROVE: "Approved",
    Trigger.REJECT: "Rejected",
    Trigger.PROMOTE: "WaitlistPromoted",
    Trigger.PLAYER_CANCEL: "Cancelled",
    Trigger.ADMIN_CANCEL: "Cancelled",
    Trigger.SESSION_CANCELLED: "Cancelled",
}

CancelLinkBuilder = Callable[[RegistrationRecord], str]


def _is_capacity_violation(exc: sqlite3.IntegrityError) -> bool:
    return "capacity_exceeded" in str(exc)


def _is_pair_violation(exc: sqlite3.IntegrityError) -> bool:
    message = str(exc)
    return "UNIQUE" in message and "registrations" in message


class RegistrationLedger:
    """
    Applies legal status transitions and records their history.

    Args:
        cancel_link_builder: Optional callable turning a freshly written
            registration into a one-time cancel URL. When set, every SignupReceived notification
            carries a ``cancel_url`` in its payload.
    """

    def __init__(self, *, cancel_link_builder: CancelLinkBuilder | None = None) -> None:
        self.cancel_link_builder = cancel_link_builder

    # ------------------------------------------------------------------
    # Sign-up
    # ------------------------------------------------------------------

    def assert_can_register(
        self, conn: sqlite3.Connection, session_id: str, player_id: str
    ) -> RegistrationRecord | None:
        """Reject a second active registration for the pair.

        Returns:
            The pair's Cancelled row when one exists (to be reopened), else ``None``.

        Raises:
            DuplicateRegistration: The pair already has an active registration.
        """
        existing = registrations_repo.find_for_pair(conn, session_id, player_id)
        if existing is None:
            return None
        if existing.status is RegistrationStatus.WAITLISTED:
            raise DuplicateRegistration("You are already on the waitlist for this session.")
        if existing.status.is_active:
            raise DuplicateRegistration()
        return existing

    def create(
        self,
        conn: sqlite3.Connection,
        *,
        session: SessionRecord,
        player: PlayerRecord,
        character: CharacterSnapshot,
        status: RegistrationStatus,
        actor: str,
        player_notes: str = "",
    ) -> RegistrationRecord:
        """Create the pair's registration, or reopen its Cancelled row.

        Raises:
            DuplicateRegistration: The pair already has an active registration.
            InvalidTransition: ``status`` is not a legal sign-up target.
            SessionFull: A seated insert would exceed capacity.
        """
        existing = self.assert_can_register(conn, session.id, player.id)
        from_status = existing.status if existing else None
        if not is_allowed(from_status, status, Trigger.SIGNUP):
            raise InvalidTransition(
                from_status.value if from_status else None, status.value, Trigger.SIGNUP.value
            )

        timestamp = to_timestamp(utc_now())
        registration_id = existing.id if existing else uuid.uuid4().hex
        try:
            if existing is None:
                registrations_repo.insert_registration(
                    conn,
                    registration_id=registration_id,
                    session_id=session.id,
                    player_id=player.id,
                    character=character,
                    status=status,
                    timestamp=timestamp,
                    player_notes=player_notes,
                )
            else:
                registrations_repo.reopen_registration(
                    conn,
                    registration_id=registration_id,
                    character=character,
                    status=status,
                    timestamp=timestamp,
                    player_notes=player_notes,
                )
        except sqlite3.IntegrityError as exc:
            if _is_capacity_violation(exc):
                raise SessionFull() from exc
            if _is_pair_violation(exc):
                raise DuplicateRegistration() from exc
            raise_write_error(
                "ledger.create", exc, details=f"session_id={session.id!r}, player_id={player.id!r}"
            )
        except sqlite3.Error as exc:
            raise_write_error("ledger.create", exc, details=f"session_id={session.id!r}")

        record = registrations_repo.get_registration(conn, registration_id)
        assert record is not None

        action = REOPENED_ACTION if existing else ACTION_TYPES[Trigger.SIGNUP]
        audit_repo.append(
            conn,
            action,
            f"{character.name} ({character.character_class}, level {character.level}) "
            f"signed up for {session.label}",
            actor,
            registration_id,
            from_status=from_status.value if from_status else None,
            to_status=status.value,
            timestamp=timestamp,
        )

        payload = self._payload(record, session_id=session.id)
        if self.cancel_link_builder is not None:
            payload["cancel_url"] = self.cancel_link_builder(record)
        notifications_repo.enqueue(
            conn, NOTIFY_KINDS[Trigger.SIGNUP], player.id, registration_id, payload
        )
        logger.info(
            "Registration %s %s -> %s (signup) for session %s",
            registration_id,
            from_status.value if from_status else "(new)",
            status.value,
            session.id,
        )
        return record

    # ------------------------------------------------------------------
    # Transitions on an existing row
    # ------------------------------------------------------------------

    def load(self, conn: sqlite3.Connection, registration_id: str) -> RegistrationRecord:
        record = registrations_repo.get_registration(conn, registration_id)
        if record is None:
            raise NotFound()
        return record

    def transition(
        self,
        conn: sqlite3.Connection,
        registration: RegistrationRecord,
        to_status: RegistrationStatus,
        trigger: Trigger,
        *,
        actor: str,
        details: str = "",
        extra_payload: dict | None = None,
    ) -> RegistrationRecord:
        """Move ``registration`` to ``to_status`` because of ``trigger``.

        Raises:
            InvalidTransition: The triple is not in the table, or the row
                changed status since ``registration`` was read.
            SessionFull: The move would seat more players than capacity allows.
        """
        from_status = registration.status
        if not is_allowed(from_status, to_status, trigger):
            raise InvalidTransition(from_status.value, to_status.value, trigger.value)

        attendance: bool | None = None
        if trigger is Trigger.MARK_ATTENDED:
            attendance = True
        elif trigger is Trigger.MARK_NO_SHOW:
            attendance = False

        timestamp = to_timestamp(utc_now())
        try:
            applied = registrations_repo.update_status(
                conn,
                registration.id,
                expected=from_status,
                status=to_status,
                timestamp=timestamp,
                attendance_confirmed=attendance,
            )
        except sqlite3.IntegrityError as exc:
            if _is_capacity_violation(exc):
                raise SessionFull() from exc
            raise_write_error(
                "ledger.transition", exc, details=f"registration_id={registration.id!r}"
            )
        if not applied:
            current = registrations_repo.get_registration(conn, registration.id)
            current_status = current.status.value if current else from_status.value
            raise InvalidTransition(current_status, to_status.value, trigger.value)

        audit_repo.append(
            conn,
            ACTION_TYPES[trigger],
            details or f"{trigger.value}: {from_status.value} -> {to_status.value}",
            actor,
            registration.id,
            from_status=from_status.value,
            to_status=to_status.value,
            timestamp=timestamp,
        )

        updated = registrations_repo.get_registration(conn, registration.id)
        assert updated is not None

        kind = NOTIFY_KINDS.get(trigger)
        if kind is not None:
            payload = self._payload(updated, session_id=updated.session_id)
            payload["trigger"] = trigger.value
            if extra_payload:
                payload.update(extra_payload)
            notifications_repo.enqueue(conn, kind, updated.player_id, updated.id, payload)

        logger.info(
            "Registration %s %s -> %s (%s) by %s",
            registration.id,
            from_status.value,
            to_status.value,
            trigger.value,
            actor,
        )
        return updated

    @staticmethod
    def _payload(record: RegistrationRecord, *, session_id: str) -> dict:
        return {
            "registration_id": record.id,
            "session_id": session_id,
            "character_name": record.character.name,
            "status": record.status.value,
        }
