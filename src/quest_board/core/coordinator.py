"""
Capacity and waitlist coordinator.

Every operation that can change how many seats a session has taken runs as
one "read seated count, decide, write" unit inside
:meth:`CapacityCoordinator.session_transaction`, which holds:

- an in-process lock keyed by session id, so requests handled by this
  process for the same session queue up in arrival order, and
- a SQLite ``BEGIN IMMEDIATE`` transaction, so writers in other processes
  are serialized by the database lock as well.

Operations on different sessions only contend on the database lock, which
is held for the few statements of each unit.

Approval wraps capacity: a sign-up that finds a free seat enters Pending when
the session requires approval and Confirmed otherwise; approval later seats it
only if a seat is still free. Pending registrations do not hold a seat.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass

from quest_board.core.errors import NotFound, SessionFull, SessionNotOpen
from quest_board.core.ledger import RegistrationLedger
from quest_board.core.states import RegistrationStatus, Trigger
from quest_board.db import audit_repo, registrations_repo, sessions_repo
from quest_board.db.connection import connection_scope, transaction_scope
from quest_board.db.types import (
    CharacterSnapshot,
    PlayerRecord,
    RegistrationRecord,
    SessionRecord,
)

logger = logging.getLogger(__name__)

TransactionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]

_RELEASABLE = (
    RegistrationStatus.PENDING,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.WAITLISTED,
)


@dataclass(frozen=True, slots=True)
class CancelOutcome:
    """Result of a cancellation: the cancelled row and whoever took the seat."""

    cancelled: RegistrationRecord
    promoted: RegistrationRecord | None = None


class CapacityCoordinator:
    """
    Serializes capacity decisions per session and drives the ledger.

    Args:
        ledger: The registration ledger that performs each transition.
        waitlist_enabled: When False, a sign-up for a full session is rejected
            with ``SessionFull`` instead of being waitlisted.
        require_approval: Default approval gate for sessions whose own
            ``requires_approval`` is unset.
        transaction_factory: Produces the database transaction context;
            defaults to :func:`transaction_scope`.
    """

    def __init__(
        self,
        ledger: RegistrationLedger,
        *,
        waitlist_enabled: bool = True,
        require_approval: bool = False,
        transaction_factory: TransactionFactory = transaction_scope,
    ) -> None:
        self.ledger = ledger
        self.waitlist_enabled = waitlist_enabled
        self.require_approval = require_approval
        self._transaction_factory = transaction_factory
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, ledger: RegistrationLedger) -> CapacityCoordinator:
        from quest_board.config import config

        return cls(
            ledger,
            waitlist_enabled=config.signup.waitlist_enabled,
            require_approval=config.signup.require_approval,
        )

    # ------------------------------------------------------------------
    # Critical section
    # ------------------------------------------------------------------

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def session_transaction(self, session_id: str) -> Iterator[sqlite3.Connection]:
        """Hold the session's lock and a write transaction for the whole block."""
        with self._lock_for(session_id):
            with self._transaction_factory() as conn:
                yield conn

    def _session_id_of(self, registration_id: str) -> str:
        with connection_scope() as conn:
            record = registrations_repo.get_registration(conn, registration_id)
        if record is None:
            raise NotFound()
        return record.session_id

    @staticmethod
    def _load_session(conn: sqlite3.Connection, session_id: str) -> SessionRecord:
        session = sessions_repo.get_session(conn, session_id)
        if session is None:
            raise NotFound("Session not found.")
        return session

    def requires_approval(self, session: SessionRecord) -> bool:
        if session.requires_approval is None:
            return self.require_approval
        return session.requires_approval

    def decide_entry_status(
        self, conn: sqlite3.Connection, session: SessionRecord
    ) -> RegistrationStatus:
        """Pick the entry status for a new sign-up from the live seated count.

        Raises:
            SessionFull: The session is full and the waitlist is disabled.
        """
        seated = registrations_repo.count_seated(conn, session.id)
        if seated < session.capacity:
            if self.requires_approval(session):
                return RegistrationStatus.PENDING
            return RegistrationStatus.CONFIRMED
        if self.waitlist_enabled:
            return RegistrationStatus.WAITLISTED
        raise SessionFull()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def admit(
        self,
        session: SessionRecord,
        player: PlayerRecord,
        character: CharacterSnapshot,
        *,
        actor: str | None = None,
        player_notes: str = "",
    ) -> RegistrationRecord:
        """Admit ``player`` to ``session`` as Pending, Confirmed or Waitlisted.

        The session row is re-read inside the transaction so a concurrent
        cancellation or capacity change is honoured.

        Raises:
            SessionNotOpen, DuplicateRegistration, SessionFull
        """
        with self.session_transaction(session.id) as conn:
            current = self._load_session(conn, session.id)
            if current.status != "Scheduled":
                raise SessionNotOpen()
            self.ledger.assert_can_register(conn, current.id, player.id)
            status = self.decide_entry_status(conn, current)
            return self.ledger.create(
                conn,
                session=current,
                player=player,
                character=character,
                status=status,
                actor=actor or player.email,
                player_notes=player_notes,
            )

    def approve(self, registration_id: str, *, actor: str) -> RegistrationRecord:
        """Seat a Pending registration if a seat is free.

        Raises:
            SessionFull: No seat is free; the registration stays Pending.
            InvalidTransition: The registration is not Pending.
        """
        session_id = self._session_id_of(registration_id)
        with self.session_transaction(session_id) as conn:
            record = self.ledger.load(conn, registration_id)
            session = self._load_session(conn, session_id)
            if record.status is RegistrationStatus.PENDING:
                seated = registrations_repo.count_seated(conn, session_id)
                if seated >= session.capacity:
                    logger.info(
                        "Approval of %s deferred: session %s is full (%d/%d)",
                        registration_id,
                        session_id,
                        seated,
                        session.capacity,
                    )
                    raise SessionFull(
                        "No seats are free in this session; the registration stays pending."
                    )
            return self.ledger.transition(
                conn,
                record,
                RegistrationStatus.CONFIRMED,
                Trigger.APPROVE,
                actor=actor,
                details=f"Approved for {session.label}",
            )

    def reject(
        self, registration_id: str, *, actor: str, reason: str | None = None
    ) -> RegistrationRecord:
        """Reject a Pending registration, recording ``reason`` in the audit trail."""
        session_id = self._session_id_of(registration_id)
        with self.session_transaction(session_id) as conn:
            record = self.ledger.load(conn, registration_id)
            details = f"Rejected: {reason}" if reason else "Rejected"
            return self.ledger.transition(
                conn,
                record,
                RegistrationStatus.CANCELLED,
                Trigger.REJECT,
                actor=actor,
                details=details,
                extra_payload={"reason": reason or ""},
            )

    def cancel(self, registration_id: str, *, actor: str, trigger: Trigger) -> CancelOutcome:
        """Cancel a registration and, if it held a seat, promote the next in line.

        ``trigger`` is ``PLAYER_CANCEL`` or ``ADMIN_CANCEL``.
        """
        session_id = self._session_id_of(registration_id)
        with self.session_transaction(session_id) as conn:
            record = self.ledger.load(conn, registration_id)
            cancelled = self.ledger.transition(
                conn, record, RegistrationStatus.CANCELLED, trigger, actor=actor
            )
            promoted = None
            if record.status.occupies_seat:
                session = self._load_session(conn, session_id)
                if session.status == "Scheduled":
                    promoted = self.promote_next(conn, session, actor=actor)
            return CancelOutcome(cancelled=cancelled, promoted=promoted)

    def promote_next(
        self, conn: sqlite3.Connection, session: SessionRecord, *, actor: str = "system"
    ) -> RegistrationRecord | None:
        """Promote the oldest Waitlisted registration into a free seat.

        Must run inside :meth:`session_transaction` for ``session``.

        Returns:
            The promoted registration, or ``None`` when nobody is waiting or
            no seat is free.
        """
        candidate = registrations_repo.oldest_waitlisted(conn, session.id)
        if candidate is None:
            return None
        if registrations_repo.count_seated(conn, session.id) >= session.capacity:
            return None
        promoted = self.ledger.transition(
            conn,
            candidate,
            RegistrationStatus.CONFIRMED,
            Trigger.PROMOTE,
            actor=actor,
            details=f"Promoted from the waitlist for {session.label}",
        )
        logger.info("Promoted %s from the waitlist of session %s", candidate.id, session.id)
        return promoted

    def mark_attendance(
        self, registration_id: str, *, attended: bool, actor: str
    ) -> RegistrationRecord:
        """Record attendance for a Confirmed registration (Attended or No-Show).

        Raises:
            SessionNotOpen: The session has not been completed yet.
        """
        session_id = self._session_id_of(registration_id)
        with self.session_transaction(session_id) as conn:
            session = self._load_session(conn, session_id)
            if session.status != "Completed":
                raise SessionNotOpen("Attendance is recorded once the session is completed.")
            record = self.ledger.load(conn, registration_id)
            if attended:
                return self.ledger.transition(
                    conn, record, RegistrationStatus.ATTENDED, Trigger.MARK_ATTENDED, actor=actor
                )
            return self.ledger.transition(
                conn, record, RegistrationStatus.NO_SHOW, Trigger.MARK_NO_SHOW, actor=actor
            )

    def release_session(
        self, session_id: str, *, actor: str, reason: str | None = None
    ) -> list[RegistrationRecord]:
        """Cancel a whole session and every open registration on it.

        No waitlist promotion happens: every Pending, Confirmed and
        Waitlisted registration moves straight to Cancelled.

        Raises:
            SessionNotOpen: The session is not Scheduled.
        """
        with self.session_transaction(session_id) as conn:
            session = self._load_session(conn, session_id)
            if session.status != "Scheduled":
                raise SessionNotOpen("Only scheduled sessions can be cancelled.")
            sessions_repo.set_session_status(conn, session_id, "Cancelled")
            audit_repo.append(
                conn,
                "SESSION_CANCELLED",
                f"{session.label} cancelled" + (f": {reason}" if reason else ""),
                actor,
                session_id,
                from_status=session.status,
                to_status="Cancelled",
            )
            released = [
                self.ledger.transition(
                    conn,
                    record,
                    RegistrationStatus.CANCELLED,
                    Trigger.SESSION_CANCELLED,
                    actor=actor,
                    details=f"Session {session.label} was cancelled",
                    extra_payload={"reason": reason or ""},
                )
                for record in registrations_repo.list_for_session(conn, session_id, _RELEASABLE)
            ]
        logger.info("Session %s cancelled; %d registrations released", session_id, len(released))
        return released

    def complete_session(self, session_id: str, *, actor: str) -> SessionRecord:
        """Mark a Scheduled session Completed so attendance can be recorded."""
        with self.session_transaction(session_id) as conn:
            session = self._load_session(conn, session_id)
            if session.status != "Scheduled":
                raise SessionNotOpen("Only scheduled sessions can be completed.")
            sessions_repo.set_session_status(conn, session_id, "Completed")
            audit_repo.append(
                conn,
                "SESSION_COMPLETED",
                f"{session.label} completed",
                actor,
                session_id,
                from_status=session.status,
                to_status="Completed",
            )
            completed = self._load_session(conn, session_id)
        logger.info("Session %s completed", session_id)
        return completed
