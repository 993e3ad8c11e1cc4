"""
Registration service: the request-level flows of the sign-up engine.

This module is the seam between the HTTP/CLI surfaces and the engine
components. A sign-up passes through, in order:

    1. the admission gatekeeper (one-time form token, then rate limit),
    2. the eligibility validator (status, deadline, tier, required fields),
    3. the optional email-domain restriction,
    4. the capacity coordinator, which writes the ledger entry and its
       outbox notification in one transaction.

Notifications are not delivered inline. Callers run
:meth:`RegistrationService.drain_notifications` after the request (the HTTP
surface schedules it as a background task), so a slow or failing email
transport never delays or fails the sign-up itself.

Every business rejection is raised as a :class:`RegistrationError` subclass;
infrastructure failures surface as :class:`DatabaseError`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from quest_board.core import eligibility
from quest_board.core.cache import Cache, InMemoryCache
from quest_board.core.clock import Clock, utc_now
from quest_board.core.coordinator import CancelOutcome, CapacityCoordinator
from quest_board.core.eligibility import SignupRequest
from quest_board.core.errors import (
    InvalidToken,
    NotFound,
    NotPermitted,
    RegistrationError,
)
from quest_board.core.gatekeeper import AdmissionGatekeeper
from quest_board.core.ledger import RegistrationLedger
from quest_board.core.states import RegistrationStatus, Trigger
from quest_board.db import (
    audit_repo,
    notifications_repo,
    players_repo,
    registrations_repo,
    sessions_repo,
)
from quest_board.db.connection import connection_scope, transaction_scope
from quest_board.db.types import PlayerRecord, RegistrationRecord
from quest_board.notifications.dispatcher import DrainReport, NotificationDispatcher
from quest_board.notifications.templates import NotificationKind
from quest_board.notifications.transport import EmailTransport, build_transport

logger = logging.getLogger(__name__)

SIGNUP_MESSAGES = {
    RegistrationStatus.CONFIRMED: (
        "You're in! Check your email for a confirmation with session details."
    ),
    RegistrationStatus.PENDING: (
        "Thanks for signing up! Your spot is pending approval from the DM. "
        "You'll be notified once it's reviewed."
    ),
    RegistrationStatus.WAITLISTED: (
        "This session is full, but you've been added to the waitlist! "
        "You'll be notified if a spot opens."
    ),
}


@dataclass(frozen=True, slots=True)
class SignupResult:
    registration: RegistrationRecord
    message: str

    @property
    def status(self) -> RegistrationStatus:
        return self.registration.status

    @property
    def waitlisted(self) -> bool:
        return self.registration.status is RegistrationStatus.WAITLISTED


@dataclass
class MyRegistrations:
    upcoming: list[dict] = field(default_factory=list)
    past: list[dict] = field(default_factory=list)


class RegistrationService:
    """
    Orchestrates sign-up, cancellation, approval and notification flows.

    Args:
        gatekeeper: Token and rate-limit checks for sign-ups.
        coordinator: Capacity coordinator (owns the ledger).
        dispatcher: Notification dispatcher used to drain the outbox.
        player_cancel_enabled: Whether players may cancel their own
            registrations.
        allowed_email_domains: When non-empty, only these email domains may
            sign up.
        base_url: Public URL prefix for emailed cancel links.
        clock: Source of "now" for deadline checks.
    """

    def __init__(
        self,
        gatekeeper: AdmissionGatekeeper,
        coordinator: CapacityCoordinator,
        dispatcher: NotificationDispatcher,
        *,
        player_cancel_enabled: bool = True,
        allowed_email_domains: Iterable[str] = (),
        base_url: str = "",
        clock: Clock = utc_now,
    ) -> None:
        self.gatekeeper = gatekeeper
        self.coordinator = coordinator
        self.dispatcher = dispatcher
        self.player_cancel_enabled = player_cancel_enabled
        self.allowed_email_domains = {d.strip().lower() for d in allowed_email_domains if d.strip()}
        self.base_url = base_url.rstrip("/")
        self.clock = clock
        if coordinator.ledger.cancel_link_builder is None:
            coordinator.ledger.cancel_link_builder = self.build_cancel_link

    @classmethod
    def from_config(
        cls,
        *,
        cache: Cache | None = None,
        transport: EmailTransport | None = None,
        clock: Clock = utc_now,
    ) -> RegistrationService:
        """Wire the full engine from ``quest_board.config``."""
        from quest_board.config import config

        gatekeeper = AdmissionGatekeeper.from_config(cache or InMemoryCache())
        coordinator = CapacityCoordinator.from_config(RegistrationLedger())
        dispatcher = NotificationDispatcher(transport or build_transport())
        return cls(
            gatekeeper,
            coordinator,
            dispatcher,
            player_cancel_enabled=config.signup.player_cancel_enabled,
            allowed_email_domains=config.signup.allowed_email_domains,
            base_url=config.signup.base_url,
            clock=clock,
        )

    # ========================================================================
    # TOKENS
    # ========================================================================

    def issue_form_token(self, owner: str = "") -> str:
        return self.gatekeeper.tokens.issue_form_token(owner)

    def build_cancel_link(self, record: RegistrationRecord) -> str:
        token = self.gatekeeper.tokens.issue_cancel_token(record.id, issued_for=record.created_at)
        return f"{self.base_url}/cancel?token={token}"

    # ========================================================================
    # SIGN-UP
    # ========================================================================

    def check_eligibility(self, request: SignupRequest) -> RegistrationError | None:
        """Run the validator without consuming a token or writing anything."""
        with connection_scope() as conn:
            session = sessions_repo.get_session(conn, request.session_id)
        if session is None:
            return NotFound("Session not found.")
        return eligibility.check(session, request, self.clock())

    def signup(self, request: SignupRequest) -> SignupResult:
        """Register a player for a session.

        Raises:
            InvalidToken, RateLimited: Admission failed.
            NotFound: Unknown session.
            SessionNotOpen, TierMismatch, ValidationFailed: Not eligible.
            NotPermitted: Email domain not allowed.
            DuplicateRegistration, SessionFull: Rejected by the ledger.
        """
        self.gatekeeper.admit(request.token, request.email)

        with connection_scope() as conn:
            session = sessions_repo.get_session(conn, request.session_id)
        if session is None:
            raise NotFound("Session not found.")

        eligibility.validate(session, request, self.clock())
        self._check_email_domain(request.email)

        with connection_scope(write=True) as conn:
            player = players_repo.upsert_player(conn, request.email, request.name)

        record = self.coordinator.admit(
            session,
            player,
            request.snapshot(),
            actor=player.email,
            player_notes=(request.player_notes or "").strip(),
        )
        logger.info(
            "Sign-up %s: %s is %s for session %s",
            record.id,
            player.email,
            record.status.value,
            session.id,
        )
        return SignupResult(registration=record, message=SIGNUP_MESSAGES[record.status])

    def _check_email_domain(self, email: str) -> None:
        if not self.allowed_email_domains:
            return
        domain = email.rsplit("@", 1)[-1].strip().lower() if "@" in email else ""
        if domain not in self.allowed_email_domains:
            raise NotPermitted("Sign-ups are restricted to specific email domains.")

    # ========================================================================
    # PLAYER CANCELLATION
    # ========================================================================

    def cancel_my_registration(self, registration_id: str, *, email: str) -> CancelOutcome:
        """Cancel the caller's own Confirmed or Waitlisted registration."""
        if not self.player_cancel_enabled:
            raise NotPermitted("Self-cancellation is not enabled.")
        with connection_scope() as conn:
            record = registrations_repo.get_registration(conn, registration_id)
            player = players_repo.get_player_by_email(conn, email)
        if record is None:
            raise NotFound()
        if player is None or player.id != record.player_id:
            raise NotPermitted("This registration does not belong to you.")
        return self.coordinator.cancel(
            registration_id, actor=player.email, trigger=Trigger.PLAYER_CANCEL
        )

    def cancel_by_token(self, token: str | None) -> CancelOutcome:
        """Cancel through an emailed one-time link."""
        grant = self.gatekeeper.tokens.consume_cancel_token(token)
        if grant is None:
            raise InvalidToken("This cancel link is invalid or has expired.")
        registration_id = grant.registration_id
        if not self.player_cancel_enabled:
            raise NotPermitted("Self-cancellation is not enabled.")
        with connection_scope() as conn:
            record = registrations_repo.get_registration(conn, registration_id)
            player = players_repo.get_player(conn, record.player_id) if record else None
        if record is None:
            raise NotFound()
        # a re-registration reuses the row; links mailed for an earlier sign-up are dead
        if grant.issued_for and grant.issued_for != record.created_at:
            raise InvalidToken("This cancel link is from an earlier sign-up and no longer applies.")
        actor = player.email if player else "cancel-link"
        return self.coordinator.cancel(registration_id, actor=actor, trigger=Trigger.PLAYER_CANCEL)

    # ========================================================================
    # ADMIN ACTIONS
    # ========================================================================

    def approve(self, registration_id: str, *, actor: str) -> RegistrationRecord:
        return self.coordinator.approve(registration_id, actor=actor)

    def reject(
        self, registration_id: str, *, actor: str, reason: str | None = None
    ) -> RegistrationRecord:
        return self.coordinator.reject(registration_id, actor=actor, reason=reason)

    def admin_cancel(self, registration_id: str, *, actor: str) -> CancelOutcome:
        return self.coordinator.cancel(registration_id, actor=actor, trigger=Trigger.ADMIN_CANCEL)

    def mark_attendance(
        self, registration_id: str, *, attended: bool, actor: str
    ) -> RegistrationRecord:
        return self.coordinator.mark_attendance(registration_id, attended=attended, actor=actor)

    def cancel_session(
        self, session_id: str, *, actor: str, reason: str | None = None
    ) -> list[RegistrationRecord]:
        return self.coordinator.release_session(session_id, actor=actor, reason=reason)

    def complete_session(self, session_id: str, *, actor: str):
        return self.coordinator.complete_session(session_id, actor=actor)

    def send_reminders(self, session_id: str, *, actor: str) -> int:
        """Queue a Reminder for every Confirmed player of a Scheduled session.

        Returns:
            Number of reminders queued.
        """
        with transaction_scope() as conn:
            session = sessions_repo.get_session(conn, session_id)
            if session is None:
                raise NotFound("Session not found.")
            if session.status != "Scheduled":
                raise NotPermitted("Reminders can only be sent for scheduled sessions.")
            confirmed = registrations_repo.list_for_session(
                conn, session_id, [RegistrationStatus.CONFIRMED]
            )
            for record in confirmed:
                notifications_repo.enqueue(
                    conn,
                    NotificationKind.REMINDER.value,
                    record.player_id,
                    record.id,
                    {
                        "registration_id": record.id,
                        "session_id": session_id,
                        "character_name": record.character.name,
                        "status": record.status.value,
                    },
                )
            audit_repo.append(
                conn,
                "REMINDERS_SENT",
                f"{len(confirmed)} reminders queued for {session.label}",
                actor,
                session_id,
            )
        logger.info("Queued %d reminders for session %s", len(confirmed), session_id)
        return len(confirmed)

    # ========================================================================
    # READ MODELS
    # ========================================================================

    def get_player(self, email: str) -> PlayerRecord | None:
        with connection_scope() as conn:
            return players_repo.get_player_by_email(conn, email)

    def my_registrations(self, email: str) -> MyRegistrations:
        """Split the caller's non-cancelled registrations into upcoming and past."""
        result = MyRegistrations()
        with connection_scope() as conn:
            player = players_repo.get_player_by_email(conn, email)
            if player is None:
                return result
            rows = registrations_repo.list_for_player_with_sessions(conn, player.id)

        today = self.clock().date().isoformat()
        for row in rows:
            record = RegistrationRecord.from_row(row)
            entry = record.to_dict()
            entry.update(
                {
                    "title": row["title"] or "",
                    "campaign": row["campaign"] or "",
                    "session_date": row["session_date"],
                    "session_status": row["session_status"],
                }
            )
            session_day = _session_day(row["session_date"])
            upcoming = session_day is None or session_day >= today
            if row["session_status"] == "Scheduled" and upcoming:
                result.upcoming.append(entry)
            else:
                result.past.append(entry)
        result.past.sort(key=lambda entry: entry["session_date"] or "", reverse=True)
        return result

    def roster(self, session_id: str) -> dict:
        """Public roster of seated characters plus seat counts."""
        with connection_scope() as conn:
            session = sessions_repo.get_session(conn, session_id)
            if session is None:
                raise NotFound("Session not found.")
            roster = registrations_repo.public_roster(conn, session_id)
            counts = registrations_repo.count_by_status(conn, session_id)
        seated = counts.get("Confirmed", 0) + counts.get("Attended", 0)
        return {
            "session_id": session.id,
            "title": session.title,
            "session_date": session.session_date,
            "status": session.status,
            "capacity": session.capacity,
            "seats_taken": seated,
            "seats_available": max(session.capacity - seated, 0),
            "waitlisted": counts.get("Waitlisted", 0),
            "roster": roster,
        }

    def pending_registrations(self) -> list[dict]:
        with connection_scope() as conn:
            records = registrations_repo.list_by_status(conn, RegistrationStatus.PENDING)
        return [record.to_dict() for record in records]

    def audit_trail(self, related_id: str | None = None, limit: int = 100) -> list[dict]:
        with connection_scope() as conn:
            if related_id:
                return audit_repo.list_for_related(conn, related_id)
            return audit_repo.list_recent(conn, limit)

    # ========================================================================
    # IN-APP NOTICES
    # ========================================================================

    def notifications_for(self, email: str, *, unread_only: bool = False) -> list[dict]:
        with connection_scope() as conn:
            player = players_repo.get_player_by_email(conn, email)
            if player is None:
                return []
            if unread_only:
                return notifications_repo.list_unread(conn, player.id)
            return notifications_repo.list_for_player(conn, player.id)

    def mark_notification_read(self, notice_id: str, *, email: str) -> bool:
        with connection_scope(write=True) as conn:
            player = players_repo.get_player_by_email(conn, email)
            if player is None:
                return False
            return notifications_repo.mark_read(conn, notice_id, player.id)

    def mark_all_notifications_read(self, *, email: str) -> int:
        with connection_scope(write=True) as conn:
            player = players_repo.get_player_by_email(conn, email)
            if player is None:
                return 0
            return notifications_repo.mark_all_read(conn, player.id)

    def drain_notifications(self, limit: int = 100) -> DrainReport:
        return self.dispatcher.drain(limit)


def _session_day(value: str | None) -> str | None:
    """Return the ``YYYY-MM-DD`` part of a session date, or ``None``."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        return None
