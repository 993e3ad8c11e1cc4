"""
Notification dispatcher.

Ledger transitions leave an outbox row behind in the same transaction. After
that transaction commits, :meth:`NotificationDispatcher.drain` delivers the
pending rows:

    1. claim the row (``pending -> sending``) in its own short write, so two
       drains running at once never deliver the same row twice;
    2. :meth:`notify`: write the in-app notice and call the email transport;
    3. mark the row ``sent`` or ``failed``.

Delivery is best-effort. A failure is logged and recorded on the row and the
drain moves on; it never touches the registration that caused it, and it is
never retried here.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field

from quest_board.core.errors import NotificationFailed
from quest_board.db import notifications_repo, players_repo, sessions_repo
from quest_board.db.connection import connection_scope
from quest_board.db.errors import DatabaseError
from quest_board.notifications.templates import NotificationKind, render
from quest_board.notifications.transport import EmailTransport, LogTransport

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[..., AbstractContextManager[sqlite3.Connection]]


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    kind: NotificationKind
    player_id: str
    registration_id: str | None = None
    payload: dict = field(default_factory=dict)


@dataclass
class DrainReport:
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


class NotificationDispatcher:
    """
    Delivers notification events as an in-app notice plus one email.

    Args:
        transport: Email collaborator; defaults to :class:`LogTransport`.
        connection_factory: Produces DB connections; defaults to
            :func:`connection_scope`.
    """

    def __init__(
        self,
        transport: EmailTransport | None = None,
        *,
        connection_factory: ConnectionFactory = connection_scope,
    ) -> None:
        self.transport = transport or LogTransport()
        self._connections = connection_factory

    def notify(self, event: NotificationEvent) -> bool:
        """Deliver one event. Returns False (after logging) when delivery failed."""
        try:
            self._deliver(event)
        except NotificationFailed as failure:
            logger.warning("%s", failure)
            return False
        return True

    def _deliver(self, event: NotificationEvent) -> None:
        kind = NotificationKind(event.kind)
        try:
            with self._connections() as conn:
                player = players_repo.get_player(conn, event.player_id)
                session_id = event.payload.get("session_id")
                session = sessions_repo.get_session(conn, session_id) if session_id else None
        except DatabaseError as exc:
            raise NotificationFailed(kind.value, event.player_id, f"lookup failed: {exc}") from exc
        if player is None:
            raise NotificationFailed(kind.value, event.player_id, "unknown player")

        data = dict(event.payload)
        data["player_name"] = player.display_name or player.email
        if session is not None:
            data["session_title"] = session.title or session.campaign or session.id
            data["session_date"] = session.session_date or ""
        rendered = render(kind, data)

        try:
            with self._connections(write=True) as conn:
                notifications_repo.create_notice(
                    conn, player.id, kind.value, rendered.notice, event.registration_id
                )
        except DatabaseError as exc:
            logger.warning("In-app notice for %s to %s not stored: %s", kind.value, player.id, exc)

        try:
            result = self.transport.send(
                player.email,
                kind.value,
                {**data, "subject": rendered.subject, "body": rendered.body},
            )
        except Exception as exc:  # noqa: BLE001
            raise NotificationFailed(kind.value, player.email, str(exc)) from exc
        if result != "sent":
            raise NotificationFailed(kind.value, player.email, f"transport reported {result}")

    def drain(self, limit: int = 100) -> DrainReport:
        """Deliver up to ``limit`` pending outbox rows, oldest first."""
        report = DrainReport()
        with self._connections() as conn:
            entry_ids = notifications_repo.pending_ids(conn, limit)

        for entry_id in entry_ids:
            with self._connections(write=True) as conn:
                entry = notifications_repo.claim(conn, entry_id)
            if entry is None:
                report.skipped += 1
                continue

            event = NotificationEvent(
                kind=NotificationKind(entry["kind"]),
                player_id=entry["player_id"],
                registration_id=entry["registration_id"],
                payload=entry["payload"],
            )
            error: str | None = None
            try:
                self._deliver(event)
            except NotificationFailed as failure:
                logger.warning("%s", failure)
                error = failure.detail
            with self._connections(write=True) as conn:
                notifications_repo.finish(conn, entry_id, error=error)
            if error is None:
                report.sent += 1
            else:
                report.failed += 1

        if report.total:
            logger.info(
                "Outbox drained: %d sent, %d failed, %d skipped",
                report.sent,
                report.failed,
                report.skipped,
            )
        return report
