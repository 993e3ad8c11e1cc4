"""Admin endpoints: approvals, cancellations, attendance and session actions.

Every route requires an identity listed in ``security.admin_emails``.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from quest_board.api.identity import Identity, require_admin
from quest_board.api.models import (
    AttendanceRequest,
    AuditResponse,
    PendingRegistrationsResponse,
    RegistrationActionResponse,
    RejectRequest,
    SessionActionResponse,
    SessionCancelRequest,
)
from quest_board.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


def router(service: RegistrationService) -> APIRouter:
    """Build the admin router bound to ``service``."""
    api = APIRouter(prefix="/admin")

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    @api.get("/registrations/pending", response_model=PendingRegistrationsResponse)
    def pending(admin: Identity = Depends(require_admin)):
        return PendingRegistrationsResponse(registrations=service.pending_registrations())

    @api.post("/registrations/{registration_id}/approve", response_model=RegistrationActionResponse)
    def approve(
        registration_id: str,
        background_tasks: BackgroundTasks,
        admin: Identity = Depends(require_admin),
    ):
        """Seat a Pending registration; rejected with ``session_full`` when no seat is free."""
        record = service.approve(registration_id, actor=admin.email)
        background_tasks.add_task(service.drain_notifications)
        return RegistrationActionResponse(
            success=True, message="Registration approved.", registration=record.to_dict()
        )

    @api.post("/registrations/{registration_id}/reject", response_model=RegistrationActionResponse)
    def reject(
        registration_id: str,
        background_tasks: BackgroundTasks,
        body: RejectRequest | None = None,
        admin: Identity = Depends(require_admin),
    ):
        reason = body.reason if body else None
        record = service.reject(registration_id, actor=admin.email, reason=reason)
        background_tasks.add_task(service.drain_notifications)
        return RegistrationActionResponse(
            success=True, message="Registration rejected.", registration=record.to_dict()
        )

    @api.post("/registrations/{registration_id}/cancel", response_model=RegistrationActionResponse)
    def cancel(
        registration_id: str,
        background_tasks: BackgroundTasks,
        admin: Identity = Depends(require_admin),
    ):
        outcome = service.admin_cancel(registration_id, actor=admin.email)
        background_tasks.add_task(service.drain_notifications)
        return RegistrationActionResponse(
            success=True,
            message="Registration cancelled.",
            registration=outcome.cancelled.to_dict(),
            promoted=outcome.promoted.to_dict() if outcome.promoted else None,
        )

    @api.post(
        "/registrations/{registration_id}/attendance", response_model=RegistrationActionResponse
    )
    def attendance(
        registration_id: str,
        body: AttendanceRequest,
        admin: Identity = Depends(require_admin),
    ):
        record = service.mark_attendance(registration_id, attended=body.attended, actor=admin.email)
        return RegistrationActionResponse(
            success=True, message=f"Marked {record.status.value}.", registration=record.to_dict()
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @api.post("/sessions/{session_id}/cancel", response_model=SessionActionResponse)
    def cancel_session(
        session_id: str,
        background_tasks: BackgroundTasks,
        body: SessionCancelRequest | None = None,
        admin: Identity = Depends(require_admin),
    ):
        """Cancel a session and release every open registration without promotion."""
        released = service.cancel_session(
            session_id, actor=admin.email, reason=body.reason if body else None
        )
        background_tasks.add_task(service.drain_notifications)
        logger.info("Admin %s cancelled session %s", admin.email, session_id)
        return SessionActionResponse(
            success=True,
            message="Session cancelled.",
            session_id=session_id,
            affected=len(released),
        )

    @api.post("/sessions/{session_id}/complete", response_model=SessionActionResponse)
    def complete_session(session_id: str, admin: Identity = Depends(require_admin)):
        service.complete_session(session_id, actor=admin.email)
        return SessionActionResponse(
            success=True, message="Session completed.", session_id=session_id
        )

    @api.post("/sessions/{session_id}/remind", response_model=SessionActionResponse)
    def remind(
        session_id: str,
        background_tasks: BackgroundTasks,
        admin: Identity = Depends(require_admin),
    ):
        queued = service.send_reminders(session_id, actor=admin.email)
        background_tasks.add_task(service.drain_notifications)
        return SessionActionResponse(
            success=True,
            message=f"{queued} reminders queued.",
            session_id=session_id,
            affected=queued,
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    @api.get("/audit", response_model=AuditResponse)
    def audit(
        related_id: str | None = None,
        limit: int = 100,
        admin: Identity = Depends(require_admin),
    ):
        return AuditResponse(entries=service.audit_trail(related_id, limit))

    return api
