"""Player self-service endpoints: my registrations, self-cancel and notices."""

from fastapi import APIRouter, BackgroundTasks, Depends

from quest_board.api.identity import Identity, require_identity
from quest_board.api.models import (
    MarkReadResponse,
    MyRegistrationsResponse,
    NotificationsResponse,
    RegistrationActionResponse,
)
from quest_board.services.registration_service import RegistrationService


def router(service: RegistrationService) -> APIRouter:
    """Build the ``/me`` router bound to ``service``."""
    api = APIRouter(prefix="/me")

    @api.get("/registrations", response_model=MyRegistrationsResponse)
    def my_registrations(identity: Identity = Depends(require_identity)):
        result = service.my_registrations(identity.email)
        return MyRegistrationsResponse(upcoming=result.upcoming, past=result.past)

    @api.delete("/registrations/{registration_id}", response_model=RegistrationActionResponse)
    def cancel_my_registration(
        registration_id: str,
        background_tasks: BackgroundTasks,
        identity: Identity = Depends(require_identity),
    ):
        """Cancel one of the caller's Confirmed or Waitlisted registrations."""
        outcome = service.cancel_my_registration(registration_id, email=identity.email)
        background_tasks.add_task(service.drain_notifications)
        return RegistrationActionResponse(
            success=True,
            message="Registration cancelled successfully.",
            registration=outcome.cancelled.to_dict(),
            promoted=outcome.promoted.to_dict() if outcome.promoted else None,
        )

    @api.get("/notifications", response_model=NotificationsResponse)
    def notifications(unread_only: bool = False, identity: Identity = Depends(require_identity)):
        return NotificationsResponse(
            notifications=service.notifications_for(identity.email, unread_only=unread_only)
        )

    @api.post("/notifications/read-all", response_model=MarkReadResponse)
    def mark_all_read(identity: Identity = Depends(require_identity)):
        updated = service.mark_all_notifications_read(email=identity.email)
        return MarkReadResponse(success=True, updated=updated)

    @api.post("/notifications/{notice_id}/read", response_model=MarkReadResponse)
    def mark_read(notice_id: str, identity: Identity = Depends(require_identity)):
        updated = service.mark_notification_read(notice_id, email=identity.email)
        return MarkReadResponse(success=updated, updated=int(updated))

    return api
