"""Sign-up endpoints: form tokens, sign-up, cancel links and the public roster."""

from fastapi import APIRouter, BackgroundTasks, Depends

from quest_board.api.identity import Identity, require_identity
from quest_board.api.models import (
    CancelByTokenRequest,
    RegistrationActionResponse,
    RosterResponse,
    SignupForm,
    SignupResponse,
    TokenResponse,
)
from quest_board.core.eligibility import SignupRequest
from quest_board.services.registration_service import RegistrationService


def router(service: RegistrationService) -> APIRouter:
    """Build the sign-up router bound to ``service``."""
    api = APIRouter()

    @api.get("/csrf-token", response_model=TokenResponse)
    def csrf_token():
        """Issue a one-time form token, valid for a single sign-up submission."""
        return TokenResponse(token=service.issue_form_token())

    @api.post("/signup", response_model=SignupResponse)
    def signup(
        form: SignupForm,
        background_tasks: BackgroundTasks,
        identity: Identity = Depends(require_identity),
    ):
        """
        Sign the caller up for a session.

        The response reports Confirmed, Pending or Waitlisted. Business
        rejections (bad token, rate limit, ineligible, full, duplicate) come
        back as ``200 {success: false, reason, message}``.
        """
        request = SignupRequest(
            session_id=form.session_id,
            email=identity.email,
            name=(form.name or identity.display_name or "").strip(),
            character_name=form.character_name,
            character_class=form.character_class,
            character_level=form.character_level,
            character_race=form.character_race,
            player_notes=form.player_notes,
            token=form.token,
        )
        result = service.signup(request)
        background_tasks.add_task(service.drain_notifications)
        return SignupResponse(
            success=True,
            message=result.message,
            registration_id=result.registration.id,
            status=result.status.value,
            waitlisted=result.waitlisted,
        )

    @api.post("/cancel-by-token", response_model=RegistrationActionResponse)
    def cancel_by_token(request: CancelByTokenRequest, background_tasks: BackgroundTasks):
        """Cancel a registration through the one-time link emailed at sign-up."""
        outcome = service.cancel_by_token(request.token)
        background_tasks.add_task(service.drain_notifications)
        return RegistrationActionResponse(
            success=True,
            message="Registration cancelled successfully.",
            registration=outcome.cancelled.to_dict(),
            promoted=outcome.promoted.to_dict() if outcome.promoted else None,
        )

    @api.get("/sessions/{session_id}/roster", response_model=RosterResponse)
    def roster(session_id: str):
        """Public roster: seated characters and seat counts."""
        return RosterResponse(**service.roster(session_id))

    return api
