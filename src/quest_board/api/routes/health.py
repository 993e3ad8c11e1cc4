"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (liveness check plus configuration diagnostics).
"""

from fastapi import APIRouter

from quest_board import __version__
from quest_board.config import get_config_status

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint showing API identity and current version."""
    return {"message": "Quest Board API", "version": __version__}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    status = get_config_status()
    return {
        "status": "ok",
        "version": __version__,
        "waitlist_enabled": status["waitlist_enabled"],
        "email_transport": status["email_transport"],
    }
