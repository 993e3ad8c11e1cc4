"""
Route registration entry point for the FastAPI application.

Each router module builds an ``APIRouter`` bound to the registration service;
``register_routes`` mounts them all.
"""

from fastapi import FastAPI

from quest_board.api.routes import admin, health, me, signup
from quest_board.services.registration_service import RegistrationService


def register_routes(app: FastAPI, service: RegistrationService) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(signup.router(service))
    app.include_router(me.router(service))
    app.include_router(admin.router(service))
