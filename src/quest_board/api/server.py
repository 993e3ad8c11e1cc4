"""
FastAPI backend server for Quest Board.

This module builds the FastAPI application that fronts the registration
engine. It sets up:
- CORS middleware for the browser client
- Exception handlers mapping domain and database errors to responses
- The registration service shared by every route
- All API route endpoints

Business rejections are deliberately HTTP 200 with ``success: false`` so the
client can show a friendly message; only missing identity (401), missing
admin rights (403) and infrastructure failures (500) use error statuses.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quest_board import __version__
from quest_board.api.routes import register_routes
from quest_board.config import config
from quest_board.core.errors import RegistrationError
from quest_board.db.errors import DatabaseError, DatabaseOperationError
from quest_board.db.schema import init_database
from quest_board.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    """Render a business rejection as ``200 {success: false, reason, message}``."""
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=200, content=exc.to_payload())


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Map DB-layer failures to a deterministic 500 without leaking internals."""
    operation = exc.context.operation if isinstance(exc, DatabaseOperationError) else "database"
    logger.error("%s %s failed in %s: %s", request.method, request.url.path, operation, exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "reason": "internal_error", "message": "Internal server error"},
    )


# ============================================================================
# APPLICATION FACTORY
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    yield


def create_app(service: RegistrationService | None = None, *, init_db: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Registration service to bind routes to; built from config
            when omitted.
        init_db: Create the schema on startup.
    """
    app = FastAPI(
        title="Quest Board",
        version=__version__,
        lifespan=lifespan if init_db else None,
        docs_url="/docs" if config.docs_should_be_enabled else None,
        redoc_url="/redoc" if config.docs_should_be_enabled else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RegistrationError, registration_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)

    app.state.registration_service = service or RegistrationService.from_config()
    register_routes(app, app.state.registration_service)
    return app


# ============================================================================
# SERVER STARTUP
# ============================================================================


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Run the API under uvicorn using configured (or given) host and port."""
    import uvicorn

    uvicorn.run(
        create_app(),
        host=host or config.server.host,
        port=port or config.server.port,
    )


if __name__ == "__main__":
    start_server()
