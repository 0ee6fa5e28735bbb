"""
FastAPI application entry point.

create_app builds the application; the lifespan opens the database and
builds the completion client, and keeps both on app.state for the
dependency providers in api.dependencies.

For local development:
    uvicorn sage.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import chat, conversations, credentials, goals, health
from .config.settings import Settings, get_settings
from .infrastructure.anthropic import create_completion_client
from .infrastructure.credentials import InMemoryCredentialStore
from .infrastructure.sqlite import Database, DatabaseError, RecordNotFound

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.log_level.upper(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Open the database and build the model client on startup; close the
    database on shutdown.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Sage API starting",
        extra={"version": __version__, "database_path": settings.database_path}
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # The API key can still be supplied at runtime
        logger.warning(
            "Missing configuration",
            extra={"missing_fields": missing_fields}
        )

    app.state.database = Database(settings.database_path).open()
    app.state.credentials = InMemoryCredentialStore(settings.anthropic_api_key)
    app.state.chat_client = create_completion_client(settings, app.state.credentials)

    try:
        yield
    finally:
        await app.state.chat_client.aclose()
        app.state.database.close()
        logger.info("Sage API shutting down")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Tests pass their own Settings (e.g. a temporary database path);
    otherwise settings come from the environment.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Personal skill-learning coach.

        1. **Create a goal**: `POST /api/v1/goals`
        2. **Chat with the coach**: `POST /api/v1/goals/{goal_id}/chat`
           streams the reply as server-sent events
        3. **Review history**: `GET /api/v1/conversations/{conversation_id}/messages`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(goals.router, prefix="/api/v1/goals", tags=["Goals"])
    app.include_router(chat.router, prefix="/api/v1/goals", tags=["Chat"])
    app.include_router(
        conversations.router,
        prefix="/api/v1/conversations",
        tags=["Conversations"],
    )
    app.include_router(
        credentials.router,
        prefix="/api/v1/credentials",
        tags=["Credentials"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Sage Coach API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    # ---------------------------------------------------------------------------
    # Exception handlers
    # ---------------------------------------------------------------------------

    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        logger.error(
            "Database error",
            extra={"path": request.url.path, "method": request.method, "error": str(exc)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Database error. Please try again."},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Log the full error server-side; return a generic message."""
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error."},
        )

    return app


configure_logging(get_settings())

# This is what uvicorn imports
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sage.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
