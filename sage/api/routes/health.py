"""
Health check endpoint.

Reports whether the process is up, whether the database is open and at
which schema version, and whether an API key is available for chat.
"""

import logging
from typing import Any

from fastapi import APIRouter, status
from pydantic import BaseModel

from ... import __version__
from ...infrastructure.sqlite import DatabaseError
from ..dependencies import CredentialStoreDep, DatabaseDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    details: dict[str, Any] = {}


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
def health_check(
    settings: SettingsDep,
    database: DatabaseDep,
    credentials: CredentialStoreDep,
) -> HealthResponse:
    """Liveness plus the state of the database and the credential."""
    try:
        schema_version = database.schema_version
        database_status = "ok"
    except DatabaseError as e:
        logger.error("Database health check failed", extra={"error": str(e)})
        schema_version = None
        database_status = "error"

    return HealthResponse(
        status="ok" if database_status == "ok" else "degraded",
        version=__version__,
        details={
            "api_version": settings.api_version,
            "database": database_status,
            "schema_version": schema_version,
            "api_key_configured": bool(credentials.get()),
        },
    )
