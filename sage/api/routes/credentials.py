"""
API key management.

The key itself is write-only over HTTP: it can be stored or removed,
and clients can ask whether one is present, but it is never returned.
"""

import logging

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from ..dependencies import CredentialStoreDep

logger = logging.getLogger(__name__)

router = APIRouter()


class APIKeyRequest(BaseModel):
    api_key: str = Field(min_length=1, description="Claude API key")


class APIKeyStatus(BaseModel):
    configured: bool


@router.get("/api-key", response_model=APIKeyStatus, summary="Whether an API key is stored")
def get_api_key_status(credentials: CredentialStoreDep) -> APIKeyStatus:
    return APIKeyStatus(configured=bool(credentials.get()))


@router.put("/api-key", response_model=APIKeyStatus, summary="Store the API key")
def set_api_key(request: APIKeyRequest, credentials: CredentialStoreDep) -> APIKeyStatus:
    credentials.set(request.api_key)
    return APIKeyStatus(configured=True)


@router.delete(
    "/api-key",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove the stored API key",
)
def delete_api_key(credentials: CredentialStoreDep) -> None:
    credentials.delete()
