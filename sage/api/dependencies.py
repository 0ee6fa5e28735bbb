"""
FastAPI dependency injection.

Long-lived resources (the database, the completion client, the
credential store) are built once in the application lifespan and kept
on app.state. The providers here hand them to route handlers, and
build the cheap per-request objects (repositories) on top of them.

Tests replace any of these with app.dependency_overrides.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from ..config.settings import Settings
from ..core.coaching.chat import ChatModelClient
from ..infrastructure.credentials import CredentialStore
from ..infrastructure.sqlite import (
    ConversationRepository,
    Database,
    GoalRepository,
    MessageRepository,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application Resources
# ---------------------------------------------------------------------------

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_chat_client(request: Request) -> ChatModelClient:
    """The streaming model client shared by every chat request."""
    return request.app.state.chat_client


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

def get_goal_repository(
    database: Annotated[Database, Depends(get_database)],
) -> GoalRepository:
    return GoalRepository(database)


def get_conversation_repository(
    database: Annotated[Database, Depends(get_database)],
) -> ConversationRepository:
    return ConversationRepository(database)


def get_message_repository(
    database: Annotated[Database, Depends(get_database)],
) -> MessageRepository:
    return MessageRepository(database)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DatabaseDep = Annotated[Database, Depends(get_database)]
CredentialStoreDep = Annotated[CredentialStore, Depends(get_credentials)]
ChatClientDep = Annotated[ChatModelClient, Depends(get_chat_client)]
GoalRepositoryDep = Annotated[GoalRepository, Depends(get_goal_repository)]
ConversationRepositoryDep = Annotated[ConversationRepository, Depends(get_conversation_repository)]
MessageRepositoryDep = Annotated[MessageRepository, Depends(get_message_repository)]
