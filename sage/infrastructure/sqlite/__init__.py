"""
SQLite persistence for goals, conversations and messages.
"""

from .database import Database
from .errors import (
    ConnectionFailed,
    DatabaseError,
    DecodingFailed,
    DeleteFailed,
    EncodingFailed,
    InsertFailed,
    MigrationFailed,
    QueryFailed,
    RecordNotFound,
    UpdateFailed,
)
from .migrations import MIGRATIONS, Migration, migrate
from .repositories import ConversationRepository, GoalRepository, MessageRepository

__all__ = [
    "Database",
    "Migration",
    "MIGRATIONS",
    "migrate",
    "GoalRepository",
    "ConversationRepository",
    "MessageRepository",
    "DatabaseError",
    "ConnectionFailed",
    "QueryFailed",
    "InsertFailed",
    "UpdateFailed",
    "DeleteFailed",
    "RecordNotFound",
    "MigrationFailed",
    "EncodingFailed",
    "DecodingFailed",
]
