"""Repositories: one per table, each running its SQL through Database.run."""

from .conversations import ConversationRepository
from .goals import GoalRepository
from .messages import MessageRepository

__all__ = ["ConversationRepository", "GoalRepository", "MessageRepository"]
