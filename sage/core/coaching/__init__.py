"""
Skill coaching logic.

Contains the domain models and the chat session that streams replies
while persisting them.
"""

from .models import Conversation, Goal, Message, Metric, Role, utcnow
from .chat import ChatModelClient, ChatSession, build_coach_system_prompt

__all__ = [
    "Conversation",
    "Goal",
    "Message",
    "Metric",
    "Role",
    "utcnow",
    "ChatSession",
    "build_coach_system_prompt",
    "ChatModelClient",
]
