"""Conversation endpoints: renaming a thread and reading its history."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...core.coaching.models import Conversation, Message
from ..dependencies import ConversationRepositoryDep, MessageRepositoryDep

logger = logging.getLogger(__name__)

router = APIRouter()


class ConversationItem(BaseModel):
    id: int
    goal_id: Optional[int]
    title: Optional[str]
    display_title: str = Field(description="The title, or the creation date when untitled")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationItem":
        return cls(
            id=conversation.id,
            goal_id=conversation.goal_id,
            title=conversation.title,
            display_title=conversation.display_title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class MessageItem(BaseModel):
    """Single message in conversation history."""
    id: int
    role: str = Field(description="Message role (user or assistant)")
    content: str
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageItem":
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            created_at=message.created_at,
        )


class TitleRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=200, description="New title; null clears it")


@router.patch(
    "/{conversation_id}",
    response_model=ConversationItem,
    summary="Rename a conversation",
)
def rename_conversation(
    conversation_id: int,
    request: TitleRequest,
    conversations: ConversationRepositoryDep,
) -> ConversationItem:
    conversation = conversations.get(conversation_id)
    title = request.title.strip() if request.title else None
    conversation.title = title or None

    updated = conversations.update_title(conversation)
    logger.info("Conversation renamed", extra={"conversation_id": conversation_id})
    return ConversationItem.from_conversation(updated)


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageItem],
    summary="Conversation history, oldest first",
)
def list_messages(
    conversation_id: int,
    conversations: ConversationRepositoryDep,
    messages: MessageRepositoryDep,
) -> list[MessageItem]:
    conversations.get(conversation_id)
    return [MessageItem.from_message(m) for m in messages.list_for_conversation(conversation_id)]
