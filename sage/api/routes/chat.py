"""
Coaching chat endpoints.

The reply to a chat message is streamed as server-sent events:

    data: <text chunk>          one event per chunk, in order
    event: error                at most once, with a user-facing message
    data: [DONE]                always last

A chunk containing newlines is sent as one event with several data
lines, which SSE clients join back together with "\n".
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...core.coaching.chat import ChatSession
from ...infrastructure.anthropic.errors import (
    CompletionClientError,
    InvalidCredential,
    MissingCredential,
    NoConnection,
    RateLimited,
    RequestTimeout,
)
from ...infrastructure.sqlite import DatabaseError
from ..dependencies import (
    ChatClientDep,
    ConversationRepositoryDep,
    GoalRepositoryDep,
    MessageRepositoryDep,
)
from .conversations import ConversationItem, MessageItem

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_ERROR = "Something went wrong. Please try again."


def friendly_error(error: Exception) -> str:
    """Text to show the learner when a reply couldn't be produced."""
    if isinstance(error, MissingCredential):
        return "No API key found. Add one in Settings."
    if isinstance(error, InvalidCredential):
        return "Invalid API key. Check your key in Settings."
    if isinstance(error, RateLimited):
        return "Too many requests. Please wait a moment and try again."
    if isinstance(error, NoConnection):
        return "No internet connection."
    if isinstance(error, RequestTimeout):
        return "Request timed out. Please try again."
    return GENERIC_ERROR


def format_event(data: str, event: Optional[str] = None) -> str:
    """Encode one server-sent event."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    """A message from the learner to the coach."""
    message: str = Field(
        description="User's question or comment",
        min_length=1,
        max_length=4000,
    )


class ChatStateResponse(BaseModel):
    """The goal's current conversation and its history."""
    conversation: ConversationItem
    messages: list[MessageItem]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def _open_session(
    goal_id: int,
    goals: GoalRepositoryDep,
    conversations: ConversationRepositoryDep,
    messages: MessageRepositoryDep,
    client: ChatClientDep,
) -> ChatSession:
    session = ChatSession(
        goal=goals.get(goal_id),
        client=client,
        conversations=conversations,
        messages=messages,
        offload=run_in_threadpool,
    )
    session.load_conversation()
    return session


@router.get(
    "/{goal_id}/chat",
    response_model=ChatStateResponse,
    summary="Load the goal's current conversation",
    description="Starts a new conversation if the goal has none yet.",
)
def get_chat(
    goal_id: int,
    goals: GoalRepositoryDep,
    conversations: ConversationRepositoryDep,
    messages: MessageRepositoryDep,
    client: ChatClientDep,
) -> ChatStateResponse:
    session = _open_session(goal_id, goals, conversations, messages, client)
    return ChatStateResponse(
        conversation=ConversationItem.from_conversation(session.conversation),
        messages=[MessageItem.from_message(m) for m in session.messages],
    )


@router.post(
    "/{goal_id}/chat",
    summary="Send a message and stream the coach's reply",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
def send_chat_message(
    goal_id: int,
    request: ChatRequest,
    goals: GoalRepositoryDep,
    conversations: ConversationRepositoryDep,
    messages: MessageRepositoryDep,
    client: ChatClientDep,
) -> StreamingResponse:
    """
    Stream the reply to request.message.

    The goal is looked up before streaming starts, so an unknown goal is
    a plain 404. Failures after that arrive in the stream as an error
    event; by then the partial reply has already been discarded.
    """
    session = _open_session(goal_id, goals, conversations, messages, client)

    logger.info(
        "Processing chat message",
        extra={
            "goal_id": goal_id,
            "conversation_id": session.conversation.id,
            "message_length": len(request.message),
        }
    )

    return StreamingResponse(
        _reply_events(session, request.message),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _reply_events(session: ChatSession, text: str) -> AsyncIterator[str]:
    try:
        async for chunk in session.send_message(text):
            yield format_event(chunk)
    except CompletionClientError as e:
        logger.error(
            "Chat reply failed",
            extra={"goal_id": session.goal.id, "error": str(e)}
        )
        yield format_event(friendly_error(e), event="error")
    except DatabaseError as e:
        logger.error(
            "Chat persistence failed",
            extra={"goal_id": session.goal.id, "error": str(e)}
        )
        yield format_event(GENERIC_ERROR, event="error")

    yield format_event("[DONE]")
