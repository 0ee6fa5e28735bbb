"""
Coaching chat orchestration.

ChatSession ties the two halves of the app together: it streams a reply
from the model while persisting the conversation. Both sides are reached
through protocols, so this module doesn't know about SQLite or HTTP.

The persistence contract for one exchange:
1. Save the user's message
2. Save an empty assistant placeholder
3. Stream chunks into the placeholder
4. Write the assembled reply back once the stream finishes
If the stream fails or the consumer walks away, the placeholder is
deleted so no half-written reply is left behind.
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence

from .models import Conversation, Goal, Message, Role


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class ChatModelClient(Protocol):
    """
    Interface for a streaming chat model.

    The session doesn't care whether this is Claude or a scripted fake;
    it needs text chunks for the next assistant turn.
    """

    def stream(
        self,
        history: Sequence[Message],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[str, None]:
        """Stream the next assistant reply as text chunks."""
        ...


class ConversationStore(Protocol):
    def insert(self, conversation: Conversation) -> Conversation: ...
    def list_for_goal(self, goal_id: int) -> list[Conversation]: ...


class MessageStore(Protocol):
    def insert(self, message: Message) -> Message: ...
    def list_for_conversation(self, conversation_id: int) -> list[Message]: ...
    def update_content(self, message: Message) -> Message: ...
    def delete(self, message_id: int) -> None: ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

COACH_SYSTEM_PROMPT = """You are Sage, a patient and practical skill-learning coach. You help one person get better at {skill}.

## Your Approach
- Give concrete next steps the learner can practise this week.
- Keep answers short unless asked for depth.
- Ask a clarifying question when the request is ambiguous.
- Celebrate progress on their metrics, and be honest about gaps.
{level_context}{metrics_context}"""


def build_coach_system_prompt(goal: Goal) -> str:
    """System prompt personalised with the goal's levels and metrics."""
    if goal.current_level and goal.target_level:
        level_context = (
            f"\nThe learner is currently at {goal.current_level} level "
            f"and wants to reach {goal.target_level} level.\n"
        )
    elif goal.current_level:
        level_context = f"\nThe learner is currently at {goal.current_level} level.\n"
    else:
        level_context = ""

    metrics_context = ""
    if goal.metrics:
        lines = []
        for metric in goal.metrics:
            direction = "higher is better" if metric.higher_is_better else "lower is better"
            line = f"- {metric.name} ({metric.unit}, {direction})"
            if metric.current_value is not None:
                line += f": currently {metric.current_value:g}"
            if metric.target_value is not None:
                line += f", target {metric.target_value:g}"
            lines.append(line)
        metrics_context = "\nThey track these metrics:\n" + "\n".join(lines) + "\n"

    return COACH_SYSTEM_PROMPT.format(
        skill=goal.name,
        level_context=level_context,
        metrics_context=metrics_context,
    )


# ---------------------------------------------------------------------------
# Chat Session
# ---------------------------------------------------------------------------

class ChatSession:
    """
    One goal's coaching chat.

    Holds the active conversation and its messages in memory and keeps
    them in step with the store. Not safe to share between concurrent
    senders: one send_message at a time.

    Store calls made while streaming go through offload, which runs a
    blocking call off the event loop (asyncio.to_thread by default; the
    web layer passes its own threadpool runner).
    """

    def __init__(
        self,
        goal: Goal,
        client: ChatModelClient,
        conversations: ConversationStore,
        messages: MessageStore,
        offload: Callable[..., Awaitable[Any]] = asyncio.to_thread,
    ) -> None:
        if not goal.is_persisted:
            raise ValueError("Chat requires a saved goal")

        self._goal = goal
        self._client = client
        self._conversations = conversations
        self._messages = messages
        self._offload = offload
        self.conversation: Optional[Conversation] = None
        self.messages: list[Message] = []

    @property
    def goal(self) -> Goal:
        return self._goal

    def load_conversation(self) -> Conversation:
        """
        Load the goal's most recent conversation, creating one if none exists.

        Populates self.messages with its history, oldest first.
        """
        conversations = self._conversations.list_for_goal(self._goal.id)

        if conversations:
            self.conversation = conversations[0]
        else:
            self.conversation = self._conversations.insert(
                Conversation(goal_id=self._goal.id)
            )
            logger.info(
                "Started new conversation",
                extra={"goal_id": self._goal.id, "conversation_id": self.conversation.id}
            )

        self.messages = self._messages.list_for_conversation(self.conversation.id)
        return self.conversation

    async def send_message(self, text: str) -> AsyncIterator[str]:
        """
        Send the user's text and stream the coach's reply.

        Yields reply chunks as they arrive. Blank text yields nothing.
        Errors from the model client propagate after the placeholder has
        been removed.
        """
        text = text.strip()
        if not text:
            return

        if self.conversation is None:
            self.load_conversation()
        conversation_id = self.conversation.id

        user_message = await self._offload(
            self._messages.insert,
            Message(conversation_id=conversation_id, role=Role.USER, content=text),
        )
        self.messages.append(user_message)

        placeholder = await self._offload(
            self._messages.insert,
            Message(conversation_id=conversation_id, role=Role.ASSISTANT, content=""),
        )
        self.messages.append(placeholder)

        completed = False
        try:
            stream = self._client.stream(
                self.messages[:-1],  # everything but the empty placeholder
                system_prompt=build_coach_system_prompt(self._goal),
            )
            async with aclosing(stream) as chunks:
                async for chunk in chunks:
                    placeholder.append(chunk)
                    yield chunk

            await self._offload(self._messages.update_content, placeholder)
            completed = True

            logger.info(
                "Assistant reply stored",
                extra={
                    "conversation_id": conversation_id,
                    "message_id": placeholder.id,
                    "length": len(placeholder.content),
                }
            )
        finally:
            if not completed:
                self._discard_placeholder(placeholder)

    def _discard_placeholder(self, placeholder: Message) -> None:
        # Runs inline: an await here could be cancelled along with the stream.
        if self.messages and self.messages[-1] is placeholder:
            self.messages.pop()
        if placeholder.id is not None:
            try:
                self._messages.delete(placeholder.id)
            except Exception:
                logger.error(
                    "Could not delete incomplete assistant reply",
                    extra={"conversation_id": placeholder.conversation_id, "message_id": placeholder.id},
                    exc_info=True,
                )
                return
        logger.warning(
            "Discarded incomplete assistant reply",
            extra={"conversation_id": placeholder.conversation_id, "message_id": placeholder.id}
        )
