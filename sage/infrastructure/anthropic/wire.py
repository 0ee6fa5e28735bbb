"""
Wire format of the Claude Messages API.

Request and response bodies are pydantic models so that a body which
doesn't match the documented shape fails in one place, with a readable
validation message, instead of somewhere downstream.

The streaming side is a line parser: the transport hands us raw
server-sent-event lines and parse_stream_line decides, per line, whether
it carries a text fragment, ends the stream, or is noise.
"""

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError


logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class _StreamDone:
    """Marker returned by parse_stream_line for the done sentinel."""

    def __repr__(self) -> str:
        return "STREAM_DONE"


STREAM_DONE = _StreamDone()


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class WireMessage(BaseModel):
    """A single turn in the conversation."""
    role: Literal["user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """Top-level request body sent to the Messages API."""
    model: str
    max_tokens: int
    system: Optional[str] = None
    messages: list[WireMessage]
    stream: bool = False

    def to_payload(self) -> dict:
        """JSON-ready dict; system is omitted when there isn't one."""
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

class TextBlock(BaseModel):
    type: Literal["text"]
    text: str


class UnknownBlock(BaseModel):
    """
    Any content block we don't understand (tool use, thinking, ...).

    Contributes no text. Keeps decoding working when the API grows
    new block types.
    """
    type: str


# Tried left to right: anything that is not a well-formed text block is unknown
ContentBlock = Annotated[Union[TextBlock, UnknownBlock], Field(union_mode="left_to_right")]


class Usage(BaseModel):
    input_tokens: int
    output_tokens: int


class Completion(BaseModel):
    """A complete, non-streamed reply."""
    id: str
    type: str
    role: str
    content: list[ContentBlock]
    model: str
    stop_reason: Optional[str] = None
    usage: Usage

    @property
    def text(self) -> str:
        """The concatenated text of all text blocks."""
        return "".join(
            block.text for block in self.content if isinstance(block, TextBlock)
        )


class APIErrorDetail(BaseModel):
    type: str
    message: str


class APIErrorBody(BaseModel):
    """Error body returned on non-2xx responses."""
    type: str
    error: APIErrorDetail


def parse_error_message(body: bytes) -> Optional[str]:
    """
    Best-effort extraction of the human-readable error message.

    A body that isn't the documented error shape is not itself an error;
    we just have nothing to show.
    """
    if not body:
        return None
    try:
        return APIErrorBody.model_validate_json(body).error.message
    except ValidationError:
        return None


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class StreamDelta(BaseModel):
    type: Optional[str] = None
    text: Optional[str] = None


class StreamEvent(BaseModel):
    """
    Envelope of one SSE payload: {"type": "content_block_delta", ...}.

    Only the fields needed to pick out text deltas are modelled.
    """
    type: str
    delta: Optional[StreamDelta] = None


def parse_stream_line(line: str) -> Union[str, None, _StreamDone]:
    """
    Interpret one line of the event stream.

    Returns:
        The text fragment carried by the line, STREAM_DONE for the done
        sentinel, or None when the line contributes nothing (heartbeats,
        "event:" lines, pings, non-text events, unparseable payloads).
    """
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):]
    if payload == DONE_SENTINEL:
        return STREAM_DONE

    try:
        event = StreamEvent.model_validate_json(payload)
    except ValidationError:
        logger.debug("Skipping unparseable stream event", extra={"payload": payload[:100]})
        return None

    if (
        event.type == "content_block_delta"
        and event.delta is not None
        and event.delta.type == "text_delta"
        and event.delta.text
    ):
        return event.delta.text

    return None
