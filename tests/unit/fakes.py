"""
Shared test doubles.

FakeTransport stands in for the network under CompletionClient, and
ScriptedChatClient stands in for the whole client under ChatSession.
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

from sage.infrastructure.anthropic.transport import TransportResponse


def completion_body(text: str = "Hello!") -> bytes:
    return json.dumps({
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": text}],
        "model": "claude-test",
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 12, "output_tokens": 3},
    }).encode()


def error_body(message: str, error_type: str = "invalid_request_error") -> bytes:
    return json.dumps({"type": "error", "error": {"type": error_type, "message": message}}).encode()


def sse_lines(*chunks: str, done: bool = True) -> list[str]:
    """A realistic event stream carrying the given text chunks."""
    lines = [
        "event: message_start",
        'data: {"type": "message_start", "message": {"id": "msg_test"}}',
        "",
        'data: {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}',
        'data: {"type": "ping"}',
    ]
    for chunk in chunks:
        event = {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": chunk}}
        lines.extend(["event: content_block_delta", "data: " + json.dumps(event), ""])
    lines.append('data: {"type": "message_stop"}')
    if done:
        lines.append("data: [DONE]")
    return lines


class FakeStream:
    def __init__(self, status_code: Optional[int] = 200, lines=(), body: bytes = b"", headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._lines = list(lines)
        self._body = body

    async def lines(self):
        for line in self._lines:
            yield line

    async def read(self) -> bytes:
        return self._body


class FakeTransport:
    """Scripted Transport that records what it was asked to send."""

    def __init__(self, responses=(), stream_response: Optional[FakeStream] = None, error=None):
        self.responses = list(responses)
        self.stream_response = stream_response
        self.error = error
        self.sent = []
        self.streamed = []
        self.stream_closed = False
        self.closed = False

    async def send(self, request):
        self.sent.append(request)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    @asynccontextmanager
    async def stream(self, request):
        self.streamed.append(request)
        if self.error is not None:
            raise self.error
        try:
            yield self.stream_response
        finally:
            self.stream_closed = True

    async def aclose(self):
        self.closed = True


class ScriptedChatClient:
    """ChatModelClient that replays chunks, optionally failing part way."""

    def __init__(self, chunks=("Hello", ", world!"), fail_after: Optional[int] = None, error=None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.error = error
        self.histories = []
        self.closed = False
        self.system_prompt = None

    async def _generate(self, history):
        try:
            for index, chunk in enumerate(self.chunks):
                if self.fail_after is not None and index == self.fail_after:
                    raise self.error
                yield chunk
            if self.fail_after is not None and self.fail_after >= len(self.chunks):
                raise self.error
        finally:
            self.closed = True

    def stream(self, history, system_prompt=None, model=None, max_tokens=None):
        self.histories.append([(m.role.value, m.content) for m in history])
        self.system_prompt = system_prompt
        return self._generate(history)


def ok(text: str = "Hello!") -> TransportResponse:
    return TransportResponse(status_code=200, headers={}, body=completion_body(text))
