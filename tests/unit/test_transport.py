"""
Tests for the Anthropic SDK transport.

The SDK runs for real here; only the HTTP layer underneath it is
replaced, by an httpx.MockTransport. That covers what FakeTransport
can't: the SDK's raw-response calls, how it reports statuses, and how
network failures surface.
"""

import json

import httpx
import pytest

from fakes import completion_body, error_body, sse_lines
from sage.core.coaching.models import Message, Role
from sage.infrastructure.anthropic.client import CompletionClient
from sage.infrastructure.anthropic.errors import (
    HTTPError,
    NoConnection,
    RequestTimeout,
)
from sage.infrastructure.anthropic.transport import AnthropicTransport, TransportRequest
from sage.infrastructure.anthropic.wire import Completion, parse_error_message
from sage.infrastructure.credentials import InMemoryCredentialStore


PAYLOAD = {
    "model": "claude-test",
    "max_tokens": 64,
    "messages": [{"role": "user", "content": "Hi"}],
}


def request(api_key: str = "sk-test-key", stream: bool = False) -> TransportRequest:
    return TransportRequest(api_key=api_key, payload={**PAYLOAD, "stream": stream}, timeout=5.0)


def sse_body(*chunks: str) -> bytes:
    return ("\n".join(sse_lines(*chunks)) + "\n").encode()


class DroppedStream(httpx.AsyncByteStream):
    """Body that delivers some bytes and then loses the connection."""

    def __init__(self, first: bytes) -> None:
        self._first = first

    async def __aiter__(self):
        yield self._first
        raise httpx.ReadError("connection reset")


class Recorder:
    """MockTransport handler replaying one scripted outcome per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, http_request: httpx.Request) -> httpx.Response:
        self.requests.append(http_request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
async def http_client():
    """Factory for mock-backed httpx clients, all closed at teardown."""
    clients = []

    def build(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield build
    for client in clients:
        await client.aclose()


def make_transport(http_client, handler) -> AnthropicTransport:
    return AnthropicTransport(base_url="https://api.test", http_client=http_client(handler))


# ---------------------------------------------------------------------------
# send
# ---------------------------------------------------------------------------

class TestSend:

    async def test_success_returns_raw_body(self, http_client):
        handler = Recorder(httpx.Response(200, content=completion_body("Hello!")))
        transport = make_transport(http_client, handler)

        response = await transport.send(request())

        assert response.status_code == 200
        assert Completion.model_validate_json(response.body).text == "Hello!"
        sent = handler.requests[0]
        assert sent.url.path == "/v1/messages"
        assert sent.headers["x-api-key"] == "sk-test-key"
        assert json.loads(sent.content)["messages"] == PAYLOAD["messages"]

    async def test_each_call_uses_its_own_key(self, http_client):
        handler = Recorder(
            httpx.Response(200, content=completion_body()),
            httpx.Response(200, content=completion_body()),
        )
        transport = make_transport(http_client, handler)

        await transport.send(request(api_key="sk-first"))
        await transport.send(request(api_key="sk-second"))

        assert [r.headers["x-api-key"] for r in handler.requests] == ["sk-first", "sk-second"]

    async def test_server_error_is_passed_through_without_retry(self, http_client):
        handler = Recorder(httpx.Response(503, content=error_body("overloaded", "overloaded_error")))
        transport = make_transport(http_client, handler)

        response = await transport.send(request())

        assert response.status_code == 503
        assert parse_error_message(response.body) == "overloaded"
        assert len(handler.requests) == 1

    async def test_rate_limit_keeps_headers(self, http_client):
        handler = Recorder(httpx.Response(429, headers={"retry-after": "9"}, content=error_body("slow down")))
        transport = make_transport(http_client, handler)

        response = await transport.send(request())

        assert response.status_code == 429
        assert response.headers["retry-after"] == "9"

    async def test_connect_error_is_no_connection(self, http_client):
        transport = make_transport(http_client, Recorder(httpx.ConnectError("refused")))

        with pytest.raises(NoConnection):
            await transport.send(request())

    async def test_timeout_is_request_timeout(self, http_client):
        transport = make_transport(http_client, Recorder(httpx.ReadTimeout("too slow")))

        with pytest.raises(RequestTimeout):
            await transport.send(request())


# ---------------------------------------------------------------------------
# stream
# ---------------------------------------------------------------------------

class TestStream:

    async def test_stream_yields_body_lines(self, http_client):
        handler = Recorder(httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse_body("Hello", ", world!"),
        ))
        transport = make_transport(http_client, handler)

        async with transport.stream(request(stream=True)) as response:
            lines = [line async for line in response.lines()]

        assert response.status_code == 200
        assert lines[-1] == "data: [DONE]"
        assert json.loads(handler.requests[0].content)["stream"] is True

    @pytest.mark.parametrize("status", [401, 500])
    async def test_stream_error_status_exposes_body(self, http_client, status):
        body = error_body("nope")
        transport = make_transport(http_client, Recorder(httpx.Response(status, content=body)))

        async with transport.stream(request(stream=True)) as response:
            assert response.status_code == status
            assert await response.read() == body

    async def test_stream_connect_error_is_no_connection(self, http_client):
        transport = make_transport(http_client, Recorder(httpx.ConnectError("refused")))

        with pytest.raises(NoConnection):
            async with transport.stream(request(stream=True)):
                pass

    async def test_connection_dropped_mid_stream_is_no_connection(self, http_client):
        first = (sse_lines("Hel", done=False)[-3] + "\n").encode()
        handler = Recorder(httpx.Response(200, stream=DroppedStream(first)))
        transport = make_transport(http_client, handler)
        received = []

        with pytest.raises(NoConnection):
            async with transport.stream(request(stream=True)) as response:
                async for line in response.lines():
                    received.append(line)

        assert received and received[0].startswith("data: ")

    async def test_client_reports_dropped_stream_as_no_connection(self, http_client):
        """End to end: chunks before the drop arrive, then NoConnection."""
        body = b"".join((line + "\n").encode() for line in sse_lines("Hel", done=False)[:-1])
        handler = Recorder(httpx.Response(200, stream=DroppedStream(body)))
        client = CompletionClient(
            make_transport(http_client, handler),
            InMemoryCredentialStore("sk-test-key"),
            model="claude-test",
        )
        chunks = []

        with pytest.raises(NoConnection):
            async for chunk in client.stream([Message(conversation_id=1, role=Role.USER, content="Hi")]):
                chunks.append(chunk)

        assert chunks == ["Hel"]

    async def test_client_maps_streamed_server_error(self, http_client):
        handler = Recorder(httpx.Response(529, content=error_body("Overloaded", "overloaded_error")))
        client = CompletionClient(
            make_transport(http_client, handler),
            InMemoryCredentialStore("sk-test-key"),
            model="claude-test",
        )

        with pytest.raises(HTTPError) as exc_info:
            async for _ in client.stream([Message(conversation_id=1, role=Role.USER, content="Hi")]):
                pass

        assert exc_info.value.status_code == 529
        assert len(handler.requests) == 1


class TestClose:

    async def test_aclose_closes_connection_pool(self, http_client):
        client = http_client(Recorder())
        transport = AnthropicTransport(base_url="https://api.test", http_client=client)

        await transport.aclose()

        assert client.is_closed
