"""
Network transport for the completion client.

The client never talks to the network directly. It needs exactly two
things from a transport:
1. Send one request and get the full body back (non-streaming calls)
2. Send one request and read the body lazily, line by line (streaming)

Keeping that seam small means tests can swap in a scripted fake, and the
real implementation can lean on the Anthropic SDK for connection handling
while our client keeps full control of status mapping, retries, and
event parsing.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncContextManager, AsyncIterator, Mapping, Optional, Protocol

import anthropic
import httpx

from .errors import NoConnection, RequestTimeout


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportRequest:
    """Everything needed to perform one Messages API call."""
    api_key: str = field(repr=False)
    payload: dict
    timeout: float = 30.0


@dataclass
class TransportResponse:
    """
    A fully read response.

    status_code is None when the transport got something that wasn't an
    HTTP response at all.
    """
    status_code: Optional[int]
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class TransportStream(Protocol):
    """An open streaming response. Only valid inside its context."""

    status_code: Optional[int]
    headers: Mapping[str, str]

    def lines(self) -> AsyncIterator[str]:
        """Body lines, read lazily. Single pass."""
        ...

    async def read(self) -> bytes:
        """Read the whole remaining body (used for error details)."""
        ...


class Transport(Protocol):
    """
    Interface for the network layer under CompletionClient.

    Implementations raise NoConnection or RequestTimeout for network
    failures and otherwise report the status as-is; they never retry.
    """

    async def send(self, request: TransportRequest) -> TransportResponse:
        """Perform a single request and return the full body."""
        ...

    def stream(self, request: TransportRequest) -> AsyncContextManager[TransportStream]:
        """Perform a request and expose the body as a lazy line sequence."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections. The transport is unusable afterwards."""
        ...


# ---------------------------------------------------------------------------
# Anthropic SDK implementation
# ---------------------------------------------------------------------------

class _SDKStream:
    """TransportStream over the SDK's streaming raw response."""

    def __init__(self, response) -> None:
        self._response = response
        self.status_code = response.status_code
        self.headers = response.headers

    async def lines(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.iter_lines():
                yield line
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"Stream read timed out: {e}") from e
        except Exception as e:
            # Anything else while reading the body means the connection is gone
            raise NoConnection(f"Connection lost while streaming: {e}") from e

    async def read(self) -> bytes:
        return await self._response.read()


class _ErrorStream:
    """TransportStream for a response the SDK already rejected by status."""

    def __init__(self, status_code: int, headers: Mapping[str, str], body: bytes) -> None:
        self.status_code = status_code
        self.headers = headers
        self._body = body

    async def lines(self) -> AsyncIterator[str]:
        for line in self._body.decode("utf-8", errors="replace").splitlines():
            yield line

    async def read(self) -> bytes:
        return self._body


def _status_error_body(error: anthropic.APIStatusError) -> bytes:
    try:
        return error.response.content
    except httpx.ResponseNotRead:
        return b""


class AnthropicTransport:
    """
    Transport built on the official Anthropic SDK.

    We use the SDK's raw-response APIs so the body reaches our own
    decoding and event parsing untouched. SDK retries are disabled; the
    completion client owns the retry policy.

    One SDK client (and so one connection pool) is shared by every call;
    call aclose() when done with the transport.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = anthropic.AsyncAnthropic(
            base_url=base_url,
            max_retries=0,
            http_client=http_client,
        )

    def _client_for(self, request: TransportRequest) -> anthropic.AsyncAnthropic:
        # The key can change between calls (user edits it in settings).
        # with_options copies the client but keeps its connection pool.
        return self._client.with_options(
            api_key=request.api_key,
            timeout=request.timeout,
        )

    async def send(self, request: TransportRequest) -> TransportResponse:
        client = self._client_for(request)

        try:
            raw = await client.messages.with_raw_response.create(**request.payload)
        except anthropic.APIStatusError as e:
            return TransportResponse(
                status_code=e.status_code,
                headers=dict(e.response.headers),
                body=_status_error_body(e),
            )
        except anthropic.APITimeoutError as e:
            raise RequestTimeout(str(e)) from e
        except anthropic.APIConnectionError as e:
            raise NoConnection(str(e)) from e

        response = raw.http_response
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    @asynccontextmanager
    async def stream(self, request: TransportRequest) -> AsyncIterator[TransportStream]:
        client = self._client_for(request)

        async with AsyncExitStack() as stack:
            try:
                response = await stack.enter_async_context(
                    client.messages.with_streaming_response.create(**request.payload)
                )
            except anthropic.APIStatusError as e:
                yield _ErrorStream(e.status_code, dict(e.response.headers), _status_error_body(e))
                return
            except anthropic.APITimeoutError as e:
                raise RequestTimeout(str(e)) from e
            except anthropic.APIConnectionError as e:
                raise NoConnection(str(e)) from e

            logger.debug("Opened completion stream", extra={"status": response.status_code})
            yield _SDKStream(response)

    async def aclose(self) -> None:
        await self._client.close()
