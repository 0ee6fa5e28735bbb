"""
Claude completion client.

This module turns conversations into Messages API calls and responses
into values the app can use:
1. Builds request bodies (role-tagged turns in the order given)
2. Decodes single-shot responses into a Completion
3. Parses the server-sent event stream into text chunks
4. Retries a non-streaming call once after a 5xx
5. Maps every failure onto the closed set of errors in .errors

It knows about Claude's wire format but nothing about coaching.
"""

import asyncio
import logging
from typing import AsyncGenerator, Awaitable, Callable, Mapping, Optional, Sequence

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sage.config.settings import Settings
from sage.core.coaching.chat import ChatModelClient
from sage.core.coaching.models import Message, Role
from sage.infrastructure.credentials import CredentialStore

from .errors import (
    CompletionClientError,
    DecodingFailed,
    HTTPError,
    InvalidCredential,
    MissingCredential,
    RateLimited,
    UnexpectedResponse,
)
from .transport import AnthropicTransport, Transport, TransportRequest, TransportResponse
from .wire import (
    STREAM_DONE,
    Completion,
    CompletionRequest,
    WireMessage,
    parse_error_message,
    parse_stream_line,
)


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_CONVERSATION_MAX_TOKENS = 2048
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 1


def parse_retry_after(headers: Mapping[str, str]) -> Optional[float]:
    """Seconds from a Retry-After header, or None if absent or not a number."""
    value = None
    for name, header_value in headers.items():
        if name.lower() == "retry-after":
            value = header_value
            break
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def map_status_error(
    status_code: int,
    body: bytes,
    headers: Optional[Mapping[str, str]] = None,
) -> CompletionClientError:
    """Typed error for a non-2xx status."""
    if status_code == 401:
        return InvalidCredential()
    if status_code == 429:
        return RateLimited(retry_after=parse_retry_after(headers or {}))
    return HTTPError(status_code, parse_error_message(body))


class _ServerError(Exception):
    """A 5xx response; the only outcome the non-streaming path retries."""

    def __init__(self, response: TransportResponse) -> None:
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception()
    logger.warning(
        "Server error, retrying",
        extra={
            "status": error.response.status_code,
            "attempt": retry_state.attempt_number,
            "delay": retry_state.next_action.sleep,
        }
    )


class CompletionClient(ChatModelClient):
    """
    Implementation of ChatModelClient against the Claude Messages API.

    Each call is independent: it reads the API key and builds its own
    request, so any number of calls can be in flight at once. Connections
    come from the transport's shared pool; aclose() releases it.
    """

    def __init__(
        self,
        transport: Transport,
        credentials: CredentialStore,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        conversation_max_tokens: int = DEFAULT_CONVERSATION_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_tokens < 1 or conversation_max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        self._transport = transport
        self._credentials = credentials
        self._model = model
        self._max_tokens = max_tokens
        self._conversation_max_tokens = conversation_max_tokens
        self._timeout = timeout
        self._max_retries = max_retries
        self._sleep = sleep

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """Send a single user message and return the full reply."""
        api_key = self._fetch_api_key()

        request = CompletionRequest(
            model=model or self._model,
            max_tokens=max_tokens or self._max_tokens,
            system=system_prompt,
            messages=[WireMessage(role=Role.USER.value, content=prompt)],
        )

        return await self._perform(self._transport_request(request, api_key))

    async def complete_conversation(
        self,
        history: Sequence[Message],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Completion:
        """
        Send a full conversation and return the assistant's next reply.

        history is the ordered list of prior turns ending with the new
        user turn. It is sent exactly as given.
        """
        api_key = self._fetch_api_key()

        request = CompletionRequest(
            model=model or self._model,
            max_tokens=max_tokens or self._conversation_max_tokens,
            system=system_prompt,
            messages=self._wire_messages(history),
        )

        return await self._perform(self._transport_request(request, api_key))

    def stream(
        self,
        history: Sequence[Message],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream the assistant's next reply as text chunks.

        The API key is checked here, before anything touches the network.
        The returned iterator is lazy and single-pass: the request is only
        sent when iteration starts, and leaving iteration early (break,
        aclose(), task cancellation) closes the connection.

        Streaming calls are never retried; the caller decides whether to
        try again.
        """
        api_key = self._fetch_api_key()

        request = CompletionRequest(
            model=model or self._model,
            max_tokens=max_tokens or self._conversation_max_tokens,
            system=system_prompt,
            messages=self._wire_messages(history),
            stream=True,
        )

        return self._iter_stream(self._transport_request(request, api_key))

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self._transport.aclose()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _fetch_api_key(self) -> str:
        key = self._credentials.get()
        if not key:
            raise MissingCredential()
        return key

    def _wire_messages(self, history: Sequence[Message]) -> list[WireMessage]:
        return [
            WireMessage(role=Role(message.role).value, content=message.content)
            for message in history
        ]

    def _transport_request(self, request: CompletionRequest, api_key: str) -> TransportRequest:
        return TransportRequest(
            api_key=api_key,
            payload=request.to_payload(),
            timeout=self._timeout,
        )

    async def _perform(self, request: TransportRequest) -> Completion:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_ServerError),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=1, min=1),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

        try:
            response = await retrying(self._send_once, request)
        except _ServerError as e:
            response = e.response

        status = response.status_code
        if 200 <= status <= 299:
            return self._decode(response.body)

        error = map_status_error(status, response.body, response.headers)
        logger.error(
            "Completion request failed",
            extra={"status": status, "error": str(error)}
        )
        raise error

    async def _send_once(self, request: TransportRequest) -> TransportResponse:
        response = await self._transport.send(request)

        if response.status_code is None:
            raise UnexpectedResponse("Non-HTTP response")
        if 500 <= response.status_code <= 599:
            raise _ServerError(response)
        return response

    def _decode(self, body: bytes) -> Completion:
        try:
            return Completion.model_validate_json(body)
        except ValidationError as e:
            raise DecodingFailed(str(e)) from e

    async def _iter_stream(self, request: TransportRequest) -> AsyncGenerator[str, None]:
        # The transport context is the scoped resource: however this
        # generator ends, leaving the block closes the connection.
        async with self._transport.stream(request) as response:
            if response.status_code is None:
                raise UnexpectedResponse("Non-HTTP response")

            if not 200 <= response.status_code <= 299:
                body = await response.read()
                error = map_status_error(response.status_code, body, response.headers)
                logger.error(
                    "Completion stream rejected",
                    extra={"status": response.status_code, "error": str(error)}
                )
                raise error

            async for line in response.lines():
                chunk = parse_stream_line(line)
                if chunk is STREAM_DONE:
                    break
                if chunk:
                    yield chunk


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_completion_client(
    settings: Settings,
    credentials: CredentialStore,
    transport: Optional[Transport] = None,
) -> CompletionClient:
    """
    Build a CompletionClient from application settings.

    Pass a transport to replace the network (tests, recorded sessions).
    """
    return CompletionClient(
        transport=transport or AnthropicTransport(base_url=settings.anthropic_base_url),
        credentials=credentials,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
        conversation_max_tokens=settings.anthropic_conversation_max_tokens,
        timeout=settings.anthropic_timeout_seconds,
        max_retries=settings.anthropic_max_retries,
    )
