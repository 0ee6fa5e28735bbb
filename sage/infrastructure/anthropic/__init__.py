"""
Anthropic Claude API client.

Implements the ChatModelClient protocol from core.coaching.chat.
"""

from .client import CompletionClient, create_completion_client
from .errors import (
    CompletionClientError,
    DecodingFailed,
    HTTPError,
    InvalidCredential,
    MissingCredential,
    NoConnection,
    RateLimited,
    RequestTimeout,
    UnexpectedResponse,
)
from .transport import AnthropicTransport, Transport, TransportRequest, TransportResponse
from .wire import Completion

__all__ = [
    "CompletionClient",
    "create_completion_client",
    "Completion",
    "AnthropicTransport",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "CompletionClientError",
    "DecodingFailed",
    "HTTPError",
    "InvalidCredential",
    "MissingCredential",
    "NoConnection",
    "RateLimited",
    "RequestTimeout",
    "UnexpectedResponse",
]
