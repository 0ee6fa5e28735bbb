"""
Errors raised by the completion client.

The set is closed: every failure of a completion call surfaces as one of
these, so callers can map them to user-facing text with a single lookup.
"""

from typing import Optional


class CompletionClientError(Exception):
    """Raised when a completion call fails."""
    pass


class MissingCredential(CompletionClientError):
    """No API key is stored, or the stored key is empty."""

    def __init__(self) -> None:
        super().__init__("No API key available")


class InvalidCredential(CompletionClientError):
    """The API rejected the key (HTTP 401)."""

    def __init__(self) -> None:
        super().__init__("API key was rejected")


class RateLimited(CompletionClientError):
    """HTTP 429. retry_after is the server's hint in seconds, if it sent one."""

    def __init__(self, retry_after: Optional[float] = None) -> None:
        self.retry_after = retry_after
        hint = f" (retry after {retry_after:g}s)" if retry_after is not None else ""
        super().__init__(f"Rate limited{hint}")


class HTTPError(CompletionClientError):
    """Any other non-2xx status, including a 5xx that survived the retry."""

    def __init__(self, status_code: int, message: Optional[str] = None) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


class NoConnection(CompletionClientError):
    """The network is unreachable or the connection dropped."""

    def __init__(self, detail: str = "No network connection") -> None:
        self.detail = detail
        super().__init__(detail)


class RequestTimeout(CompletionClientError):
    """A single network attempt exceeded the client timeout."""

    def __init__(self, detail: str = "Request timed out") -> None:
        self.detail = detail
        super().__init__(detail)


class DecodingFailed(CompletionClientError):
    """The transport succeeded but the body is not the expected shape."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to decode response: {detail}")


class UnexpectedResponse(CompletionClientError):
    """The transport returned something without an HTTP status."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Unexpected response: {detail}")
