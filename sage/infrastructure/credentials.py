"""
Credential store for the Claude API key.

The app keeps exactly one secret. Where it lives (OS keychain, env,
memory) is outside the completion client's concern; the client only
asks for it before every request and treats "nothing stored" as
MissingCredential.
"""

import logging
import threading
from typing import Optional, Protocol


logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """get/set/delete of the single API key."""

    def get(self) -> Optional[str]:
        """The stored key, or None."""
        ...

    def set(self, secret: str) -> None:
        ...

    def delete(self) -> None:
        ...


class InMemoryCredentialStore:
    """
    Process-local credential store.

    Seeded from settings at startup and editable at runtime. Guarded by
    a lock because request handlers may read it while another sets it.
    """

    def __init__(self, secret: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self._secret = secret or None

    def get(self) -> Optional[str]:
        with self._lock:
            return self._secret

    def set(self, secret: str) -> None:
        if not secret or not secret.strip():
            raise ValueError("API key cannot be empty")
        with self._lock:
            self._secret = secret.strip()
        logger.info("API key updated")

    def delete(self) -> None:
        with self._lock:
            self._secret = None
        logger.info("API key removed")
