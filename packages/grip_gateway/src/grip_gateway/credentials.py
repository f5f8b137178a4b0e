"""
Credential store interface shared by the gateway and the session layer.

The gateway only ever reads and clears the credential; writing it is the
session manager's job after a successful login. Implementations must be
synchronous and must not cache: a `set` or `clear` is visible to the very
next `get`, including one made by a request that is already in flight.
"""

import logging
from typing import Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """A single slot holding an opaque bearer credential."""

    def get(self) -> str | None:
        """Return the stored credential, or None when the slot is empty."""
        ...

    def set(self, credential: str) -> bool:
        """Store the credential. Returns False if it could not be written."""
        ...

    def clear(self) -> bool:
        """Empty the slot. Returns False if it could not be cleared."""
        ...


class MemoryCredentialStore:
    """Process-local credential store.

    Holds the credential in memory only; nothing survives a restart.
    Useful for tests and for short-lived scripts.
    """

    def __init__(self, credential: str | None = None) -> None:
        self._credential = credential

    def get(self) -> str | None:
        return self._credential

    def set(self, credential: str) -> bool:
        self._credential = credential
        logger.debug("Credential stored in memory")
        return True

    def clear(self) -> bool:
        self._credential = None
        logger.debug("In-memory credential cleared")
        return True
