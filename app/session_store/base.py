"""Shared protocol for session storage backends."""

from typing import Any, List, Mapping, Optional, Protocol

from app.domain import Identity, ParameterDefinition, SessionSnapshot, UpdateResult, Values


class SessionStore(Protocol):
    """Protocol for session storage backends.

    Every method is atomic with respect to a single session. Lookups by
    ``key`` serve the browser, lookups by ``secret`` serve the device. Unknown
    or erased identities raise ``app.errors.NotFound``.
    """

    def create(self, definitions: List[ParameterDefinition]) -> Identity:
        """Register a new session at revision 0 and return its identity."""

    def get_by_key(self, key: str) -> SessionSnapshot:
        """Return a snapshot of the session addressed by ``key``, touching it."""

    def get_by_secret(self, secret: str) -> SessionSnapshot:
        """Return a snapshot of the session addressed by ``secret``, touching it."""

    def update_values(
        self,
        key: str,
        new_values: Mapping[str, Any],
        revision_expected: Optional[int] = None,
    ) -> UpdateResult:
        """Apply a batch of human edits all-or-nothing and bump the revision."""

    def poll(self, secret: str, revision: int) -> Optional[Values]:
        """Return None if ``revision`` is current, otherwise the full value set."""

    def acknowledge(self, secret: str, at_revision: int) -> bool:
        """Erase the session if ``at_revision`` is current; return whether it was erased."""

    def erase(self, secret: str) -> None:
        """Erase the session unconditionally."""

    def touch(self, *, key: Optional[str] = None, secret: Optional[str] = None) -> None:
        """Refresh the last-touched time without any other effect."""

    def evict_expired(self, retention_seconds: float) -> int:
        """Erase sessions idle for longer than ``retention_seconds``; return the count."""

    def count(self) -> int:
        """Return the number of live sessions."""

    def clear(self) -> None:
        """Drop all sessions."""
