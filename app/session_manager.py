"""Synchronization protocol facade over the process-wide session store.

The store is created at import time from ``settings`` and lives for the
lifetime of the process; nothing is persisted across restarts. Request
handlers call the functions below rather than the store directly. Tests swap
in a fresh store with ``use_in_memory_store_for_tests``.

Per session the protocol moves Fresh -> Dirty -> Erased:

- ``new_session`` creates a Fresh session at revision 0.
- ``submit_update`` makes it Dirty and bumps the revision.
- ``poll`` returns None while the device is current, else the full value set.
- ``acknowledge`` at the current revision erases it.
- the expiry reaper erases anything left idle past the retention window.
"""
import time
from typing import Any, Callable, Mapping, Optional

from app.config import settings
from app.domain import Identity, UpdateResult, Values, parse_definitions
from app.identity import IdentityIssuer
from app.reaper import ExpiryReaper
from app.session_store import InMemorySessionStore, SessionStore
from utils.logging_utils import get_tagged_logger, mask_token

logger = get_tagged_logger(__name__, tag="session_manager")


def _init_store() -> SessionStore:
    """Initialize the backing session store based on configuration."""
    logger.debug(f"Initializing session store: max_sessions={settings.max_sessions}")
    issuer = IdentityIssuer(key_bytes=settings.key_bytes, secret_bytes=settings.secret_bytes)
    return InMemorySessionStore(max_sessions=settings.max_sessions, issuer=issuer)


_store: SessionStore = _init_store()
_reaper: Optional[ExpiryReaper] = None


def use_in_memory_store_for_tests(
    max_sessions: int = 10000,
    clock: Callable[[], float] = time.monotonic,
    issuer: Optional[IdentityIssuer] = None,
) -> InMemorySessionStore:
    """Override the store for tests to ensure isolation and determinism."""
    global _store
    store = InMemorySessionStore(max_sessions=max_sessions, issuer=issuer, clock=clock)
    _store = store
    return store


def get_store() -> SessionStore:
    """Return the active session store."""
    return _store


def start_reaper() -> ExpiryReaper:
    """Start the background expiry sweep against the active store."""
    global _reaper
    if _reaper is None or _reaper.store is not _store:
        stop_reaper()
        _reaper = ExpiryReaper(
            _store,
            retention_seconds=settings.session_retention_seconds,
            interval_seconds=settings.reaper_interval_seconds,
        )
    _reaper.start()
    return _reaper


def stop_reaper() -> None:
    """Stop the background expiry sweep if it is running."""
    global _reaper
    if _reaper is not None:
        _reaper.stop()
        _reaper = None


def new_session(schema_document: Any) -> Identity:
    """Validate a device schema document and open a session for it.

    Raises MalformedSchema before anything is registered, or
    CapacityExceeded when the session table is full.
    """
    definitions = parse_definitions(schema_document)
    return _store.create(definitions)


def poll(secret: str, revision: int) -> Optional[Values]:
    """Device poll: None if ``revision`` is current, otherwise the full value set."""
    return _store.poll(secret, revision)


def get_settings(key: str) -> Values:
    """Return the current revision and definitions for the browser."""
    snapshot = _store.get_by_key(key)
    return Values(revision=snapshot.revision, values=snapshot.values)


def submit_update(key: str, values: Mapping[str, Any], revision_expected: Optional[int] = None) -> UpdateResult:
    """Apply human edits; the returned result is the authoritative post-update state."""
    result = _store.update_values(key, values, revision_expected)
    logger.debug(f"Session {mask_token(key)} now at revision {result.revision}")
    return result


def acknowledge(secret: str, revision: int) -> bool:
    """Device confirms receipt of ``revision``; returns True if the session was erased."""
    return _store.acknowledge(secret, revision)


def end_session(secret: str) -> None:
    """Device abandons the session; it is erased whatever its revision."""
    _store.erase(secret)


def touch(*, key: Optional[str] = None, secret: Optional[str] = None) -> None:
    """Keep a session alive without reading or changing it."""
    _store.touch(key=key, secret=secret)


def session_count() -> int:
    """Number of live sessions in the backing store."""
    return _store.count()


def clear_sessions():
    """Clear all sessions from the backing store (dev/testing)."""
    return _store.clear()
