"""Thread-safe in-memory session store with per-session locking.

Two dictionaries index the same records, one by ``key`` and one by
``secret``. A short-lived index lock guards only those dictionaries; all
record state is guarded by the record's own lock, so operations on unrelated
sessions never wait for each other beyond a dictionary lookup.

Lock order: a record lock may be held while taking the index lock, never the
other way round.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from app.domain import Identity, ParameterDefinition, SessionSnapshot, UpdateResult, Values
from app.errors import CapacityExceeded, InvalidValue, NotFound
from app.identity import IdentityIssuer
from app.session_store.base import SessionStore

from utils.logging_utils import get_tagged_logger, mask_token

logger = get_tagged_logger(__name__, tag="session_store/in_memory_session_store")

_MAX_ISSUE_ATTEMPTS = 10


@dataclass
class SessionRecord:
    """Mutable session state. Only the store ever holds a reference to one."""
    identity: Identity
    definitions: List[ParameterDefinition]
    created_at: float
    last_touched_at: float
    revision: int = 0
    dirty: bool = False
    erased: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def values(self) -> Values:
        return Values(revision=self.revision, values=_copy_definitions(self.definitions))

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            revision=self.revision,
            dirty=self.dirty,
            values=_copy_definitions(self.definitions),
            created_at=self.created_at,
            last_touched_at=self.last_touched_at,
        )


def _copy_definitions(definitions: List[ParameterDefinition]) -> List[ParameterDefinition]:
    return [definition.model_copy(deep=True) for definition in definitions]


class InMemorySessionStore(SessionStore):
    """Process-local session registry. Contents are lost on restart."""

    def __init__(
        self,
        max_sessions: int = 10000,
        issuer: Optional[IdentityIssuer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize with a session cap, an identity issuer and a clock (seconds)."""
        logger.debug("Initializing InMemorySessionStore")
        self.max_sessions = max_sessions
        self._issuer = issuer or IdentityIssuer()
        self._clock = clock
        self._by_key: Dict[str, SessionRecord] = {}
        self._by_secret: Dict[str, SessionRecord] = {}
        self._index_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lookup(self, index: Dict[str, SessionRecord], token: str) -> SessionRecord:
        with self._index_lock:
            record = index.get(token)
        if record is None:
            raise NotFound()
        return record

    @contextmanager
    def _locked(self, index: Dict[str, SessionRecord], token: str) -> Iterator[SessionRecord]:
        """Hold the record's lock for the duration of the block.

        A record erased between the index lookup and lock acquisition is
        reported as NotFound.
        """
        record = self._lookup(index, token)
        with record.lock:
            if record.erased:
                raise NotFound()
            yield record

    def _touch(self, record: SessionRecord) -> None:
        record.last_touched_at = self._clock()

    def _erase_locked(self, record: SessionRecord) -> None:
        """Remove a record from both indices. Caller holds ``record.lock``."""
        record.erased = True
        with self._index_lock:
            if self._by_key.get(record.identity.key) is record:
                del self._by_key[record.identity.key]
            if self._by_secret.get(record.identity.secret) is record:
                del self._by_secret[record.identity.secret]

    # ------------------------------------------------------------------
    # SessionStore
    # ------------------------------------------------------------------

    def create(self, definitions: List[ParameterDefinition]) -> Identity:
        """Register a new session and return its identity."""
        copied = _copy_definitions(definitions)
        for _ in range(_MAX_ISSUE_ATTEMPTS):
            identity = self._issuer.issue()
            now = self._clock()
            record = SessionRecord(identity=identity, definitions=copied, created_at=now, last_touched_at=now)
            with self._index_lock:
                if len(self._by_secret) >= self.max_sessions:
                    logger.warning(f"Session table full ({self.max_sessions} sessions)")
                    raise CapacityExceeded(self.max_sessions)
                if identity.key in self._by_key or identity.secret in self._by_secret:
                    continue
                self._by_key[identity.key] = record
                self._by_secret[identity.secret] = record
            logger.info(f"Created session {mask_token(identity.key)} with {len(copied)} parameters")
            return identity
        raise RuntimeError("Failed to issue a unique session identity")

    def get_by_key(self, key: str) -> SessionSnapshot:
        """Return a snapshot of the session for the browser, touching it."""
        with self._locked(self._by_key, key) as record:
            self._touch(record)
            return record.snapshot()

    def get_by_secret(self, secret: str) -> SessionSnapshot:
        """Return a snapshot of the session for the device, touching it."""
        with self._locked(self._by_secret, secret) as record:
            self._touch(record)
            return record.snapshot()

    def update_values(
        self,
        key: str,
        new_values: Mapping[str, Any],
        revision_expected: Optional[int] = None,
    ) -> UpdateResult:
        """Validate and apply a batch of edits; either all apply or none do."""
        with self._locked(self._by_key, key) as record:
            positions = {definition.name: idx for idx, definition in enumerate(record.definitions)}
            staged = list(record.definitions)
            for name, raw in new_values.items():
                idx = positions.get(name)
                if idx is None:
                    raise InvalidValue(name, "unknown parameter")
                try:
                    staged[idx] = staged[idx].with_value(raw)
                except ValueError as exc:
                    logger.debug(f"Rejected value for {name!r} on {mask_token(key)}: {exc}")
                    raise InvalidValue(name, str(exc)) from exc

            conflict = revision_expected is not None and revision_expected != record.revision
            record.definitions = staged
            record.revision += 1
            record.dirty = True
            self._touch(record)
            if conflict:
                logger.info(
                    f"Session {mask_token(key)} edited at revision {revision_expected}, "
                    f"server was at {record.revision - 1}"
                )
            values = record.values()
        return UpdateResult(
            revision=values.revision,
            values=values.values,
            conflict=conflict,
            expected_revision=revision_expected,
        )

    def poll(self, secret: str, revision: int) -> Optional[Values]:
        """Return None when the device is current, otherwise the whole definition set."""
        with self._locked(self._by_secret, secret) as record:
            self._touch(record)
            if revision == record.revision:
                record.dirty = False
                return None
            return record.values()

    def acknowledge(self, secret: str, at_revision: int) -> bool:
        """Erase on acknowledgment of the current revision.

        A stale acknowledgment keeps the session dirty; one ahead of the
        server's revision changes nothing.
        """
        with self._locked(self._by_secret, secret) as record:
            if at_revision == record.revision:
                self._erase_locked(record)
                logger.info(f"Session {mask_token(record.identity.key)} acknowledged at revision {at_revision}")
                return True
            self._touch(record)
            if at_revision > record.revision:
                # Device claims a revision the server never issued; state is left as is.
                logger.warning(
                    f"Acknowledgment ahead of server for {mask_token(record.identity.key)}: "
                    f"{at_revision} > {record.revision}"
                )
                return False
            record.dirty = True
            logger.debug(
                f"Stale acknowledgment for {mask_token(record.identity.key)}: "
                f"{at_revision} < {record.revision}"
            )
            return False

    def erase(self, secret: str) -> None:
        """Erase the session regardless of its revision."""
        with self._locked(self._by_secret, secret) as record:
            self._erase_locked(record)
            logger.info(f"Session {mask_token(record.identity.key)} ended by device")

    def touch(self, *, key: Optional[str] = None, secret: Optional[str] = None) -> None:
        """Refresh the last-touched time of the session addressed by key or secret."""
        if (key is None) == (secret is None):
            raise ValueError("touch() needs exactly one of key or secret")
        index, token = (self._by_key, key) if key is not None else (self._by_secret, secret)
        with self._locked(index, token) as record:
            self._touch(record)

    def evict_expired(self, retention_seconds: float) -> int:
        """Erase every session idle for longer than ``retention_seconds``.

        Records whose lock is currently held are skipped; they are either in
        use (and about to be touched) or will be picked up by the next sweep.
        """
        with self._index_lock:
            records = list(self._by_secret.values())
        evicted = 0
        for record in records:
            if not record.lock.acquire(blocking=False):
                continue
            try:
                if record.erased:
                    continue
                if self._clock() - record.last_touched_at > retention_seconds:
                    self._erase_locked(record)
                    evicted += 1
            finally:
                record.lock.release()
        return evicted

    def count(self) -> int:
        """Return the number of live sessions."""
        with self._index_lock:
            return len(self._by_secret)

    def clear(self) -> None:
        """Clear all sessions."""
        with self._index_lock:
            records = list(self._by_secret.values())
            self._by_key.clear()
            self._by_secret.clear()
        for record in records:
            record.erased = True
