"""Background eviction of sessions that outlived the retention window."""

import threading
from typing import Optional

from app.session_store.base import SessionStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="reaper")


class ExpiryReaper:
    """Periodically erase sessions idle for longer than ``retention_seconds``.

    Sweeps run on a daemon thread every ``interval_seconds``. A sweep never
    raises: failures are logged and whatever was left behind is handled by the
    next cycle. ``sweep()`` may also be called directly.
    """

    def __init__(self, store: SessionStore, retention_seconds: float, interval_seconds: float) -> None:
        self.store = store
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep(self) -> int:
        """Run one eviction pass and return how many sessions were erased."""
        try:
            evicted = self.store.evict_expired(self.retention_seconds)
        except Exception as exc:
            logger.warning(f"Expiry sweep failed; will retry next cycle: {exc}")
            return 0
        if evicted:
            logger.info(f"Evicted {evicted} expired session(s)")
        return evicted

    def start(self) -> None:
        """Start the sweep thread if it is not already running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="expiry-reaper", daemon=True)
        self._thread.start()
        logger.info(
            f"Expiry reaper started (retention={self.retention_seconds}s, interval={self.interval_seconds}s)"
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the sweep thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Expiry reaper stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.sweep()
