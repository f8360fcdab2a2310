import threading
import unittest

from app.domain import parse_definitions
from app.errors import NotFound
from app.reaper import ExpiryReaper
from app.session_store.memory import InMemorySessionStore


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def _schema():
    return parse_definitions([{"name": "a", "title": "A", "type": "string", "value": "x"}])


class _FailingStore:
    def evict_expired(self, retention_seconds):
        raise RuntimeError("boom")


class _CountingStore:
    def __init__(self):
        self.calls = 0
        self.swept = threading.Event()

    def evict_expired(self, retention_seconds):
        self.calls += 1
        self.swept.set()
        return 0


class TestExpiryReaper(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemorySessionStore(clock=self.clock)
        self.reaper = ExpiryReaper(self.store, retention_seconds=86400, interval_seconds=60)

    def test_sweep_never_evicts_inside_retention(self):
        identity = self.store.create(_schema())
        self.clock.now = 86400
        self.assertEqual(self.reaper.sweep(), 0)
        self.assertEqual(self.store.get_by_key(identity.key).revision, 0)

    def test_expired_session_survives_until_next_sweep(self):
        identity = self.store.create(_schema())
        self.clock.now = 86401
        # No lazy expiry: still reachable before a sweep runs.
        self.store.touch(secret=identity.secret)
        self.clock.now = 86401 * 2
        self.assertEqual(self.reaper.sweep(), 1)
        with self.assertRaises(NotFound):
            self.store.get_by_key(identity.key)
        with self.assertRaises(NotFound):
            self.store.poll(identity.secret, 0)

    def test_touched_session_is_kept(self):
        stale = self.store.create(_schema())
        self.clock.now = 50000
        active = self.store.create(_schema())
        self.clock.now = 90000
        self.assertEqual(self.reaper.sweep(), 1)
        with self.assertRaises(NotFound):
            self.store.get_by_key(stale.key)
        self.assertEqual(self.store.get_by_key(active.key).revision, 0)

    def test_sweep_swallows_store_errors(self):
        reaper = ExpiryReaper(_FailingStore(), retention_seconds=1, interval_seconds=1)
        self.assertEqual(reaper.sweep(), 0)

    def test_background_thread_sweeps_and_stops(self):
        store = _CountingStore()
        reaper = ExpiryReaper(store, retention_seconds=1, interval_seconds=0.01)
        reaper.start()
        try:
            self.assertTrue(reaper.running)
            self.assertTrue(store.swept.wait(2))
        finally:
            reaper.stop()
        self.assertFalse(reaper.running)
        self.assertGreaterEqual(store.calls, 1)


if __name__ == "__main__":
    unittest.main()
