"""Session storage backends."""

from .base import SessionStore
from .memory import InMemorySessionStore, SessionRecord

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "SessionRecord",
]
