"""Failure taxonomy for the session synchronization core.

Every error here is scoped to a single operation on a single session. The
HTTP layer maps them onto status codes; nothing in the core treats them as
fatal to the process.
"""


class SessionError(Exception):
    """Base class for all session synchronization failures."""


class NotFound(SessionError):
    """The key or secret is unknown, or the session has already been erased."""

    def __init__(self, message: str = "Unknown session") -> None:
        super().__init__(message)


class InvalidValue(SessionError):
    """A submitted value violates its parameter's type or constraints."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class CapacityExceeded(SessionError):
    """The session table is full; the device should retry later."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Session limit of {limit} reached")
        self.limit = limit


class MalformedSchema(SessionError):
    """A new-session schema document is structurally invalid."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
