"""Key/secret generation for new sessions."""

import secrets
from typing import Callable

from app.domain import Identity

MIN_TOKEN_BYTES = 16  # 128 bits

TokenSource = Callable[[int], str]


class IdentityIssuer:
    """Issue independent, URL-safe key/secret pairs.

    ``token_source`` takes a byte count and returns a URL-safe token; it
    defaults to :func:`secrets.token_urlsafe` and is injectable so tests can
    produce predictable identities. The key and secret are two separate
    draws with no relationship between them.
    """

    def __init__(
        self,
        key_bytes: int = 16,
        secret_bytes: int = 32,
        token_source: TokenSource = secrets.token_urlsafe,
    ) -> None:
        if key_bytes < MIN_TOKEN_BYTES or secret_bytes < MIN_TOKEN_BYTES:
            raise ValueError(f"tokens need at least {MIN_TOKEN_BYTES} bytes of entropy")
        self.key_bytes = key_bytes
        self.secret_bytes = secret_bytes
        self._token_source = token_source

    def issue(self) -> Identity:
        """Draw a fresh identity. Registration is the caller's job."""
        key = self._token_source(self.key_bytes)
        secret = self._token_source(self.secret_bytes)
        while secret == key:
            secret = self._token_source(self.secret_bytes)
        return Identity(key=key, secret=secret)
