"""
In-memory registry of access token identifiers issued by this process.
"""
import threading
import time
from typing import Dict, Optional

DEFAULT_TTL = 3600


class IssuedTokenRegistry:
    """
    Time-bounded allow-list of issued token ids, stored as {token_id: expires_at}.

    A token is accepted downstream only while its id is present here. Entries
    are never revoked, they simply fall out once their expiry passes; expired
    entries are purged on every register/lookup so the map stays bounded by the
    number of tokens alive in one expiry window.
    """

    def __init__(self, default_ttl: int = DEFAULT_TTL, clock=time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._storage: Dict[str, float] = {}
        self._lock = threading.Lock()

    def register(self, token_id: str, expires_at: Optional[float] = None) -> None:
        """
        Record an issued token id. Idempotent.

        Args:
            token_id: The jti of the issued token.
            expires_at: UNIX time after which the entry lapses. Defaults to
                now + default_ttl. Re-registering keeps the later expiry.
        """
        if not token_id:
            raise ValueError("token_id must not be empty")

        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if expires_at is None:
                expires_at = now + self.default_ttl
            self._storage[token_id] = max(expires_at, self._storage.get(token_id, 0))

    def is_registered(self, token_id: Optional[str]) -> bool:
        """Return True if token_id was issued here and has not lapsed."""
        if not token_id:
            return False

        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            return token_id in self._storage

    def discard(self, token_id: str) -> None:
        """Remove an entry if present."""
        with self._lock:
            self._storage.pop(token_id, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._storage)

    def _purge_expired(self, now: float) -> None:
        """Remove all lapsed entries. Caller holds the lock."""
        expired = [
            token_id for token_id, expires_at in self._storage.items()
            if now >= expires_at
        ]
        for token_id in expired:
            del self._storage[token_id]
