"""Cache protocol shared by the local and distributed backends."""

from typing import Optional, Protocol


class Cache(Protocol):
    """Key/value store with per-entry TTL.

    Implementations must be safe to call from many threads. A read after
    an entry's expiry is a miss, never a stale hit. Writes are idempotent
    upserts; concurrent writers to the same key resolve last-writer-wins.
    """

    def get(self, key: str) -> Optional[bytes]:
        """Return the payload, or None on a miss."""
        ...

    def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern and return how many were removed."""
        ...
