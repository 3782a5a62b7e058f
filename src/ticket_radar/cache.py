"""Caching abstraction for session data."""
from typing import Generic, TypeVar

T = TypeVar('T')


class SessionCache(Generic[T]):
    """In-memory cache that lives exactly as long as the session.

    Customer data must never be written anywhere, so there is no file or
    storage backend: entries have no expiry and vanish on ``clear()``.
    """

    def __init__(self):
        self._items: dict[str, T] = {}

    @staticmethod
    def _key(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str) -> T | None:
        """Get cached item, returning None if not found."""
        return self._items.get(self._key(key))

    def save(self, key: str, value: T) -> None:
        """Save item to cache."""
        self._items[self._key(key)] = value

    def exists(self, key: str) -> bool:
        """Check if item exists in cache."""
        return self._key(key) in self._items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
