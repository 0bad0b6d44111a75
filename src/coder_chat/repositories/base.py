"""Base storage interface."""

from abc import ABC, abstractmethod
from typing import Optional


class StorageError(Exception):
    """Raised when the backing store cannot be read or written."""


class Storage(ABC):
    """String key/value store holding the serialized ledger."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value under a key."""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key if present."""
        pass

    def set_items(self, items: dict) -> None:
        """Store several keys together; backends may write them in one go."""
        for key, value in items.items():
            self.set_item(key, value)
