"""In-memory storage implementation."""

from typing import Dict, Optional

import structlog

from .base import Storage

logger = structlog.get_logger()


class InMemoryStorage(Storage):
    """Dict-backed storage for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})
        logger.debug("storage_initialized", backend="memory", keys=len(self._items))

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of everything stored, for inspection."""
        return dict(self._items)
