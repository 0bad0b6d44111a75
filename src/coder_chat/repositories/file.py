"""JSON file storage implementation."""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

import structlog

from .base import Storage, StorageError

logger = structlog.get_logger()


class JsonFileStorage(Storage):
    """Keeps every key in a single JSON object on disk.

    Writes go to a temporary file in the same directory followed by
    ``os.replace``, so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.path}")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e
        logger.debug("storage_written", path=str(self.path), keys=len(data))

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        self.set_items({key: value})

    def remove_item(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)

    def set_items(self, items: dict) -> None:
        try:
            data = self._read()
        except StorageError:
            logger.warning("storage_overwriting_unreadable_file", path=str(self.path))
            data = {}
        data.update(items)
        self._write(data)
