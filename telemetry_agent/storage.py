import os
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

QUEUE_KEY = "telemetry.queue"
SESSION_ID_KEY = "telemetry.session_id"
ANONYMOUS_ID_KEY = "telemetry.anonymous_id"
USER_ID_KEY = "telemetry.user_id"


class KeyValueStore(ABC):
    """Durable string values addressed by key, each replaced as a whole."""

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def save(self, key: str, value: str):
        ...

    @abstractmethod
    def delete(self, key: str):
        ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Dict[str, str] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, value: str):
        self.data[key] = value

    def delete(self, key: str):
        self.data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """
    One file per key under ``directory``. Writes go to a temporary file in
    the same directory and are moved into place with ``os.replace``, so a
    crash mid-write leaves the previous value intact.
    """

    def __init__(self, directory):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, value: str):
        fd, tmp_path = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path(key))
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self, key: str):
        path = self._path(key)
        if path.exists():
            path.unlink()
