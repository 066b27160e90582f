"""Session persistence.

A session is saved as one JSON snapshot under a single string key in a
durable key-value store. Writes always replace the whole snapshot; there is
no partial or merge update.

Directory layout of JsonFileStore:

    {base}/
      {key}.json      ← raw stored string for that key
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from taletree.models import STORAGE_KEY, Snapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------

class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class JsonFileStore:
    """One file per key under a base directory."""

    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    def _file(self, key: str) -> Path:
        return self._base / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._file(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        # write-then-rename so a crash mid-write never leaves half a snapshot
        path = self._file(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._file(key).unlink(missing_ok=True)


class MemoryStore:
    """Non-durable store, for tests and throwaway sessions."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------

class SessionStore:
    """Save, load and clear the session snapshot under a versioned key."""

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEY) -> None:
        self._store = store
        self._key = key

    def save(self, snapshot: Snapshot) -> None:
        self._store.set(self._key, snapshot.model_dump_json())
        logger.debug("saved snapshot key=%s state=%s", self._key, snapshot.gameState)

    def load(self) -> Snapshot | None:
        """Return the stored snapshot, or None when absent or invalid."""
        try:
            raw = self._store.get(self._key)
            if raw is None:
                return None
            data = json.loads(raw)
            return Snapshot.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Save file corrupted, ignoring it: %s", e)
            return None

    def clear(self) -> None:
        self._store.delete(self._key)
