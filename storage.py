"""storage.py

Small JSON key-value store for the state the mobile client persists locally
(cart blob, recently viewed products, preferences, exchange-rate cache).

Each key holds one JSON-serializable value. With a path the whole store is a
single JSON object on disk, rewritten on every change; without one it lives in
memory for the life of the process.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


def read_json_object(path: Path) -> dict[str, Any]:
    """Parse ``path`` as a JSON object. Raises OSError/ValueError otherwise."""
    with path.open("r", encoding="utf-8") as fp:
        data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError("top-level JSON value must be an object")
    return data


def write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fp:
        json.dump(data, fp, indent=2)
    os.replace(tmp, path)


def backup_unreadable(path: Path) -> Optional[Path]:
    """Rename an unreadable JSON file to ``<name>.bad-<timestamp>``; returns the new path."""
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    bad_path = path.with_suffix(path.suffix + f".bad-{ts}")
    try:
        path.rename(bad_path)
    except OSError as e:
        logging.warning("Could not back up unreadable file %s: %s", path, e)
        return None
    logging.warning("Backed up unreadable file %s to %s", path, bad_path)
    return bad_path


class KeyValueStore:
    def __init__(self, path: Optional[Path | str] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path or not self.path.exists():
            return {}
        try:
            return read_json_object(self.path)
        except (OSError, ValueError) as exc:
            logging.error("Could not read client state %s: %s", self.path, exc)
            backup_unreadable(self.path)
            return {}

    def _commit(self, data: dict[str, Any]) -> None:
        # Caller holds the lock. Memory only changes once the disk write succeeded.
        if self.path:
            write_json_atomic(self.path, data)
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            # Callers get a copy, never the stored object.
            return json.loads(json.dumps(self._data[key]))

    def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)  # fail before touching state
        with self._lock:
            self._commit({**self._data, key: json.loads(encoded)})

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._commit({k: v for k, v in self._data.items() if k != key})

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)
