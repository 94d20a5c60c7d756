"""Disk-backed key/value cache.

The cache is a directory holding one JSON file per named slot.  Every file
is wrapped in a small envelope, ``{"version": N, "data": ...}``, so the
layout can evolve: files written before versioning (a bare list or object)
are read as version 0 and run through ``MIGRATIONS`` up to
``SCHEMA_VERSION``.

Writes go to a temporary file that is then renamed over the slot, so a
crash mid-write leaves the previous contents intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Slot names
HISTORY = "history"
RESULTS = "results"
PARTNERSHIPS = "partnerships"
APP_CREDENTIALS = "app_credentials"
SESSION = "session"

SLOTS = (HISTORY, RESULTS, PARTNERSHIPS, APP_CREDENTIALS, SESSION)


def _v0_to_v1(slot: str, data: Any) -> Any:
    # Unversioned history entries used "date" instead of "created_at".
    if slot == HISTORY and isinstance(data, list):
        migrated = []
        for item in data:
            if isinstance(item, dict) and "created_at" not in item and "date" in item:
                item = {**item, "created_at": item["date"]}
                item.pop("date")
            migrated.append(item)
        return migrated
    return data


MIGRATIONS: Dict[int, Callable[[str, Any], Any]] = {0: _v0_to_v1}


class LocalCache:
    """Named JSON slots stored under ``root``."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, slot: str) -> Path:
        if slot not in SLOTS:
            raise KeyError(f"Unknown cache slot: {slot}")
        return self.root / f"{slot}.json"

    def get(self, slot: str, default: Any = None) -> Any:
        """Return the data stored in ``slot``, or ``default`` if absent."""
        path = self._path(slot)
        if not path.exists():
            return default
        try:
            envelope = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Local cache slot %s is corrupt; ignoring it", slot)
            return default
        if isinstance(envelope, dict) and "version" in envelope and "data" in envelope:
            version, data = int(envelope["version"]), envelope["data"]
        else:
            version, data = 0, envelope
        if version < SCHEMA_VERSION:
            while version < SCHEMA_VERSION:
                data = MIGRATIONS[version](slot, data)
                version += 1
            self.set(slot, data)
        return data

    def set(self, slot: str, data: Any) -> None:
        path = self._path(slot)
        payload = json.dumps({"version": SCHEMA_VERSION, "data": data}, default=str)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{slot}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self, slot: str) -> None:
        self._path(slot).unlink(missing_ok=True)
