"""Dual-tier persistence: local cache first, relational store as mirror.

Consistency policy (local wins):

* ``write`` and ``delete`` update the local cache synchronously and never
  fail because of the remote tier.  The remote upsert or delete runs in a
  background task; its errors are logged as warnings and dropped.
* Remote operations on one record run in the order they were issued, and
  an upsert sends the record as the local tier holds it when the upsert
  runs.  Operations on different records run concurrently.
* A deleted id is tombstoned until its remote delete succeeds, so ``read``
  and ``find`` never resurrect it from a lagging or failed remote tier.
* ``read`` merges both tiers by record id.  When an id exists in both, the
  local copy is returned, since the local tier is written first on every
  mutation while the remote tier may lag behind.
* With no remote store configured the application runs in local-only mode.

Known weakness: two processes with separate local caches both believe they
hold the truth, and the remote table ends up with whichever synced last.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from . import local_cache
from .local_cache import LocalCache
from .remote_store import RemoteStore
from .schemas import Partnership

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Key = Tuple[str, str]

REMOTE_ERRORS = (SQLAlchemyError, OSError)


@dataclass(frozen=True)
class Collection:
    name: str
    slot: str
    # Keyed slots hold {id: items}; the others hold a list of records.
    keyed: bool = False
    sort_key: Optional[str] = None


COLLECTIONS: Dict[str, Collection] = {
    "history": Collection("history", local_cache.HISTORY, sort_key="created_at"),
    "results": Collection("results", local_cache.RESULTS, keyed=True),
    "partnerships": Collection("partnerships", local_cache.PARTNERSHIPS, sort_key="posted_date"),
    "app_credentials": Collection("app_credentials", local_cache.APP_CREDENTIALS),
}


def _collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown collection: {name}") from None


def _visible(record: Record, owner_id: Optional[str]) -> bool:
    if owner_id is None:
        return True
    return record.get("owner_id") in (None, owner_id)


class DualTierStore:
    def __init__(self, local: LocalCache, remote: Optional[RemoteStore] = None) -> None:
        self.local = local
        self.remote = remote
        self._pending: Set[asyncio.Task] = set()
        self._chains: Dict[Key, asyncio.Task] = {}
        self._tombstones: Set[Key] = set()

    # -- local tier ---------------------------------------------------------

    def _local_records(self, coll: Collection) -> List[Record]:
        if coll.keyed:
            data = self.local.get(coll.slot, {}) or {}
            return [{"id": key, "items": items} for key, items in data.items()]
        return list(self.local.get(coll.slot, []) or [])

    def _local_upsert(self, coll: Collection, record: Record) -> None:
        if coll.keyed:
            data = self.local.get(coll.slot, {}) or {}
            data[record["id"]] = record.get("items", [])
            self.local.set(coll.slot, data)
            return
        current = self.local.get(coll.slot, []) or []
        self.local.set(coll.slot, [record] + [r for r in current if r.get("id") != record["id"]])

    def _local_delete(self, coll: Collection, record_id: str) -> None:
        if coll.keyed:
            data = self.local.get(coll.slot, {}) or {}
            if data.pop(record_id, None) is not None:
                self.local.set(coll.slot, data)
            return
        current = self.local.get(coll.slot, []) or []
        remaining = [r for r in current if r.get("id") != record_id]
        if len(remaining) != len(current):
            self.local.set(coll.slot, remaining)

    # -- remote tier --------------------------------------------------------

    def _sync(self, collection: str, record_id: str, operation: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Queue a remote operation behind the previous one for the same record."""
        key = (collection, record_id)
        previous = self._chains.get(key)
        task = asyncio.get_running_loop().create_task(self._after(previous, operation))
        self._chains[key] = task
        self._pending.add(task)
        task.add_done_callback(lambda done: self._settle(key, done))
        return task

    def _settle(self, key: Key, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._chains.get(key) is task:
            del self._chains[key]

    @staticmethod
    async def _after(previous: Optional[asyncio.Task], operation: Callable[[], Awaitable[None]]) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        await operation()

    async def _remote_upsert(self, collection: str, record_id: str, owner_id: str) -> None:
        # Send whatever the local tier holds now, not the value at write time.
        record = self.find_local(collection, record_id)
        if record is None:
            return
        try:
            await self.remote.upsert(collection, record, owner_id)
        except REMOTE_ERRORS as exc:
            logger.warning("Remote sync of %s/%s failed: %s", collection, record_id, exc)

    async def _remote_delete(self, collection: str, record_id: str, owner_id: Optional[str]) -> None:
        try:
            await self.remote.delete(collection, record_id, owner_id)
        except REMOTE_ERRORS as exc:
            logger.warning("Remote delete of %s/%s failed: %s", collection, record_id, exc)
            return
        self._tombstones.discard((collection, record_id))

    # -- public API ---------------------------------------------------------

    async def read(self, collection: str, owner_id: Optional[str] = None) -> List[Record]:
        """Return local records merged with remote ones, local winning on id."""
        coll = _collection(collection)
        merged: Dict[str, Record] = {}
        if self.remote is not None:
            try:
                for record in await self.remote.list(collection, owner_id):
                    if (collection, record["id"]) not in self._tombstones:
                        merged[record["id"]] = record
            except REMOTE_ERRORS as exc:
                logger.warning("Remote read of %s failed, using local cache only: %s", collection, exc)
        for record in self._local_records(coll):
            if _visible(record, owner_id):
                merged[record["id"]] = record
        records = list(merged.values())
        if coll.sort_key:
            records.sort(key=lambda r: str(r.get(coll.sort_key) or ""), reverse=True)
        return records

    async def find(
        self, collection: str, record_id: str, owner_id: Optional[str] = None
    ) -> Optional[Record]:
        """Look a record up by id in the local tier, then the remote tier.

        With ``owner_id`` set, records belonging to another owner are
        reported as missing.
        """
        if (collection, record_id) in self._tombstones:
            return None
        record = self.find_local(collection, record_id)
        if record is not None:
            return record if _visible(record, owner_id) else None
        if self.remote is None:
            return None
        try:
            return await self.remote.get(collection, record_id, owner_id)
        except REMOTE_ERRORS as exc:
            logger.warning("Remote lookup of %s/%s failed: %s", collection, record_id, exc)
            return None

    def find_local(self, collection: str, record_id: str) -> Optional[Record]:
        coll = _collection(collection)
        for record in self._local_records(coll):
            if record.get("id") == record_id:
                return record
        return None

    def write(self, collection: str, record: Record, owner_id: Optional[str] = None) -> None:
        """Write locally now; mirror to the remote store in the background."""
        coll = _collection(collection)
        if owner_id is not None and not coll.keyed:
            record = {**record, "owner_id": owner_id}
        self._local_upsert(coll, record)
        self._tombstones.discard((collection, record["id"]))
        if self.remote is not None and owner_id is not None:
            self._sync(collection, record["id"], partial(self._remote_upsert, collection, record["id"], owner_id))

    def delete(self, collection: str, record_id: str, owner_id: Optional[str] = None) -> Optional[asyncio.Task]:
        """Delete locally now; return the queued remote delete, if any.

        Until the remote delete succeeds the id stays tombstoned, so remote
        copies are not read back in.
        """
        coll = _collection(collection)
        self._local_delete(coll, record_id)
        if self.remote is None:
            return None
        self._tombstones.add((collection, record_id))
        return self._sync(collection, record_id, partial(self._remote_delete, collection, record_id, owner_id))

    async def delete_now(self, collection: str, record_id: str, owner_id: Optional[str] = None) -> None:
        """Delete from both tiers, returning once the remote delete has run."""
        task = self.delete(collection, record_id, owner_id)
        if task is not None:
            await task

    async def flush(self) -> None:
        """Wait for every outstanding background sync to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class PartnershipCache:
    """In-process snapshot of each owner's partnerships.

    ``get`` returns None on a miss so callers know to load from the store.
    The cache must be invalidated on logout.  It has no lock: callers never
    await between reading a snapshot and writing the updated one back.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[Optional[str], List[Partnership]] = {}

    def get(self, owner_id: Optional[str]) -> Optional[List[Partnership]]:
        snapshot = self._snapshots.get(owner_id)
        return list(snapshot) if snapshot is not None else None

    def set(self, owner_id: Optional[str], partnerships: List[Partnership]) -> None:
        self._snapshots[owner_id] = list(partnerships)

    def invalidate(self, owner_id: Optional[str]) -> None:
        self._snapshots.pop(owner_id, None)

    def clear(self) -> None:
        self._snapshots.clear()
