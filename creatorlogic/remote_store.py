"""Relational mirror of the local cache.

``RemoteStore`` exposes the same four collections as the local cache
(history, results, partnerships, app credentials) over SQLAlchemy async
sessions.  Every query is scoped by ``owner_id``; passing ``owner_id=None``
to ``list`` returns all owners' rows, which only the agency history view
does.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import AppStoreCredentialRecord, PartnershipRecord, SearchJob, SearchResult

MODELS: Dict[str, Type[Any]] = {
    "history": SearchJob,
    "results": SearchResult,
    "partnerships": PartnershipRecord,
    "app_credentials": AppStoreCredentialRecord,
}


def _model(collection: str) -> Type[Any]:
    try:
        return MODELS[collection]
    except KeyError:
        raise KeyError(f"Unknown collection: {collection}") from None


class RemoteStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def list(self, collection: str, owner_id: Optional[str] = None) -> List[Dict[str, Any]]:
        model = _model(collection)
        stmt = select(model)
        if owner_id is not None:
            stmt = stmt.where(model.owner_id == owner_id)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_record() for row in result.scalars().all()]

    async def get(
        self, collection: str, record_id: str, owner_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        model = _model(collection)
        async with self.session_factory() as session:
            row = await session.get(model, record_id)
            if row is None or (owner_id is not None and row.owner_id != owner_id):
                return None
            return row.to_record()

    async def upsert(self, collection: str, record: Dict[str, Any], owner_id: str) -> None:
        model = _model(collection)
        async with self.session_factory() as session:
            await session.merge(model.from_record(record, owner_id))
            await session.commit()

    async def delete(self, collection: str, record_id: str, owner_id: Optional[str] = None) -> None:
        model = _model(collection)
        stmt = delete(model).where(model.id == record_id)
        if owner_id is not None:
            stmt = stmt.where(model.owner_id == owner_id)
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()
