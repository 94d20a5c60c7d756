"""Wiring of the long-lived service objects.

``build_services`` is called once at application startup and the result is
kept on ``app.state.services``; routers reach it through the
``get_services`` dependency.  Tests build their own ``Services`` with fakes
and assign it to ``app.state`` directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from data_collection.apify import ApifyClient

from .config import Settings
from .database import async_session_factory
from .local_cache import LocalCache
from .remote_store import RemoteStore
from .services.jobs import JobEngine
from .services.partnerships import PartnershipRefreshCoordinator, PartnershipRepository
from .store import DualTierStore, PartnershipCache

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    client: ApifyClient
    store: DualTierStore
    jobs: JobEngine
    partnerships: PartnershipRepository
    refresher: PartnershipRefreshCoordinator

    async def shutdown(self) -> None:
        await self.refresher.shutdown()
        await self.jobs.shutdown()
        await self.store.flush()


def build_services(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Services:
    client = ApifyClient(settings.apify_token, settings.apify_base_url)
    remote = None
    if settings.remote_sync_enabled:
        remote = RemoteStore(session_factory or async_session_factory)
    else:
        logger.info("Remote sync disabled; running on the local cache only")
    store = DualTierStore(LocalCache(settings.local_cache_dir), remote)
    repository = PartnershipRepository(store, PartnershipCache())
    return Services(
        settings=settings,
        client=client,
        store=store,
        jobs=JobEngine.from_settings(client, store, settings),
        partnerships=repository,
        refresher=PartnershipRefreshCoordinator.from_settings(client, repository, settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
