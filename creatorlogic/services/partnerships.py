"""Partnership tracking and metric refresh.

``PartnershipRepository`` stores partnerships through the dual-tier store
behind a per-owner read-through cache.  ``PartnershipRefreshCoordinator``
re-scrapes the tracked reels in one batched actor run and folds the new
numbers back into the matching partnerships.

Only one refresh runs at a time.  The single-flight flag is taken before
the first ``await`` in ``refresh`` and released on every exit path,
including a failed start, a failed run and an exhausted poll budget.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from data_collection.apify import ApifyClient, reel_refresh_input
from data_collection.normalizer import normalize_content_posts

from ..config import Settings
from ..errors import PartnershipNotFoundError, RemoteJobError
from ..schemas import ContentPost, Partnership, PartnershipCreate, PartnershipUpdate
from ..store import DualTierStore, PartnershipCache

logger = logging.getLogger(__name__)

SUPPORTED_HOSTS = ("instagram.com", "instagr.am")

_SHORT_CODE_RE = re.compile(r"/(?:p|reel|reels|tv)/([A-Za-z0-9_-]+)")


def is_supported_url(url: Optional[str]) -> bool:
    if not url:
        return False
    host = urlparse(url).netloc.lower()
    return any(host == h or host.endswith("." + h) for h in SUPPORTED_HOSTS)


def extract_short_code(url: Optional[str]) -> Optional[str]:
    """Short code from ``/p/<code>``, ``/reel/<code>`` and friends.

    Query strings are ignored.  Falls back to the last path segment.
    """
    if not url:
        return None
    path = urlparse(url).path
    match = _SHORT_CODE_RE.search(path)
    if match:
        return match.group(1)
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


def matches(partnership: Partnership, post: ContentPost) -> bool:
    short_code = extract_short_code(partnership.video_url)
    if short_code:
        if post.short_code == short_code:
            return True
        if post.url and short_code in post.url:
            return True
    return partnership.video_url in (post.input_url, post.url)


def merge_metrics(partnership: Partnership, post: ContentPost) -> Partnership:
    """Overwrite counters with the fresh values that are actually present.

    A missing or zero value keeps the known one, so a transient gap in the
    scrape never resets a metric.
    """
    return partnership.model_copy(
        update={
            "views": post.play_count or post.view_count or partnership.views,
            "likes": post.like_count or partnership.likes,
            "comments": post.comment_count or partnership.comments,
            "shares": post.share_count or partnership.shares,
        }
    )


def apply_refresh(
    partnerships: Sequence[Partnership], posts: Sequence[ContentPost]
) -> Tuple[List[Partnership], int]:
    """Return updated partnerships and how many of them found a match."""
    updated: List[Partnership] = []
    matched = 0
    for partnership in partnerships:
        post = next((p for p in posts if matches(partnership, p)), None)
        if post is None:
            logger.info("No refreshed post for %s", partnership.video_url)
            updated.append(partnership)
            continue
        matched += 1
        updated.append(merge_metrics(partnership, post))
    return updated, matched


class PartnershipRepository:
    def __init__(self, store: DualTierStore, cache: PartnershipCache) -> None:
        self.store = store
        self.cache = cache

    async def list(self, owner_id: Optional[str] = None) -> List[Partnership]:
        cached = self.cache.get(owner_id)
        if cached is not None:
            return cached
        records = await self.store.read("partnerships", owner_id)
        partnerships = [Partnership.model_validate(record) for record in records]
        self.cache.set(owner_id, partnerships)
        return partnerships

    async def get(self, partnership_id: str, owner_id: Optional[str] = None) -> Partnership:
        for partnership in await self.list(owner_id):
            if partnership.id == partnership_id:
                return partnership
        raise PartnershipNotFoundError(partnership_id)

    async def create(self, data: PartnershipCreate, owner_id: Optional[str] = None) -> Partnership:
        partnership = Partnership(**data.model_dump())
        await self.save(partnership, owner_id)
        return partnership

    async def update(
        self, partnership_id: str, changes: PartnershipUpdate, owner_id: Optional[str] = None
    ) -> Partnership:
        """Apply user edits; performance counters are not editable here."""
        current = await self.get(partnership_id, owner_id)
        updated = current.model_copy(update=changes.model_dump(exclude_unset=True))
        await self.save(updated, owner_id)
        return updated

    async def save(self, partnership: Partnership, owner_id: Optional[str] = None) -> List[Partnership]:
        current = await self.list(owner_id)
        updated = [partnership] + [p for p in current if p.id != partnership.id]
        self.cache.set(owner_id, updated)
        self.store.write("partnerships", partnership.model_dump(mode="json"), owner_id)
        return updated

    def save_many(self, partnerships: List[Partnership], owner_id: Optional[str] = None) -> None:
        self.cache.set(owner_id, partnerships)
        for partnership in partnerships:
            self.store.write("partnerships", partnership.model_dump(mode="json"), owner_id)

    def invalidate(self, owner_id: Optional[str] = None) -> None:
        self.cache.invalidate(owner_id)


class PartnershipRefreshCoordinator:
    def __init__(
        self,
        client: ApifyClient,
        repository: PartnershipRepository,
        *,
        actor_id: str,
        poll_interval: float = 5.0,
        max_poll_attempts: int = 60,
    ) -> None:
        self.client = client
        self.repository = repository
        self.actor_id = actor_id
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self._refreshing = False
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls, client: ApifyClient, repository: PartnershipRepository, settings: Settings
    ) -> "PartnershipRefreshCoordinator":
        return cls(
            client,
            repository,
            actor_id=settings.analytics_actor_id,
            poll_interval=settings.refresh_poll_interval_seconds,
            max_poll_attempts=settings.refresh_max_poll_attempts,
        )

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    async def refresh(
        self,
        partnerships: Optional[Sequence[Partnership]] = None,
        *,
        owner_id: Optional[str] = None,
    ) -> bool:
        """Start one extraction run for the tracked reels.

        Returns True when a run was started, False when a refresh is already
        in flight, nothing is refreshable or the platform refused the run.
        A missing API token raises ``ConfigurationError``.
        """
        if self._refreshing:
            logger.info("Partnership refresh already in progress; skipping")
            return False
        self._refreshing = True
        started = False
        try:
            run_id = await self._start(partnerships, owner_id)
            if run_id is not None:
                self._task = asyncio.create_task(
                    self._poll(run_id, owner_id), name=f"partnership-refresh-{run_id}"
                )
                started = True
        except RemoteJobError as exc:
            logger.error("Partnership refresh failed to start: %s", exc)
        finally:
            if not started:
                self._refreshing = False
        return started

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.wait({self._task})

    async def shutdown(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)

    async def _start(
        self, partnerships: Optional[Sequence[Partnership]], owner_id: Optional[str]
    ) -> Optional[str]:
        if partnerships is None:
            partnerships = await self.repository.list(owner_id)
        urls = [p.video_url for p in partnerships if is_supported_url(p.video_url)]
        if not urls:
            logger.warning("No Instagram URLs to refresh")
            return None
        run_id = await asyncio.to_thread(self.client.start_run, self.actor_id, reel_refresh_input(urls))
        logger.info("Started partnership refresh run %s for %d URLs", run_id, len(urls))
        return run_id

    async def _poll(self, run_id: str, owner_id: Optional[str]) -> None:
        try:
            for _ in range(self.max_poll_attempts):
                run = await asyncio.to_thread(self.client.get_run, self.actor_id, run_id)
                if run.succeeded:
                    if not run.dataset_id:
                        logger.warning("Refresh run %s succeeded without a dataset", run_id)
                        return
                    items = await asyncio.to_thread(self.client.get_dataset_items, run.dataset_id)
                    matched = await self._apply(normalize_content_posts(items), owner_id)
                    logger.info("Refresh run %s matched %d partnerships", run_id, matched)
                    return
                if run.failed:
                    logger.warning("Refresh run %s ended with status %s", run_id, run.status)
                    return
                await asyncio.sleep(self.poll_interval)
            logger.warning(
                "Gave up on refresh run %s after %d status checks", run_id, self.max_poll_attempts
            )
        except RemoteJobError as exc:
            logger.error("Polling refresh run %s failed: %s", run_id, exc)
        finally:
            self._refreshing = False

    async def _apply(self, posts: List[ContentPost], owner_id: Optional[str]) -> int:
        current = await self.repository.list(owner_id)
        updated, matched = apply_refresh(current, posts)
        self.repository.save_many(updated, owner_id)
        return matched
