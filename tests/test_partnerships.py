import asyncio
from datetime import date

import pytest

from creatorlogic.errors import ConfigurationError, PartnershipNotFoundError, RemoteJobError
from creatorlogic.schemas import ContentPost, Partnership, PartnershipCreate, PartnershipUpdate
from creatorlogic.services.partnerships import (
    PartnershipRefreshCoordinator,
    PartnershipRepository,
    apply_refresh,
    extract_short_code,
    is_supported_url,
)
from creatorlogic.store import PartnershipCache

REEL_URL = "https://www.instagram.com/reel/ABC123/?igsh=xyz"


@pytest.fixture
def repository(local_store):
    return PartnershipRepository(local_store, PartnershipCache())


def _coordinator(client, repository):
    return PartnershipRefreshCoordinator(
        client, repository, actor_id="acme/reels", poll_interval=0, max_poll_attempts=5
    )


def _create(repository, url=REEL_URL, **counters):
    async def scenario():
        created = await repository.create(
            PartnershipCreate(creator_name="creator", video_url=url, cost_usd=500, posted_date=date(2024, 5, 1)),
            "u1",
        )
        if counters:
            await repository.save(created.model_copy(update=counters), "u1")
        return created.id

    return asyncio.run(scenario())


def test_short_code_extraction():
    assert extract_short_code("https://www.instagram.com/reel/ABC123/?igsh=xyz") == "ABC123"
    assert extract_short_code("https://instagram.com/p/Cx_9-z/") == "Cx_9-z"
    assert extract_short_code("https://instagram.com/reels/R1") == "R1"
    assert extract_short_code("https://instagram.com/tv/T1/") == "T1"
    assert extract_short_code("https://instagram.com/someone/custom") == "custom"
    assert extract_short_code("") is None


def test_supported_urls():
    assert is_supported_url(REEL_URL)
    assert is_supported_url("https://instagram.com/p/X/")
    assert not is_supported_url("https://www.tiktok.com/@a/video/1")
    assert not is_supported_url(None)


def test_merge_keeps_known_values_when_new_ones_are_missing():
    partnership = Partnership(
        creator_name="c", video_url=REEL_URL, posted_date=date(2024, 5, 1), views=10, likes=50
    )
    post = ContentPost(id="1", short_code="ABC123", play_count=900, view_count=400, like_count=0, comment_count=3)

    (updated,), matched = apply_refresh([partnership], [post])

    assert matched == 1
    assert updated.views == 900
    assert updated.likes == 50
    assert updated.comments == 3


def test_match_by_input_url_and_unmatched_left_alone():
    by_input = Partnership(creator_name="a", video_url="https://instagram.com/x", posted_date=date(2024, 5, 1))
    unmatched = Partnership(creator_name="b", video_url="https://instagram.com/p/ZZZ/", posted_date=date(2024, 5, 1), views=7)
    post = ContentPost(id="1", short_code="other", url="https://www.instagram.com/p/other/", input_url="https://instagram.com/x", view_count=40)

    updated, matched = apply_refresh([by_input, unmatched], [post])

    assert matched == 1
    assert updated[0].views == 40
    assert updated[1] == unmatched


def test_cpm_and_cpv():
    partnership = Partnership(
        creator_name="c", video_url=REEL_URL, posted_date=date(2024, 5, 1), cost_usd=500, views=100_000
    )

    assert partnership.cpm == pytest.approx(5.0)
    assert partnership.cpv == pytest.approx(0.005)
    assert Partnership(creator_name="c", video_url=REEL_URL, posted_date=date(2024, 5, 1)).cpm is None


def test_update_does_not_touch_counters(repository):
    partnership_id = _create(repository, views=1200, likes=40)

    updated = asyncio.run(repository.update(partnership_id, PartnershipUpdate(cost_usd=750), "u1"))

    assert updated.cost_usd == 750
    assert updated.views == 1200
    assert updated.likes == 40
    with pytest.raises(PartnershipNotFoundError):
        asyncio.run(repository.get("missing", "u1"))


def test_repository_reloads_after_invalidation(repository):
    partnership_id = _create(repository)
    repository.invalidate("u1")

    assert [p.id for p in asyncio.run(repository.list("u1"))] == [partnership_id]
    assert asyncio.run(repository.list("u2")) == []


def test_refresh_updates_matching_partnerships(fake_apify, repository):
    partnership_id = _create(repository, likes=50)
    items = [
        {
            "shortCode": "ABC123",
            "url": "https://www.instagram.com/reel/ABC123/",
            "videoPlayCount": 900,
            "likesCount": 0,
            "commentsCount": 3,
        }
    ]
    client = fake_apify(["RUNNING", "SUCCEEDED"], items)
    coordinator = _coordinator(client, repository)

    async def scenario():
        started = await coordinator.refresh(owner_id="u1")
        await coordinator.wait()
        return started, await repository.get(partnership_id, "u1")

    started, refreshed = asyncio.run(scenario())

    assert started is True
    assert refreshed.views == 900
    assert refreshed.likes == 50
    assert refreshed.comments == 3
    run_input = client.started[0][1]
    assert run_input["username"] == [REEL_URL]
    assert run_input["resultsLimit"] == 1
    assert not coordinator.is_refreshing


def test_refresh_is_single_flight(fake_apify, repository):
    _create(repository)
    client = fake_apify(["RUNNING", "RUNNING", "SUCCEEDED"])
    coordinator = _coordinator(client, repository)

    async def scenario():
        results = await asyncio.gather(
            coordinator.refresh(owner_id="u1"), coordinator.refresh(owner_id="u1")
        )
        again = await coordinator.refresh(owner_id="u1")
        await coordinator.wait()
        return results, again

    results, again = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert again is False
    assert len(client.started) == 1
    assert not coordinator.is_refreshing


def test_lock_released_when_start_fails(fake_apify, repository):
    _create(repository)
    coordinator = _coordinator(fake_apify(start_error=RemoteJobError("Apify Error: 500")), repository)

    assert asyncio.run(coordinator.refresh(owner_id="u1")) is False
    assert not coordinator.is_refreshing


def test_lock_released_when_run_fails(fake_apify, repository):
    _create(repository)
    coordinator = _coordinator(fake_apify(["FAILED"]), repository)

    async def scenario():
        started = await coordinator.refresh(owner_id="u1")
        await coordinator.wait()
        return started

    assert asyncio.run(scenario()) is True
    assert not coordinator.is_refreshing


def test_missing_token_raises_and_releases_lock(fake_apify, repository):
    _create(repository)
    coordinator = _coordinator(fake_apify(token=None), repository)

    with pytest.raises(ConfigurationError):
        asyncio.run(coordinator.refresh(owner_id="u1"))
    assert not coordinator.is_refreshing


def test_nothing_to_refresh(fake_apify, repository):
    _create(repository, url="https://www.tiktok.com/@a/video/1")
    client = fake_apify()
    coordinator = _coordinator(client, repository)

    assert asyncio.run(coordinator.refresh(owner_id="u1")) is False
    assert client.started == []
