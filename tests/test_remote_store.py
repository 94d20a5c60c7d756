import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from creatorlogic.database import create_engine, create_tables
from creatorlogic.errors import JobNotFoundError
from creatorlogic.local_cache import LocalCache
from creatorlogic.remote_store import RemoteStore
from creatorlogic.schemas import JobState
from creatorlogic.services.jobs import JobEngine
from creatorlogic.store import DualTierStore

CREATORS = [{"username": "alpha", "publicEmail": "alpha@brand.io"}, {"username": "beta"}]
REELS = [{"shortCode": "R1", "videoPlayCount": 900, "ownerFollowerCount": 5400}]


def _run_against_sqlite(tmp_path, scenario):
    async def wrapper():
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
        try:
            await create_tables(engine)
            await scenario(RemoteStore(async_sessionmaker(engine, expire_on_commit=False)))
        finally:
            await engine.dispose()

    asyncio.run(wrapper())


def test_history_round_trip_scoped_by_owner(tmp_path):
    async def scenario(remote):
        record = {
            "id": "job-1",
            "created_at": "2024-03-01T12:00:00+00:00",
            "kind": "analytics",
            "seed_username": "seed",
            "status": "completed",
            "result_count": 4,
            "emails_found": 0,
            "follower_count": 9100,
            "owner_email": "owner@creatorlogic.io",
        }
        await remote.upsert("history", record, "u1")
        await remote.upsert("history", {**record, "id": "job-2"}, "u2")

        mine = await remote.list("history", "u1")
        assert [r["id"] for r in mine] == ["job-1"]
        assert mine[0]["follower_count"] == 9100
        assert mine[0]["owner_id"] == "u1"
        assert len(await remote.list("history")) == 2
        assert await remote.get("history", "job-2", "u1") is None

    _run_against_sqlite(tmp_path, scenario)


def test_upsert_replaces_and_delete_removes(tmp_path):
    async def scenario(remote):
        partnership = {
            "id": "p1",
            "creator_name": "creator",
            "video_url": "https://www.instagram.com/reel/ABC/",
            "posted_date": "2024-05-01",
            "views": 10,
        }
        await remote.upsert("partnerships", partnership, "u1")
        await remote.upsert("partnerships", {**partnership, "views": 900}, "u1")

        stored = await remote.get("partnerships", "p1")
        assert stored["views"] == 900
        assert stored["posted_date"] == "2024-05-01"

        await remote.delete("partnerships", "p1", "u1")
        assert await remote.list("partnerships", "u1") == []

    _run_against_sqlite(tmp_path, scenario)


def test_results_blob(tmp_path):
    async def scenario(remote):
        await remote.upsert("results", {"id": "job-1", "items": [{"username": "a"}]}, "u1")

        assert (await remote.get("results", "job-1"))["items"] == [{"username": "a"}]

    _run_against_sqlite(tmp_path, scenario)


def _history(record_id, status):
    return {
        "id": record_id,
        "created_at": "2024-03-01T12:00:00+00:00",
        "kind": "discovery",
        "seed_username": "seed",
        "status": status,
    }


def _engine(client, store):
    return JobEngine(
        client,
        store,
        discovery_actor_id="acme/discovery",
        analytics_actor_id="acme/reels",
        poll_interval=0,
        max_poll_attempts=20,
        finalize_delay=0,
    )


def test_rapid_writes_reach_the_remote_in_order(tmp_path):
    async def scenario(remote):
        store = DualTierStore(LocalCache(tmp_path / "cache"), remote)
        job_ids = [f"job-{i}" for i in range(10)]
        for status in ("pending", "submitted", "polling", "completed"):
            for job_id in job_ids:
                store.write("history", _history(job_id, status), "u1")
        await store.flush()

        for job_id in job_ids:
            assert (await remote.get("history", job_id))["status"] == "completed"

    _run_against_sqlite(tmp_path, scenario)


def test_completed_job_survives_losing_the_local_cache(tmp_path, fake_apify):
    async def scenario(remote):
        store = DualTierStore(LocalCache(tmp_path / "cache"), remote)
        engine = _engine(fake_apify(["RUNNING", "SUCCEEDED"], CREATORS), store)
        job_ids = [await engine.start_discovery("seed", 10, owner_id="u1") for _ in range(5)]
        for job_id in job_ids:
            await engine.wait(job_id)
        await engine.shutdown()

        fresh = _engine(fake_apify(), DualTierStore(LocalCache(tmp_path / "fresh"), remote))
        for job_id in job_ids:
            view = await fresh.get_status(job_id, "u1")
            assert view.status is JobState.completed
            assert [c["username"] for c in view.results] == ["alpha", "beta"]

    _run_against_sqlite(tmp_path, scenario)


def test_forced_refresh_removes_the_old_job_from_both_tiers(tmp_path, fake_apify):
    async def scenario(remote):
        store = DualTierStore(LocalCache(tmp_path / "cache"), remote)
        engine = _engine(fake_apify(["SUCCEEDED"], REELS), store)
        first = await engine.start_analytics("seed", owner_id="u1")
        await engine.wait(first)
        await store.flush()
        assert (await remote.get("history", first))["status"] == "completed"

        second = await engine.start_analytics("seed", force_refresh=True, owner_id="u1")
        with pytest.raises(JobNotFoundError):
            await engine.get_status(first)
        assert await remote.get("history", first) is None
        assert await remote.get("results", first) is None

        await engine.wait(second)
        await engine.shutdown()
        assert [r.id for r in await engine.history("u1")] == [second]

    _run_against_sqlite(tmp_path, scenario)
