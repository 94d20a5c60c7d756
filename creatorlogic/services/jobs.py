"""Job lifecycle engine.

A job is one discovery or analytics request.  ``JobEngine.start_job``
records it, hands submission and polling to a background asyncio task and
returns the job id at once; callers follow progress by calling
``get_status`` (a pull model, there are no callbacks).

State machine::

    pending -> submitted -> polling -> completed
       \\           \\           \\----> failed | timed_out
        \\-----------\\----------------> failed | aborted

``completed``, ``failed``, ``timed_out`` and ``aborted`` are terminal.  A
refresh never reopens a terminal job; it creates a new one.

Polls for one job are strictly sequential: the next status check is only
scheduled after the previous one returned.  Different jobs poll
independently and interleave freely.  Every remote call runs through
``asyncio.to_thread``; errors from the actor platform are caught at the
call site and turned into a failed job plus a log line, never raised to
the caller of ``start_job``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, Iterable, List, Optional

from data_collection.apify import ApifyClient, RunInfo, analytics_input, discovery_input
from data_collection.normalizer import (
    normalize_content_posts,
    normalize_creators,
    seed_follower_count,
)

from ..config import Settings
from ..errors import CreatorLogicError, InvalidSeedError, InvalidTransitionError, JobNotFoundError
from ..schemas import HistoryRecord, JobKind, JobState, JobStatusView
from ..store import DualTierStore

logger = logging.getLogger(__name__)

LOG_TAIL_LIMIT = 50
PROGRESS_STEP = 5
POLLING_PROGRESS_CAP = 95
ANALYTICS_RESULTS_LIMIT = 10
MAX_FINISHED_JOBS = 200

_STAGE = {
    JobState.pending: 0,
    JobState.submitted: 1,
    JobState.polling: 2,
    JobState.completed: 3,
    JobState.failed: 3,
    JobState.timed_out: 3,
    JobState.aborted: 3,
}


_URL_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://")
_HANDLE = re.compile(r"^[A-Za-z0-9._]+$")


def sanitize_seed(seed: str) -> str:
    """Strip ``@`` and whitespace from a handle; reject empty or URL seeds.

    Dots are legal in handles (``the.comeback``, ``www.studio``).  A seed is
    rejected for a URL scheme or a slash, or for characters outside the
    handle alphabet.
    """
    cleaned = (seed or "").strip().lstrip("@").strip()
    if not cleaned:
        raise InvalidSeedError("Seed username is empty")
    lowered = cleaned.lower()
    if "/" in cleaned or _URL_SCHEME.match(lowered):
        raise InvalidSeedError(f"Expected a bare handle, not a URL: {seed!r}")
    if not _HANDLE.match(cleaned):
        raise InvalidSeedError(f"Not a valid handle: {seed!r}")
    return cleaned


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    id: str
    kind: JobKind
    seed_username: str
    limit: int
    owner_id: Optional[str] = None
    owner_email: Optional[str] = None
    remote_run_id: Optional[str] = None
    status: JobState = JobState.pending
    progress: int = 0
    log_tail: Deque[str] = field(default_factory=lambda: deque(maxlen=LOG_TAIL_LIMIT))
    final_results: List[dict] = field(default_factory=list)
    emails_found: int = 0
    follower_count: Optional[int] = None
    created_at: datetime = field(default_factory=_utcnow)

    def log(self, line: str) -> None:
        self.log_tail.append(line)

    def log_once(self, line: str) -> None:
        if line not in self.log_tail:
            self.log_tail.append(line)

    def merge_log(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.log_once(line)

    def transition(self, new: JobState) -> None:
        if self.status.is_terminal or _STAGE[new] < _STAGE[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id} cannot move from {self.status.value} to {new.value}"
            )
        self.status = new

    def advance(self, step: int = PROGRESS_STEP) -> None:
        self.progress = min(POLLING_PROGRESS_CAP, self.progress + step)

    def view(self) -> JobStatusView:
        completed = self.status is JobState.completed
        return JobStatusView(
            job_id=self.id,
            kind=self.kind,
            status=self.status,
            progress=self.progress,
            logs=list(self.log_tail),
            result_count=len(self.final_results),
            results=list(self.final_results) if completed else None,
        )

    def history_record(self) -> HistoryRecord:
        return HistoryRecord(
            id=self.id,
            created_at=self.created_at,
            kind=self.kind,
            seed_username=self.seed_username,
            status=self.status,
            result_count=len(self.final_results),
            emails_found=self.emails_found,
            follower_count=self.follower_count,
            owner_id=self.owner_id,
            owner_email=self.owner_email,
        )


class JobTable:
    """In-memory jobs, authoritative until each job is finalised.

    Finished jobs stay around as a cache for their logs; beyond
    ``max_finished`` the oldest finished ones are evicted and later lookups
    fall through to the durable stores.
    """

    def __init__(self, max_finished: int = MAX_FINISHED_JOBS) -> None:
        self.max_finished = max_finished
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()

    def add(self, job: Job) -> None:
        self._jobs[job.id] = job
        self._evict()

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def discard(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def _evict(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.status.is_terminal]
        for job_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self._jobs[job_id]


class JobEngine:
    def __init__(
        self,
        client: ApifyClient,
        store: DualTierStore,
        jobs: Optional[JobTable] = None,
        *,
        discovery_actor_id: str,
        analytics_actor_id: str,
        poll_interval: float = 4.0,
        max_poll_attempts: int = 60,
        finalize_delay: float = 1.0,
    ) -> None:
        self.client = client
        self.store = store
        self.jobs = jobs if jobs is not None else JobTable()
        self.discovery_actor_id = discovery_actor_id
        self.analytics_actor_id = analytics_actor_id
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.finalize_delay = finalize_delay
        self._tasks: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, client: ApifyClient, store: DualTierStore, settings: Settings) -> "JobEngine":
        return cls(
            client,
            store,
            discovery_actor_id=settings.discovery_actor_id,
            analytics_actor_id=settings.analytics_actor_id,
            poll_interval=settings.poll_interval_seconds,
            max_poll_attempts=settings.max_poll_attempts,
            finalize_delay=settings.finalize_delay_seconds,
        )

    # -- entry points -------------------------------------------------------

    async def start_discovery(
        self,
        seed_username: str,
        limit: int,
        *,
        owner_id: Optional[str] = None,
        owner_email: Optional[str] = None,
    ) -> str:
        return await self.start_job(
            JobKind.discovery, seed_username, limit, owner_id=owner_id, owner_email=owner_email
        )

    async def start_analytics(
        self,
        seed_username: str,
        force_refresh: bool = False,
        *,
        owner_id: Optional[str] = None,
        owner_email: Optional[str] = None,
    ) -> str:
        """Start an analytics job, reusing a completed one for the same seed.

        With ``force_refresh`` the previous analytics jobs for the seed are
        deleted from every tier first, so the new job replaces them.
        """
        seed = sanitize_seed(seed_username)
        self.client.require_token()
        if not force_refresh:
            existing = await self._completed_analytics(seed, owner_id)
            if existing is not None:
                logger.info("Reusing analytics job %s for %s", existing["id"], seed)
                return existing["id"]
        else:
            await self._delete_analytics(seed, owner_id)
        return await self.start_job(
            JobKind.analytics,
            seed,
            ANALYTICS_RESULTS_LIMIT,
            owner_id=owner_id,
            owner_email=owner_email,
        )

    async def start_job(
        self,
        kind: JobKind,
        seed_username: str,
        limit: int,
        *,
        owner_id: Optional[str] = None,
        owner_email: Optional[str] = None,
    ) -> str:
        """Record a new job and schedule its remote run; return the job id.

        Raises only for a bad seed or a missing API token, both before any
        record exists.
        """
        seed = sanitize_seed(seed_username)
        self.client.require_token()
        job = Job(
            id=str(uuid.uuid4()),
            kind=kind,
            seed_username=seed,
            limit=limit,
            owner_id=owner_id,
            owner_email=owner_email,
        )
        job.log(f"[System] Initializing {kind.value.title()}...")
        self.jobs.add(job)
        self._persist(job)
        task = asyncio.create_task(self._run(job), name=f"job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        logger.info("Started %s job %s for %s", kind.value, job.id, seed)
        return job.id

    async def get_status(self, job_id: str, owner_id: Optional[str] = None) -> JobStatusView:
        """Status of a job from memory, then the local cache, then the remote store.

        With ``owner_id`` set, another owner's job is reported as not found.
        """
        job = self.jobs.get(job_id)
        if job is not None:
            if owner_id is not None and job.owner_id not in (None, owner_id):
                raise JobNotFoundError(job_id)
            return job.view()
        record = await self.store.find("history", job_id, owner_id)
        if record is None:
            raise JobNotFoundError(job_id)
        history = HistoryRecord.model_validate(record)
        if history.status is JobState.completed:
            stored = await self.store.find("results", job_id, owner_id)
            results = list((stored or {}).get("items") or [])
            return JobStatusView(
                job_id=job_id,
                kind=history.kind,
                status=JobState.completed,
                progress=100,
                result_count=history.result_count,
                results=results,
            )
        status, logs = history.status, []
        if not status.is_terminal:
            # No live task owns it, so the process restarted mid-run.
            status = JobState.aborted
            logs = ["[System] Job was interrupted before it finished"]
        return JobStatusView(
            job_id=job_id,
            kind=history.kind,
            status=status,
            progress=0,
            logs=logs,
            result_count=history.result_count,
        )

    async def history(self, owner_id: Optional[str] = None) -> List[HistoryRecord]:
        return [HistoryRecord.model_validate(r) for r in await self.store.read("history", owner_id)]

    async def wait(self, job_id: str) -> None:
        """Block until the job's background task, if any, has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Abandon in-flight jobs, marking them aborted."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.store.flush()

    # -- analytics cache ----------------------------------------------------

    async def _analytics_records(self, seed: str, owner_id: Optional[str]) -> List[dict]:
        wanted = seed.lower()
        return [
            record
            for record in await self.store.read("history", owner_id)
            if record.get("kind") == JobKind.analytics.value
            and str(record.get("seed_username", "")).lower() == wanted
        ]

    async def _completed_analytics(self, seed: str, owner_id: Optional[str]) -> Optional[dict]:
        for record in await self._analytics_records(seed, owner_id):
            if record.get("status") == JobState.completed.value:
                return record
        return None

    async def _delete_analytics(self, seed: str, owner_id: Optional[str]) -> None:
        for record in await self._analytics_records(seed, owner_id):
            job_id = record["id"]
            # Drop it from memory first so a cancelled task does not re-persist it.
            self.jobs.discard(job_id)
            task = self._tasks.get(job_id)
            if task is not None:
                task.cancel()
            await self.store.delete_now("history", job_id, owner_id)
            await self.store.delete_now("results", job_id, owner_id)
            logger.info("Deleted analytics job %s for %s", job_id, seed)

    # -- background workflow ------------------------------------------------

    def _actor(self, job: Job) -> str:
        if job.kind is JobKind.discovery:
            return self.discovery_actor_id
        return self.analytics_actor_id

    def _persist(self, job: Job) -> None:
        if job.id not in self.jobs:
            return
        self.store.write("history", job.history_record().model_dump(mode="json"), job.owner_id)

    def _fail(self, job: Job, line: str, state: JobState = JobState.failed) -> None:
        job.log(line)
        job.transition(state)
        logger.warning("Job %s %s: %s", job.id, state.value, line)
        self._persist(job)

    async def _run(self, job: Job) -> None:
        try:
            await self._submit(job)
            if job.status is JobState.submitted:
                await self._poll(job)
        except asyncio.CancelledError:
            if not job.status.is_terminal:
                job.log("[System] Job abandoned during shutdown")
                job.transition(JobState.aborted)
                self._persist(job)
            raise
        except Exception as exc:
            logger.exception("Job %s crashed", job.id)
            if not job.status.is_terminal:
                self._fail(job, f"Error: {exc}")

    async def _submit(self, job: Job) -> None:
        if job.kind is JobKind.discovery:
            run_input = discovery_input(job.seed_username, job.limit)
        else:
            run_input = analytics_input(job.seed_username, job.limit)
        try:
            job.remote_run_id = await asyncio.to_thread(self.client.start_run, self._actor(job), run_input)
        except CreatorLogicError as exc:
            self._fail(job, f"Error: {exc}")
            return
        job.transition(JobState.submitted)
        job.log(f"[Apify] Run {job.remote_run_id} accepted")

    async def _poll(self, job: Job) -> None:
        actor_id = self._actor(job)
        for _ in range(self.max_poll_attempts):
            try:
                run = await asyncio.to_thread(self.client.get_run, actor_id, job.remote_run_id)
            except CreatorLogicError as exc:
                self._fail(job, f"Error while polling: {exc}")
                return
            if job.status is JobState.submitted:
                job.transition(JobState.polling)
            if run.succeeded:
                await self._finalize(job, run)
                return
            if run.failed:
                self._fail(job, f"[Apify] Run ended with status {run.status}")
                return
            job.advance()
            job.log_once(f"[Apify] Actor is {run.status.lower()}... ({job.progress}%)")
            await self._refresh_log_tail(job)
            await asyncio.sleep(self.poll_interval)
        self._fail(
            job,
            f"[System] Gave up after {self.max_poll_attempts} status checks",
            JobState.timed_out,
        )

    async def _refresh_log_tail(self, job: Job) -> None:
        try:
            lines = await asyncio.to_thread(self.client.get_log_tail, job.remote_run_id)
        except CreatorLogicError as exc:
            logger.debug("Log tail for job %s unavailable: %s", job.id, exc)
            return
        job.merge_log(lines)

    async def _finalize(self, job: Job, run: RunInfo) -> None:
        if not run.dataset_id:
            self._fail(job, "[Apify] Run succeeded without a dataset")
            return
        try:
            raw_items = await asyncio.to_thread(self.client.get_dataset_items, run.dataset_id)
        except CreatorLogicError as exc:
            self._fail(job, f"Error while fetching results: {exc}")
            return
        if job.kind is JobKind.discovery:
            creators = normalize_creators(raw_items)
            job.emails_found = sum(1 for creator in creators if creator.email)
            records = [creator.model_dump(mode="json") for creator in creators]
        else:
            posts = normalize_content_posts(raw_items)
            job.follower_count = seed_follower_count(raw_items)
            records = [post.model_dump(mode="json") for post in posts]
        job.log(f"[System] Normalized {len(records)} of {len(raw_items)} records")
        if self.finalize_delay:
            # Give the actor a moment to flush its last log lines.
            await asyncio.sleep(self.finalize_delay)
            await self._refresh_log_tail(job)
        job.final_results = records
        job.progress = 100
        job.transition(JobState.completed)
        self._persist(job)
        if job.id in self.jobs:
            self.store.write("results", {"id": job.id, "items": records}, job.owner_id)
        logger.info("Job %s completed with %d results", job.id, len(records))
