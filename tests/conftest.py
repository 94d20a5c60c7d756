from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# The engine in creatorlogic.database is built at import time, so the
# environment has to point at a scratch directory before any test imports it.
_SCRATCH = Path(tempfile.mkdtemp(prefix="creatorlogic-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_SCRATCH / 'test.db'}")
os.environ.setdefault("LOCAL_CACHE_DIR", str(_SCRATCH / "cache"))
os.environ.setdefault("APIFY_TOKEN", "test-token")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("ADMIN_EMAIL", "admin@creatorlogic.io")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from creatorlogic.errors import ConfigurationError  # noqa: E402
from creatorlogic.local_cache import LocalCache  # noqa: E402
from creatorlogic.store import DualTierStore  # noqa: E402
from data_collection.apify import RunInfo  # noqa: E402


class FakeApify:
    """Stands in for ApifyClient; replays a scripted list of run statuses."""

    def __init__(
        self,
        statuses: Optional[List[str]] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        *,
        token: Optional[str] = "test-token",
        start_error: Optional[Exception] = None,
        poll_error: Optional[Exception] = None,
    ) -> None:
        self.token = token
        self.statuses = list(statuses or ["SUCCEEDED"])
        self.items = list(items or [])
        self.start_error = start_error
        self.poll_error = poll_error
        self.started: List[tuple] = []
        self.polls = 0

    def require_token(self) -> str:
        if not self.token:
            raise ConfigurationError("APIFY_TOKEN is missing.")
        return self.token

    def start_run(self, actor_id: str, run_input: Dict[str, Any]) -> str:
        self.require_token()
        if self.start_error is not None:
            raise self.start_error
        self.started.append((actor_id, run_input))
        return f"run-{len(self.started)}"

    def get_run(self, actor_id: str, run_id: str) -> RunInfo:
        if self.poll_error is not None:
            raise self.poll_error
        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        return RunInfo(id=run_id, status=status, dataset_id="dataset-1")

    def get_dataset_items(self, dataset_id: str) -> List[Dict[str, Any]]:
        return list(self.items)

    def get_log_tail(self, run_id: str, limit: int = 15) -> List[str]:
        return ["INFO  Crawler: processing"]


@pytest.fixture
def fake_apify():
    return FakeApify


@pytest.fixture
def local_store(tmp_path):
    return DualTierStore(LocalCache(tmp_path / "cache"))
