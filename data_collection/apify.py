"""Thin client for the Apify actor-run REST API.

The client knows four endpoints: start a run, read a run's status, read a
dataset and read the tail of a run's log.  It performs no retries and keeps
no state beyond its HTTP session; the job engine and the partnership
refresh coordinator decide how often to poll and what a failure means.

All methods are blocking.  Async callers dispatch them through
``asyncio.to_thread`` so the event loop never waits on the network.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from creatorlogic.errors import ConfigurationError, RemoteJobError

from .utils import make_request, tail_lines

SUCCEEDED = "SUCCEEDED"
FAILED_STATUSES = frozenset({"FAILED", "ABORTED", "TIMED-OUT"})
LOG_TAIL_LINES = 15


@dataclass(frozen=True)
class RunInfo:
    """Status snapshot of one remote actor run."""

    id: str
    status: str
    dataset_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status in FAILED_STATUSES

    @property
    def finished(self) -> bool:
        return self.succeeded or self.failed


def actor_path(actor_id: str) -> str:
    """Return the URL form of an actor id (``user/name`` -> ``user~name``)."""
    return actor_id.replace("/", "~")


def discovery_input(seed_username: str, limit: int) -> Dict[str, Any]:
    return {
        "username": [seed_username],
        "maxItem": limit,
        "type": "similar_users",
        "profileEnriched": True,
    }


def analytics_input(seed_username: str, limit: int = 10) -> Dict[str, Any]:
    return {
        "username": [seed_username],
        "resultsLimit": limit,
        "skipPinnedPosts": True,
    }


def reel_refresh_input(video_urls: List[str]) -> Dict[str, Any]:
    """Input for re-scraping specific reels.

    ``resultsLimit`` equals the number of URLs so the actor stops as soon as
    it has one record per URL.
    """
    return {
        "username": list(video_urls),
        "resultsLimit": len(video_urls),
        "skipPinnedPosts": True,
        "includeSharesCount": True,
        "includeDownloadedVideo": False,
        "includeTranscript": False,
        "onlyPostsNewerThan": "2020-01-01",
    }


class ApifyClient:
    """Authenticated wrapper around the Apify v2 REST API."""

    def __init__(
        self,
        token: Optional[str],
        base_url: str = "https://api.apify.com/v2",
        *,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def require_token(self) -> str:
        """Return the API token or raise ``ConfigurationError``."""
        if not self.token:
            raise ConfigurationError("APIFY_TOKEN is missing.")
        return self.token

    def _request(self, path: str, method: str = "GET", body: Optional[Any] = None) -> requests.Response:
        token = self.require_token()
        url = f"{self.base_url}/{path.lstrip('/')}"
        return make_request(self.session, method, url, token=token, json=body, timeout=self.timeout)

    def _json(self, path: str, method: str = "GET", body: Optional[Any] = None) -> Any:
        response = self._request(path, method, body)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteJobError(f"Apify returned invalid JSON for {path}") from exc

    def start_run(self, actor_id: str, run_input: Dict[str, Any]) -> str:
        """Start an actor run and return its run id."""
        payload = self._json(f"acts/{actor_path(actor_id)}/runs", "POST", run_input)
        try:
            return payload["data"]["id"]
        except (KeyError, TypeError) as exc:
            raise RemoteJobError("Apify run response is missing data.id") from exc

    def get_run(self, actor_id: str, run_id: str) -> RunInfo:
        payload = self._json(f"acts/{actor_path(actor_id)}/runs/{run_id}")
        data = (payload or {}).get("data") or {}
        status = data.get("status")
        if not status:
            raise RemoteJobError(f"Apify run {run_id} has no status")
        return RunInfo(id=run_id, status=status, dataset_id=data.get("defaultDatasetId"))

    def get_dataset_items(self, dataset_id: str) -> List[Dict[str, Any]]:
        items = self._json(f"datasets/{dataset_id}/items")
        if not isinstance(items, list):
            raise RemoteJobError(f"Dataset {dataset_id} did not return a list")
        return items

    def get_log_tail(self, run_id: str, limit: int = LOG_TAIL_LINES) -> List[str]:
        """Return the last ``limit`` non-empty lines of a run's log."""
        response = self._request(f"actor-runs/{run_id}/log")
        return tail_lines(response.text, limit)
