"""Utility functions for talking to the remote actor platform.

This module provides the low-level HTTP helper used by the Apify client,
plus small text helpers shared with the normaliser: trimming a plaintext
run log down to its last lines and turning human-readable counts such as
``"35.7k followers"`` into integers.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional

import requests

from creatorlogic.errors import RemoteJobError

USER_AGENT = "creatorlogic/0.1 (+https://api.apify.com)"

# Leading number with optional thousands separators, decimals and a k/M suffix.
_COUNT_RE = re.compile(r"^\s*(\d[\d,]*(?:\.\d+)?)\s*([kKmM])?\b")

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def make_request(
    session: requests.Session,
    method: str,
    url: str,
    *,
    token: str,
    json: Optional[Any] = None,
    timeout: int = 30,
) -> requests.Response:
    """Perform an authenticated HTTP request against the actor platform.

    Parameters
    ----------
    session: requests.Session
        Session used for connection pooling.
    method: str
        HTTP verb.
    url: str
        Fully qualified target URL.
    token: str
        Bearer token sent in the ``Authorization`` header.
    json: Optional[Any]
        Request body, serialised as JSON when given.
    timeout: int
        Timeout in seconds for the HTTP request.

    Returns
    -------
    requests.Response
        The response, already checked for a 2xx status.

    Raises
    ------
    RemoteJobError
        On network failure or any non-2xx status.  No retries happen here;
        the callers that poll decide what a failure means.
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    try:
        response = session.request(method, url, headers=headers, json=json, timeout=timeout)
    except requests.RequestException as exc:
        raise RemoteJobError(f"Apify request failed: {exc}") from exc
    if not response.ok:
        raise RemoteJobError(
            f"Apify Error: {response.status_code}", status_code=response.status_code
        )
    return response


def tail_lines(text: str, limit: int = 15) -> List[str]:
    """Return the last ``limit`` non-empty lines of ``text``."""
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    return lines[-limit:]


def parse_abbreviated_count(text: str) -> Optional[int]:
    """Parse a count such as ``"35.7k followers"`` or ``"1,204"``.

    Returns None when ``text`` does not start with a number.
    """
    match = _COUNT_RE.match(text)
    if not match:
        return None
    number = float(match.group(1).replace(",", ""))
    suffix = match.group(2)
    if suffix:
        number *= _MULTIPLIERS[suffix.lower()]
    return int(round(number))
