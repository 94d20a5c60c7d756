"""App Store Connect credential check.

Given an API key (issuer id, key id and the ``.p8`` private key) this signs
a short-lived ES256 token and lists one app, which is the cheapest call
that proves the key works.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import requests
from jose import jwt
from jose.exceptions import JOSEError

from ..errors import CredentialVerificationError
from ..schemas import AppVerification

logger = logging.getLogger(__name__)

APP_STORE_API_URL = "https://api.appstoreconnect.apple.com/v1"
AUDIENCE = "appstoreconnect-v1"
# Apple rejects tokens that live longer than 20 minutes.
TOKEN_TTL_SECONDS = 20 * 60


def build_token(issuer_id: str, key_id: str, private_key: str, now: Optional[int] = None) -> str:
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iss": issuer_id,
        "aud": AUDIENCE,
        "iat": issued_at,
        "exp": issued_at + TOKEN_TTL_SECONDS,
    }
    try:
        return jwt.encode(
            claims,
            private_key,
            algorithm="ES256",
            headers={"kid": key_id, "typ": "JWT"},
        )
    except JOSEError as exc:
        raise CredentialVerificationError(f"Could not sign token with the private key: {exc}") from exc


def verify_app_store_credentials(
    issuer_id: str,
    key_id: str,
    private_key: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: int = 30,
) -> AppVerification:
    """Return the first app visible to the key, or raise ``CredentialVerificationError``."""
    if not (issuer_id and key_id and private_key):
        raise CredentialVerificationError("Missing credentials")
    token = build_token(issuer_id, key_id, private_key)
    http = session or requests.Session()
    try:
        response = http.get(
            f"{APP_STORE_API_URL}/apps",
            params={"limit": 1},
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise CredentialVerificationError(f"App Store Connect unreachable: {exc}") from exc
    if not response.ok:
        raise CredentialVerificationError(
            f"Apple API Error: {response.status_code} - {response.text[:200]}"
        )
    try:
        apps = (response.json() or {}).get("data") or []
    except ValueError as exc:
        raise CredentialVerificationError("App Store Connect returned invalid JSON") from exc
    first = apps[0] if apps else {}
    name = (first.get("attributes") or {}).get("name") or "Unknown App"
    logger.info("Verified App Store credentials for %s", name)
    return AppVerification(app_name=name, app_id=first.get("id"))
