"""Session tokens: the real backend login and the synthetic fallback.

The backend login endpoint accepts `{"email", "password"}` and answers with a
session cookie, a JSON token, or both. When that path is unavailable a
development-only pseudo-token is built locally: base64 of a JSON object
describing the persona. It is never a valid credential for a backend that
validates sessions server-side.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from portal_tests.config import PortalTestConfig, RoleProfile

logger = logging.getLogger(__name__)

# JSON body fields that may carry the session token, in order of preference.
TOKEN_BODY_FIELDS = ("token", "accessToken", "sessionToken")

SYNTHETIC_TOKEN_TTL = timedelta(hours=24)


class SessionPath(str, Enum):
    REAL = "real"
    FALLBACK = "fallback"


class FallbackReason(str, Enum):
    LOGIN_REJECTED = "login_rejected"
    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"
    NO_TOKEN = "no_token"


@dataclass
class LoginAttempt:
    """Outcome of one round-trip to the login endpoint."""

    token: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[FallbackReason] = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.token is not None


def _cookie_from_header(header: str, cookie_name: str) -> Optional[str]:
    # Only the leading name=value pair is the cookie; the rest are attributes.
    pair = header.split(";", 1)[0]
    name, sep, value = pair.partition("=")
    if not sep or name.strip() != cookie_name:
        return None
    value = value.strip().strip('"')
    return value or None


def extract_session_token(response: httpx.Response, cookie_name: str = "session") -> Optional[str]:
    """Pull the session token out of a login response.

    The `Set-Cookie` header wins over the JSON body. Returns None when neither
    yields a non-empty value.
    """
    for header in response.headers.get_list("set-cookie"):
        token = _cookie_from_header(header, cookie_name)
        if token:
            return token

    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    for field_name in TOKEN_BODY_FIELDS:
        value = body.get(field_name)
        if isinstance(value, str) and value:
            return value
    return None


async def request_login_token(
    profile: RoleProfile,
    config: PortalTestConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> LoginAttempt:
    """POST the role's credentials to the login endpoint.

    Network failures are reported in the returned LoginAttempt, never raised.
    A caller-supplied client is used as is and left open.
    """
    payload = {"email": profile.email, "password": profile.password}
    headers = {"x-test-mode": "true", "x-test-role": profile.role.value}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=config.login_timeout, follow_redirects=False)
    try:
        response = await client.post(config.login_url, json=payload, headers=headers)
    except httpx.TimeoutException as exc:
        logger.info(f"Login for {profile.role.value} timed out: {exc!r}")
        return LoginAttempt(reason=FallbackReason.TIMEOUT, detail=str(exc) or type(exc).__name__)
    except httpx.HTTPError as exc:
        logger.info(f"Login for {profile.role.value} failed in transport: {exc!r}")
        return LoginAttempt(reason=FallbackReason.TRANSPORT_ERROR, detail=str(exc) or type(exc).__name__)
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        logger.info(f"Login for {profile.role.value} rejected: HTTP {response.status_code}")
        return LoginAttempt(
            status_code=response.status_code,
            reason=FallbackReason.LOGIN_REJECTED,
            detail=f"HTTP {response.status_code}",
        )

    token = extract_session_token(response, config.cookie_name)
    if token is None:
        return LoginAttempt(
            status_code=response.status_code,
            reason=FallbackReason.NO_TOKEN,
            detail=f"no '{config.cookie_name}' cookie or token field in login response",
        )
    return LoginAttempt(token=token, status_code=response.status_code)


def synthetic_claims(profile: RoleProfile, now: Optional[float] = None,
                     ttl: timedelta = SYNTHETIC_TOKEN_TTL) -> Dict[str, Any]:
    issued_at = int(now if now is not None else time.time())
    role = profile.role.value
    return {
        "id": f"{role}-test-id",
        "email": profile.email,
        "role": role,
        "roles": [role],
        "firstName": profile.first_name,
        "lastName": profile.last_name,
        "displayName": profile.display_name,
        "iat": issued_at,
        "exp": issued_at + int(ttl.total_seconds()),
        "devOnly": True,
    }


def build_synthetic_token(profile: RoleProfile, now: Optional[float] = None,
                          ttl: timedelta = SYNTHETIC_TOKEN_TTL) -> str:
    """Base64-encoded JSON pseudo-session for `profile` (development only)."""
    claims = synthetic_claims(profile, now=now, ttl=ttl)
    raw = json.dumps(claims, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_synthetic_token(token: str) -> Dict[str, Any]:
    """Decode a token built by build_synthetic_token.

    Raises ValueError when the token is not base64-encoded JSON object.
    """
    try:
        raw = base64.b64decode(token.encode("ascii"), validate=True)
        claims = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"not a synthetic session token: {exc}") from exc
    if not isinstance(claims, dict):
        raise ValueError("synthetic session token does not hold a JSON object")
    return claims
