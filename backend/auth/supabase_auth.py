"""Bearer token resolution against Supabase Auth.

The owner id of every transaction request comes from here and never from
client input.
"""

from __future__ import annotations

import json
from uuid import UUID
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from shared import config


class UnauthorizedError(Exception):
    """Raised when a request carries no usable bearer token."""


_BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token carried by an `Authorization: Bearer ...` header."""

    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    if not authorization.startswith(_BEARER_PREFIX):
        raise UnauthorizedError("Invalid Authorization header")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise UnauthorizedError("Missing bearer token")
    return token


def _auth_user_request(token: str) -> Request:
    base_url = (config.supabase_url() or "").rstrip("/")
    anon_key = config.supabase_anon_key()
    if not base_url or not anon_key:
        raise UnauthorizedError("Supabase auth is not configured")

    return Request(
        url=f"{base_url}/auth/v1/user",
        headers={"apikey": anon_key, "Authorization": f"Bearer {token}", "Accept": "application/json"},
        method="GET",
    )


def get_user_id_from_bearer_token(token: str) -> UUID:
    """Return the Supabase user id owning `token`."""

    request = _auth_user_request(token)
    try:
        with urlopen(request) as response:  # noqa: S310 - Supabase URL comes from env
            if response.status != 200:
                raise UnauthorizedError("Unauthorized")
            user = json.loads(response.read().decode("utf-8"))
    except (HTTPError, URLError) as exc:
        raise UnauthorizedError("Unauthorized") from exc

    raw_id = user.get("id") if isinstance(user, dict) else None
    if not isinstance(raw_id, str):
        raise UnauthorizedError("Unauthorized")
    try:
        return UUID(raw_id)
    except ValueError as exc:
        raise UnauthorizedError("Unauthorized") from exc
