"""Minimal Supabase PostgREST client used by backend repositories only."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


Query = dict[str, str | int] | list[tuple[str, str | int]]


@dataclass(slots=True)
class SupabaseSettings:
    url: str
    service_role_key: str
    anon_key: str | None = None


class SupabaseClient:
    """Explicitly constructed storage handle; unusable once closed."""

    def __init__(self, settings: SupabaseSettings) -> None:
        self.settings = settings
        self._closed = False

    def __enter__(self) -> SupabaseClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def healthcheck(self) -> bool:
        return not self._closed and bool(self.settings.url and self.settings.service_role_key)

    def _api_key(self, use_anon_key: bool) -> str:
        api_key = self.settings.anon_key if use_anon_key else self.settings.service_role_key
        if not api_key:
            raise ValueError("Missing Supabase API key for requested mode")
        return api_key

    def _build_url(self, table: str, query: Query | None) -> str:
        url = f"{self.settings.url.rstrip('/')}/rest/v1/{table}"
        if query:
            url = f"{url}?{urlencode(query, doseq=True)}"
        return url

    def _send(
        self,
        *,
        method: str,
        table: str,
        query: Query | None,
        payload: object | None,
        prefer: str,
        with_count: bool = False,
        use_anon_key: bool = False,
    ) -> tuple[list[dict[str, Any]], int | None]:
        if self._closed:
            raise RuntimeError("Supabase client is closed")

        api_key = self._api_key(use_anon_key)
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Prefer": prefer,
        }
        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")
            headers["Content-Type"] = "application/json"

        request = Request(
            url=self._build_url(table, query),
            data=data,
            headers=headers,
            method=method,
        )
        try:
            with urlopen(request) as response:  # noqa: S310 - URL comes from trusted env config
                raw_body = response.read().decode("utf-8")
                rows = json.loads(raw_body) if raw_body else []
                total: int | None = None
                if with_count:
                    content_range = response.headers.get("content-range")
                    if content_range and "/" in content_range:
                        _, total_str = content_range.split("/", maxsplit=1)
                        if total_str != "*":
                            total = int(total_str)
                return rows, total
        except HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")[:500]
            raise RuntimeError(
                f"Supabase request failed with status {exc.code}: {body}"
            ) from exc

    def get_rows(
        self,
        *,
        table: str,
        query: Query,
        with_count: bool,
        use_anon_key: bool = False,
    ) -> tuple[list[dict[str, Any]], int | None]:
        """Fetch rows from PostgREST and optionally parse exact row count."""

        return self._send(
            method="GET",
            table=table,
            query=query,
            payload=None,
            prefer="count=exact" if with_count else "return=representation",
            with_count=with_count,
            use_anon_key=use_anon_key,
        )

    def post_rows(
        self,
        *,
        table: str,
        payload: dict[str, object] | list[dict[str, object]],
        query: Query | None = None,
        prefer: str = "return=representation",
    ) -> list[dict[str, Any]]:
        rows, _ = self._send(method="POST", table=table, query=query, payload=payload, prefer=prefer)
        return rows

    def patch_rows(
        self,
        *,
        table: str,
        query: Query,
        payload: dict[str, object],
    ) -> list[dict[str, Any]]:
        rows, _ = self._send(
            method="PATCH",
            table=table,
            query=query,
            payload=payload,
            prefer="return=representation",
        )
        return rows

    def delete_rows(self, *, table: str, query: Query) -> list[dict[str, Any]]:
        rows, _ = self._send(
            method="DELETE",
            table=table,
            query=query,
            payload=None,
            prefer="return=representation",
        )
        return rows
