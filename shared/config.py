"""Configuration helpers for environment variables."""

from __future__ import annotations

import os
import logging

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


_DEV_ENVS = {"dev", "local"}
_DEV_ORIGINS = ["http://localhost:5173", "http://127.0.0.1:5173"]


def _should_load_dotenv() -> bool:
    """Return whether local dotenv loading should run."""
    app_env = os.getenv("APP_ENV", "dev").strip().lower()
    return app_env in _DEV_ENVS


if _should_load_dotenv():
    load_dotenv()


def get_env(name: str, default: str | None = None) -> str | None:
    """Return a raw environment value or default."""
    return os.getenv(name, default)


def app_env() -> str:
    """Return the current application environment."""
    return (get_env("APP_ENV", "dev") or "dev").strip() or "dev"


def cors_allow_origins() -> list[str]:
    """Return CORS allowed origins from env with safe environment defaults."""
    raw_origins = get_env("CORS_ALLOW_ORIGINS", "") or ""
    parsed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

    if parsed_origins:
        return parsed_origins

    frontend_url = (get_env("FRONTEND_URL", "") or "").strip()
    if frontend_url:
        return [frontend_url]

    if app_env().strip().lower() in _DEV_ENVS:
        return list(_DEV_ORIGINS)

    logger.warning(
        "cors_allow_origins_empty_in_prod app_env=%s; define CORS_ALLOW_ORIGINS or FRONTEND_URL",
        app_env(),
    )

    return []


def port() -> int:
    """Return the HTTP port, falling back to 5000 on invalid values."""
    raw_value = (get_env("PORT", "5000") or "5000").strip()
    try:
        return int(raw_value)
    except ValueError:
        logger.warning("invalid_port_value port=%s; using 5000", raw_value)
        return 5000


def supabase_url() -> str | None:
    """Return Supabase URL when configured."""
    return get_env("SUPABASE_URL")


def supabase_service_role_key() -> str | None:
    """Return Supabase service role key when configured."""
    return get_env("SUPABASE_SERVICE_ROLE_KEY")


def supabase_anon_key() -> str | None:
    """Return Supabase anon key when configured."""
    return get_env("SUPABASE_ANON_KEY")


def transactions_table() -> str:
    """Return the table holding transaction rows."""
    return (get_env("TRANSACTIONS_TABLE", "transactions") or "transactions").strip() or "transactions"
