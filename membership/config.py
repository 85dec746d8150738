"""
Environment-driven settings for the membership portal.

Every value has a default so the app and the tests import cleanly without a
.env file. Supabase credentials are read lazily by auth.supabase_client.
"""

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class PortalSettings:
    """Paging, caching and HTTP settings."""

    members_page_size: int = 10
    applications_page_size: int = 20
    reference_cache_ttl_seconds: int = 300
    http_timeout_seconds: int = 10
    redis_url: str = ""


def get_settings() -> PortalSettings:
    """Read settings from the environment. Called per use so tests can monkeypatch env vars."""
    return PortalSettings(
        members_page_size=_int_env("MEMBERS_PAGE_SIZE", 10),
        applications_page_size=_int_env("APPLICATIONS_PAGE_SIZE", 20),
        reference_cache_ttl_seconds=_int_env("REFERENCE_CACHE_TTL_SECONDS", 300),
        http_timeout_seconds=_int_env("HTTP_TIMEOUT_SECONDS", 10),
        redis_url=os.environ.get("REDIS_URL", ""),
    )
