"""
Read access to the reference tables: categories, provinces, districts, institutions.

Lookups are cached for REFERENCE_CACHE_TTL_SECONDS in Redis when REDIS_URL is
reachable, otherwise in a per-process dict. A failed fetch is logged and
returns an empty list; empty results from errors are never cached.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import redis

from auth.supabase_client import get_supabase_client
from membership.classification import category_from_row
from membership.config import get_settings
from membership.schema import Category, District, Institution, Province

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Return a shared Redis client for caching, or None if unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    redis_url = get_settings().redis_url
    if not redis_url:
        return None

    try:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        client.ping()
        _redis_client = client
        return client
    except Exception as e:
        logger.warning(f"⚠️ Redis cache unavailable: {e}")
        return None


class ReferenceDataStore:
    """
    Reference-table reader.

    Args:
        client_factory: returns a Supabase client (or None); defaults to the anon client
        cache_backend: redis client, or None to use only the local dict
        ttl_seconds: cache lifetime; 0 disables caching
    """

    def __init__(
        self,
        client_factory: Optional[Callable[[], Any]] = None,
        cache_backend: Optional[redis.Redis] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self._client_factory = client_factory or get_supabase_client
        self._redis = cache_backend
        self._ttl = get_settings().reference_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._local: Dict[str, Dict[str, Any]] = {}

    # --- cache -------------------------------------------------------------

    def _cache_get(self, key: str) -> Optional[List[Dict]]:
        if self._ttl <= 0:
            return None
        if self._redis is not None:
            try:
                cached_value = self._redis.get(f"refdata:{key}")
                if cached_value:
                    return json.loads(cached_value)
            except Exception as e:
                logger.warning(f"⚠️ Redis cache read failed: {e}")

        cached = self._local.get(key)
        if cached and (time.time() - cached["ts"]) < self._ttl:
            return cached["rows"]
        return None

    def _cache_set(self, key: str, rows: List[Dict]) -> None:
        if self._ttl <= 0:
            return
        self._local[key] = {"ts": time.time(), "rows": rows}
        if self._redis is not None:
            try:
                self._redis.setex(f"refdata:{key}", self._ttl, json.dumps(rows))
            except Exception as e:
                logger.warning(f"⚠️ Redis cache write failed: {e}")

    # --- fetch -------------------------------------------------------------

    def _select(self, table: str, columns: str, filters: Dict[str, Any]) -> List[Dict]:
        key = table + ":" + ",".join(f"{k}={v}" for k, v in sorted(filters.items()))
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        try:
            supabase = self._client_factory()
            if not supabase:
                logger.error(f"❌ No Supabase client for {table} lookup")
                return []
            query = supabase.table(table).select(columns)
            for column, value in filters.items():
                query = query.eq(column, value)
            result = query.execute()
            rows = result.data or []
        except Exception as e:
            logger.error(f"❌ Error fetching {table}: {e}")
            return []

        self._cache_set(key, rows)
        return rows

    def list_categories(self) -> List[Category]:
        rows = self._select("categories", "*", {})
        categories = []
        for row in rows:
            try:
                categories.append(category_from_row(row))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed category row {row!r}: {e}")
        return categories

    def list_provinces(self) -> List[Province]:
        return [Province(**row) for row in self._select("provinces", "id, name", {})]

    def list_districts(self, province_id: Optional[int]) -> List[District]:
        if province_id is None:
            return []
        rows = self._select("districts", "id, name, province_id", {"province_id": province_id})
        return [District(**{"province_id": province_id, **row}) for row in rows]

    def list_institutions(
        self,
        category_id: Optional[int],
        province_id: Optional[int] = None,
        district_id: Optional[int] = None,
    ) -> List[Institution]:
        """
        Institutions for a category. With province_id/district_id both given the
        lookup is scoped to that location too; direct-location callers pass neither.
        """
        if category_id is None:
            return []
        filters: Dict[str, Any] = {"category_id": category_id}
        if province_id is not None and district_id is not None:
            filters["province_id"] = province_id
            filters["district_id"] = district_id
        rows = self._select("institutions", "name", filters)
        return [Institution(name=row["name"], **filters) for row in rows if row.get("name")]


_default_store: Optional[ReferenceDataStore] = None


def get_reference_store() -> ReferenceDataStore:
    global _default_store
    if _default_store is None:
        _default_store = ReferenceDataStore(cache_backend=get_redis_client())
    return _default_store
