"""
Supabase PostgreSQL storage for membership applications (form_responses).
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from auth.supabase_client import get_supabase_client, get_service_role_client
from membership.filters import MemberFilters, MemberPage, apply_filters, apply_status_filter, paginate
from membership.schema import Category, MemberRecord, MemberStatus

logger = logging.getLogger(__name__)

TABLE = "form_responses"


def _client(access_token: Optional[str] = None):
    """Prefer an authenticated client when possible (RLS relies on auth.uid())."""
    return get_supabase_client(access_token=access_token) if access_token else get_supabase_client()


def init_database() -> bool:
    """Verify Supabase connection and that form_responses is readable."""
    try:
        supabase = _client()
        if not supabase:
            logger.warning("⚠️ Supabase is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)")
            return False
        supabase.table(TABLE).select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.warning(f"⚠️ Could not connect to Supabase: {e}")
        return False


def insert_member_record(record: MemberRecord, access_token: Optional[str] = None) -> Dict[str, Any]:
    """
    Insert a new application row.

    Returns:
        dict with success, id (when the insert returned the row) and error
    """
    try:
        supabase = _client(access_token)
        if not supabase:
            raise RuntimeError("Could not initialize Supabase client")

        result = supabase.table(TABLE).insert([record.to_row()]).execute()
        row = result.data[0] if result.data else {}
        logger.info(f"✅ Saved application for {record.email}")
        return {"success": True, "id": row.get("id"), "error": None}
    except Exception as e:
        logger.error(f"❌ Error saving application to Supabase: {e}")
        return {"success": False, "id": None, "error": str(e)}


def get_member_by_id(member_id: Any, access_token: Optional[str] = None) -> Optional[Dict]:
    try:
        supabase = _client(access_token)
        if not supabase:
            logger.error("❌ Could not initialize Supabase client")
            return None

        result = supabase.table(TABLE).select("*").eq("id", member_id).limit(1).execute()
        if result.data:
            return result.data[0]
        return None
    except Exception as e:
        logger.error(f"❌ Error getting member {member_id} from Supabase: {e}")
        return None


def search_members(
    filters: MemberFilters,
    page_size: int,
    access_token: Optional[str] = None,
    category: Optional[Category] = None,
) -> MemberPage:
    """
    Run one filtered, ordered, paged query.
    category is the resolved Category for filters.category (see apply_filters).
    Errors come back as an empty page with error set, never as exceptions.
    """
    empty = MemberPage(page=filters.page, page_size=page_size)
    try:
        supabase = _client(access_token)
        if not supabase:
            return empty.model_copy(update={"error": "Could not initialize Supabase client"})

        query = supabase.table(TABLE).select("*", count="exact")
        query = apply_filters(query, filters, category)
        query = paginate(query, filters.page, page_size)
        result = query.execute()

        total = result.count if getattr(result, "count", None) is not None else len(result.data or [])
        return MemberPage(
            records=result.data or [],
            total=int(total),
            page=filters.page,
            page_size=page_size,
        )
    except Exception as e:
        logger.error(f"❌ Error searching members: {e}")
        return empty.model_copy(update={"error": str(e)})


def update_member_record(member_id: Any, updates: Dict[str, Any], access_token: Optional[str] = None) -> bool:
    try:
        supabase = _client(access_token)
        if not supabase:
            logger.error("❌ Could not initialize Supabase client")
            return False

        updates = dict(updates)
        updates["updated_at"] = datetime.now().isoformat()
        result = supabase.table(TABLE).update(updates).eq("id", member_id).execute()

        if result.data:
            logger.info(f"✅ Updated member {member_id}")
            return True
        logger.warning(f"⚠️ Update returned no data for member {member_id}")
        return False
    except Exception as e:
        logger.error(f"❌ Error updating member {member_id}: {e}")
        return False


def set_member_status(member_id: Any, status: Any, access_token: Optional[str] = None) -> bool:
    """Write the canonical spelling of status."""
    return update_member_record(member_id, {"status": MemberStatus.normalize(status).value}, access_token)


def delete_member_record(member_id: Any, access_token: Optional[str] = None) -> bool:
    try:
        supabase = _client(access_token)
        if not supabase:
            logger.error("❌ Could not initialize Supabase client")
            return False

        supabase.table(TABLE).delete().eq("id", member_id).execute()
        logger.info(f"🗑️ Deleted member {member_id}")
        return True
    except Exception as e:
        logger.error(f"❌ Error deleting member {member_id}: {e}")
        return False


def get_status_counts(access_token: Optional[str] = None) -> Dict[str, int]:
    """Row counts per canonical status plus a total."""
    counts = {"total": 0, **{s.value: 0 for s in MemberStatus}}
    try:
        supabase = _client(access_token) or get_service_role_client()
        if not supabase:
            return counts

        def _count(status: Optional[MemberStatus] = None) -> int:
            query = supabase.table(TABLE).select("id", count="exact", head=True)
            if status is not None:
                query = apply_status_filter(query, status)
            result = query.execute()
            if getattr(result, "count", None) is not None:
                return int(result.count)
            return len(result.data) if result.data else 0

        counts["total"] = _count()
        for status in MemberStatus:
            counts[status.value] = _count(status)
        return counts
    except Exception as e:
        logger.error(f"❌ Error getting member stats: {e}")
        return counts
