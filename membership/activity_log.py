"""
Read access to the user_logs audit trail.

Rows are written by database triggers and edge functions; this app only reads them.
"""

import logging
from typing import List, Optional

from auth.supabase_client import get_supabase_client, get_service_role_client
from membership.schema import ActivityLogEntry

logger = logging.getLogger(__name__)

LOG_TABLE = "user_logs"


def get_user_logs(user_id: str, access_token: Optional[str] = None, limit: int = 200) -> List[ActivityLogEntry]:
    """
    Activity entries for one user, newest first.

    Returns:
        List of entries; empty on any error (never raises)
    """
    try:
        client = get_supabase_client(access_token=access_token) if access_token else get_service_role_client()
        if not client:
            logger.warning(f"⚠️ Could not load activity log for {user_id} - no Supabase client")
            return []

        result = (
            client.table(LOG_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [ActivityLogEntry(**row) for row in (result.data or [])]
    except Exception as e:
        logger.error(f"❌ Error fetching activity log for {user_id}: {e}")
        return []
