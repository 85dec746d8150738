"""
Supabase clients for the membership portal, plus sign-in/sign-out helpers.

Three keys are involved:
    SUPABASE_ANON_KEY          browser-safe key; RLS applies as the signed-in user
    SUPABASE_SERVICE_ROLE_KEY  server-only key for counts/logs when no user token is present
    the user's JWT             sent as Bearer on PostgREST calls so auth.uid() resolves
"""

import os
import logging
from supabase import create_client, Client
from typing import Optional, Any

logger = logging.getLogger(__name__)


def normalize_supabase_url(url: Optional[str]) -> Optional[str]:
    """Project URL with exactly one trailing slash, or None when unset."""
    if not url:
        return None
    return url if url.endswith("/") else f"{url}/"


def get_supabase_client(access_token: Optional[str] = None) -> Optional[Client]:
    """
    Anon-key client. With access_token, PostgREST requests run as that user.

    Returns:
        Client, or None when SUPABASE_URL / SUPABASE_ANON_KEY are not set
    """
    url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    anon_key = os.environ.get("SUPABASE_ANON_KEY")
    if not url or not anon_key:
        return None

    try:
        client: Client = create_client(url, anon_key)
        if access_token:
            client.postgrest.auth(access_token)
        return client
    except Exception as e:
        logger.error(f"❌ Could not create Supabase client: {e}")
        return None


def get_service_role_client() -> Optional[Client]:
    url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    service_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not service_key:
        return None
    try:
        return create_client(url, service_key)
    except Exception as e:
        logger.error(f"❌ Could not create Supabase service client: {e}")
        return None


def get_functions_url(function_name: str) -> Optional[str]:
    """Edge function endpoint, e.g. https://<ref>.supabase.co/functions/v1/getUsers."""
    url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    if not url:
        return None
    return f"{url}functions/v1/{function_name}"


def sign_in(client: Client, email: str, password: str) -> Any:
    """
    Email/password sign-in. The response carries .user (with user_metadata) and .session.
    Bad credentials raise the Supabase auth error.
    """
    return client.auth.sign_in_with_password({"email": email, "password": password})


def sign_out(client: Optional[Client]) -> None:
    """Revoke the Supabase session. The caller clears the Flask session either way."""
    if not client:
        return
    try:
        client.auth.sign_out()
    except Exception as e:
        logger.warning(f"⚠️ Supabase sign-out failed: {e}")
