"""
User administration through the getUsers edge function.

The edge function holds the service role key; this client only forwards the
signed-in admin's JWT. Verbs:
    GET     list users
    POST    create user {email, password, user_metadata}
    PATCH   update user {userId, role | user_metadata | password}
    DELETE  ?userId=<id>
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from auth.supabase_client import get_functions_url
from membership.schema import AdminUser, UserMetadata, UserRole

logger = logging.getLogger(__name__)

USERS_FUNCTION = "getUsers"


class UserAdminError(Exception):
    """Raised when the edge function rejects a request or cannot be reached."""


def parse_admin_user(payload: Dict[str, Any]) -> AdminUser:
    """Build an AdminUser from the edge function's JSON, tolerating blank metadata."""
    raw_meta = payload.get("user_metadata") or {}
    role = raw_meta.get("role")
    metadata = UserMetadata(
        name=raw_meta.get("name") or raw_meta.get("full_name"),
        role=UserRole.ADMIN if role == UserRole.ADMIN.value else UserRole.USER,
        is_locked=bool(raw_meta.get("is_locked", False)),
    )
    return AdminUser(
        id=str(payload["id"]),
        email=payload.get("email"),
        user_metadata=metadata,
        created_at=payload.get("created_at"),
        last_sign_in_at=payload.get("last_sign_in_at"),
    )


class UserAdminClient:
    def __init__(self, access_token: str, base_url: Optional[str] = None, timeout: int = 10):
        self.access_token = access_token
        self.base_url = base_url or get_functions_url(USERS_FUNCTION)
        self.timeout = timeout
        if not self.base_url:
            raise UserAdminError("SUPABASE_URL is not configured.")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, fallback_error: str, **kwargs) -> Dict[str, Any]:
        try:
            response = requests.request(
                method, self.base_url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"User admin {method} failed: {e}")
            raise UserAdminError(fallback_error) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get("error") if isinstance(data, dict) else None
            raise UserAdminError(message or fallback_error)
        return data if isinstance(data, dict) else {}

    def list_users(self) -> List[AdminUser]:
        data = self._request("GET", "Failed to fetch users")
        return [parse_admin_user(u) for u in data.get("users") or []]

    def create_user(self, email: str, password: str, name: str = "", role: UserRole = UserRole.USER) -> AdminUser:
        if not email or not password:
            raise UserAdminError("Email and password are required.")
        metadata = UserMetadata(name=name or None, role=role, is_locked=False)
        data = self._request(
            "POST",
            "Create failed",
            json={"email": email, "password": password, "user_metadata": metadata.model_dump(mode="json")},
        )
        return parse_admin_user(data["user"])

    def update_role(self, user_id: str, role: UserRole) -> None:
        self._request("PATCH", "Update role failed", json={"userId": user_id, "role": UserRole(role).value})

    def update_metadata(self, user: AdminUser, patch: Dict[str, Any]) -> UserMetadata:
        """Merge patch into the user's current metadata and send the full result."""
        merged = user.user_metadata.merge(patch)
        self._request(
            "PATCH",
            "Update failed",
            json={"userId": user.id, "user_metadata": merged.model_dump(mode="json")},
        )
        return merged

    def set_locked(self, user: AdminUser, locked: bool) -> UserMetadata:
        return self.update_metadata(user, {"is_locked": locked})

    def change_password(self, user_id: str, password: str) -> None:
        if len(password or "") < 6:
            raise UserAdminError("Password must be at least 6 characters.")
        self._request("PATCH", "Update failed", json={"userId": user_id, "password": password})

    def delete_user(self, user_id: str) -> None:
        self._request("DELETE", "Delete failed", params={"userId": user_id})


def filter_users(users: List[AdminUser], term: str) -> List[AdminUser]:
    """Case-insensitive match on email or display name."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(users)
    return [
        u for u in users
        if needle in (u.email or "").lower() or needle in (u.user_metadata.name or "").lower()
    ]
