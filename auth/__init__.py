"""
Auth package: Supabase sessions, the auth-state event bus, and user administration.
"""

from auth.events import AuthEvent, AuthEventBus, auth_events

__all__ = ["AuthEvent", "AuthEventBus", "auth_events"]
