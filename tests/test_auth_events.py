"""
Tests for the auth event bus and locked-account enforcement.
"""

from unittest.mock import Mock

import pytest

from auth.events import AuthEvent, AuthEventBus, enforce_account_lock, is_session_locked


@pytest.fixture
def bus():
    return AuthEventBus()


LOCKED = {"user_id": "u1", "user_metadata": {"is_locked": True}}
ACTIVE = {"user_id": "u2", "user_metadata": {"is_locked": False}}


class TestAuthEventBus:
    def test_publish_reaches_subscribers_in_order(self, bus):
        seen = []
        bus.subscribe(lambda event, session: seen.append(("a", event)))
        bus.subscribe(lambda event, session: seen.append(("b", event)))

        delivered = bus.publish(AuthEvent.SIGNED_IN, ACTIVE)

        assert delivered == 2
        assert seen == [("a", AuthEvent.SIGNED_IN), ("b", AuthEvent.SIGNED_IN)]

    def test_unsubscribe_stops_delivery(self, bus):
        listener = Mock()
        subscription = bus.subscribe(listener)

        subscription.unsubscribe()

        assert bus.publish(AuthEvent.USER_UPDATED, ACTIVE) == 0
        listener.assert_not_called()

    def test_unsubscribe_twice_is_harmless(self, bus):
        subscription = bus.subscribe(Mock())
        subscription.unsubscribe()
        subscription.unsubscribe()
        assert bus.publish(AuthEvent.SIGNED_IN) == 0

    def test_failing_listener_does_not_block_others(self, bus):
        after = Mock()
        bus.subscribe(Mock(side_effect=RuntimeError("boom")))
        bus.subscribe(after)

        delivered = bus.publish(AuthEvent.TOKEN_REFRESHED, ACTIVE)

        assert delivered == 1
        after.assert_called_once_with(AuthEvent.TOKEN_REFRESHED, ACTIVE)


class TestAccountLock:
    def test_is_session_locked(self):
        assert is_session_locked(LOCKED)
        assert not is_session_locked(ACTIVE)
        assert not is_session_locked(None)
        assert not is_session_locked({"user_metadata": None})

    @pytest.mark.parametrize("event", [AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED, AuthEvent.USER_UPDATED])
    def test_locked_user_signed_out(self, bus, event):
        sign_out = Mock()
        bus.subscribe(enforce_account_lock(sign_out))
        bus.publish(event, LOCKED)
        sign_out.assert_called_once_with()

    def test_active_user_untouched(self, bus):
        sign_out = Mock()
        bus.subscribe(enforce_account_lock(sign_out))
        bus.publish(AuthEvent.SIGNED_IN, ACTIVE)
        sign_out.assert_not_called()

    def test_sign_out_event_ignored(self, bus):
        sign_out = Mock()
        bus.subscribe(enforce_account_lock(sign_out))
        bus.publish(AuthEvent.SIGNED_OUT, LOCKED)
        sign_out.assert_not_called()
