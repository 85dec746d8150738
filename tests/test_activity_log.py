"""
Tests for reading the user_logs audit trail.
"""

from unittest.mock import patch

from conftest import FakeSupabase
from membership.activity_log import LOG_TABLE, get_user_logs


LOGS = [
    {"id": 1, "user_id": "u1", "action": "login", "details": None, "created_at": "2024-01-01T08:00:00"},
    {"id": 2, "user_id": "u2", "action": "login", "details": None, "created_at": "2024-01-02T08:00:00"},
    {"id": 3, "user_id": "u1", "action": "update_status", "details": {"id": 5}, "created_at": "2024-01-03T08:00:00"},
]


class TestGetUserLogs:
    def test_newest_first_for_one_user(self):
        fake = FakeSupabase({LOG_TABLE: LOGS})
        with patch("membership.activity_log.get_supabase_client", return_value=fake):
            logs = get_user_logs("u1", access_token="jwt")

        assert [entry.id for entry in logs] == [3, 1]
        assert logs[0].details == {"id": 5}

    def test_error_returns_empty(self):
        fake = FakeSupabase({LOG_TABLE: LOGS})
        fake.fail = True
        with patch("membership.activity_log.get_supabase_client", return_value=fake):
            assert get_user_logs("u1", access_token="jwt") == []

    def test_service_client_without_token(self):
        fake = FakeSupabase({LOG_TABLE: LOGS})
        with patch("membership.activity_log.get_service_role_client", return_value=fake) as mock_service:
            logs = get_user_logs("u2")
        mock_service.assert_called_once_with()
        assert [entry.action for entry in logs] == ["login"]

    def test_no_client(self):
        with patch("membership.activity_log.get_service_role_client", return_value=None):
            assert get_user_logs("u1") == []
