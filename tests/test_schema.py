"""
Tests for status normalization and user metadata handling.
"""

import pytest

from membership.schema import AdminUser, MemberRecord, MemberStatus, UserMetadata, UserRole


class TestMemberStatus:
    @pytest.mark.parametrize("value,expected", [
        ("pending", MemberStatus.PENDING),
        ("Pending", MemberStatus.PENDING),
        ("approved", MemberStatus.VERIFIED),
        ("VERIFIED", MemberStatus.VERIFIED),
        ("rejected", MemberStatus.REJECTED),
        ("", MemberStatus.PENDING),
        (None, MemberStatus.PENDING),
        ("on hold", MemberStatus.PENDING),
    ])
    def test_normalize(self, value, expected):
        assert MemberStatus.normalize(value) == expected

    def test_spellings_cover_legacy_values(self):
        assert set(MemberStatus.VERIFIED.spellings()) == {"verified", "approved"}
        assert set(MemberStatus.decided_spellings()) == {"verified", "approved", "rejected"}

    @pytest.mark.parametrize("value", ["VERIFIED", "Approved", "rejected"])
    def test_decided_values_are_never_pending(self, value):
        assert value.lower() in MemberStatus.decided_spellings()
        assert MemberStatus.normalize(value) != MemberStatus.PENDING


class TestUserMetadata:
    def test_merge_applies_only_given_keys(self):
        meta = UserMetadata(name="Ruwan", role=UserRole.ADMIN, is_locked=False)
        merged = meta.merge({"is_locked": True})

        assert merged.is_locked is True
        assert merged.name == "Ruwan"
        assert merged.role == UserRole.ADMIN
        assert meta.is_locked is False

    def test_merge_ignores_none_and_unknown_keys(self):
        merged = UserMetadata(name="Ruwan").merge({"name": None, "avatar": "x.png"})
        assert merged.name == "Ruwan"
        assert not hasattr(merged, "avatar")

    def test_merge_validates_role(self):
        assert UserMetadata().merge({"role": "admin"}).role == UserRole.ADMIN

    def test_admin_user_properties(self):
        user = AdminUser(id="u1", user_metadata=UserMetadata(role=UserRole.ADMIN, is_locked=True))
        assert user.is_admin
        assert user.is_locked
        assert not AdminUser(id="u2").is_admin


class TestMemberRecord:
    def test_to_row_leaves_out_unset_server_columns(self):
        row = MemberRecord(name_in_full="A", email="a@b.lk", nic_number="1").to_row()
        assert "id" not in row
        assert "created_at" not in row
        assert row["status"] == "Pending"

    def test_to_row_keeps_id_when_set(self):
        row = MemberRecord(id=5, name_in_full="A", email="a@b.lk", nic_number="1").to_row()
        assert row["id"] == 5
