"""
Tests for record mapping between rows, list views and the form.
"""

from datetime import date

import pytest

from membership.mapping import (
    age_on,
    is_record_complete,
    is_signature_reference,
    map_record_to_member,
    parse_date,
    prefill_from_record,
    search_members_in_memory,
    signature_embed_url,
    split_specialties,
    valid_marital_status,
)


ROW = {
    "id": 12,
    "name_in_full": "Sunil Rathnayake",
    "email": "sunil@example.lk",
    "nic_number": " 197812345V ",
    "dob": "1978-08-20",
    "designation": "Senior Nursing Officer",
    "phone_number_personal": "0779876543",
    "educational_qualifications": "BSc Nursing",
    "nursing_council_registration_number": "SLNC-1",
    "specialties_special_trainings": "ICU, , Theatre ,Dialysis",
    "marital_status": "Yes",
    "status": "approved",
    "signature": "https://drive.google.com/file/d/abc123/view?usp=sharing",
    "created_at": "2024-06-01T10:00:00+00:00",
}


class TestMapRecordToMember:
    def test_display_fields(self):
        member = map_record_to_member(ROW, today=date(2024, 8, 19))

        assert member["full_name"] == "Sunil Rathnayake"
        assert member["nic_number"] == "197812345V"
        assert member["status"] == "Verified"
        assert member["specialties"] == ["ICU", "Theatre", "Dialysis"]
        assert member["age"] == 45
        assert member["is_complete"] is True
        assert member["signature_url"] == "https://drive.google.com/uc?export=view&id=abc123"
        assert member["submitted_at"] == ROW["created_at"]

    def test_defaults_for_sparse_row(self):
        member = map_record_to_member({"id": 1})
        assert member["full_name"] == "Unknown"
        assert member["email"] == "N/A"
        assert member["status"] == "Pending"
        assert member["age"] is None
        assert member["is_complete"] is False
        assert member["specialties"] == []


class TestHelpers:
    def test_age_counts_birthday(self):
        assert age_on(date(1990, 5, 10), date(2024, 5, 9)) == 33
        assert age_on(date(1990, 5, 10), date(2024, 5, 10)) == 34

    @pytest.mark.parametrize("value,expected", [
        ("2024-01-02", date(2024, 1, 2)),
        ("2024-01-02T10:11:12Z", date(2024, 1, 2)),
        ("2024-01-02 garbage", date(2024, 1, 2)),
        ("not a date", None),
        (None, None),
    ])
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("Yes", "Married"), ("No", "Single"), ("Widowed", "Widowed"), ("maybe", ""), (None, ""),
    ])
    def test_valid_marital_status(self, value, expected):
        assert valid_marital_status(value) == expected

    def test_split_specialties(self):
        assert split_specialties(None) == []
        assert split_specialties("A,B") == ["A", "B"]

    def test_signature_embed_url(self):
        assert signature_embed_url("https://drive.google.com/open?id=XYZ&x=1") == \
            "https://drive.google.com/uc?export=view&id=XYZ"
        assert signature_embed_url("data:image/png;base64,AAA") == "data:image/png;base64,AAA"
        assert signature_embed_url("https://cdn.example/s.png") == "https://cdn.example/s.png"

    @pytest.mark.parametrize("value,accepted", [
        ("data:image/png;base64,AAA", True),
        ("https://drive.google.com/file/d/abc/view", True),
        ("https://DRIVE.GOOGLE.COM/open?id=abc", True),
        ("http://drive.google.com/file/d/abc/view", False),
        ("https://10.0.0.5/sig.png", False),
        ("data:text/plain;base64,AAA", False),
        ("", False),
        (None, False),
    ])
    def test_is_signature_reference(self, value, accepted):
        assert is_signature_reference(value) is accepted

    def test_signature_url_only_for_accepted_links(self):
        member = map_record_to_member(dict(ROW, signature="http://169.254.169.254/latest/meta-data/"))
        assert member["signature_url"] is None

    def test_incomplete_when_any_field_blank(self):
        row = dict(ROW, educational_qualifications=" ")
        assert is_record_complete(row) is False


class TestPrefill:
    def test_prefill_uses_form_columns(self):
        form = prefill_from_record(ROW)
        assert form["dob"] == "1978-08-20"
        assert form["marital_status"] == "Married"
        assert form["specialties_special_trainings"] == "ICU, Theatre, Dialysis"
        assert form["province_work_place"] == ""
        assert form["signature"] == ROW["signature"]


class TestInMemoryListing:
    @pytest.fixture
    def members(self):
        return [
            map_record_to_member({"id": 1, "name_in_full": "Amal", "nic_number": "111V", "status": "pending"}),
            map_record_to_member({"id": 2, "name_in_full": "Bimal", "designation": "Nursing Tutor",
                                  "status": "Verified"}),
            map_record_to_member({"id": 3, "name_in_full": "Chamari", "email": "c@tutor.lk",
                                  "status": "Rejected"}),
        ]

    def test_search_matches_name_email_nic_designation(self, members):
        assert [m["id"] for m in search_members_in_memory(members, "tutor")] == [2, 3]
        assert [m["id"] for m in search_members_in_memory(members, "111v")] == [1]
        assert len(search_members_in_memory(members, "  ")) == 3
