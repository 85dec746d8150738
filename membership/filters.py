"""
Member list filters and their translation into a PostgREST query.

One paging strategy is used everywhere: server-side range() with an exact
count, newest first.
"""

import math
import re
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from membership.classification import CategoryLike, is_direct_location, is_text_input_designation
from membership.schema import MemberStatus

# Characters that would break the or=(...) grammar or act as wildcards.
_UNSAFE_PATTERN_CHARS = re.compile(r"[%,()*\\]")

FILTER_FIELDS = (
    "name", "email", "nic", "phone", "address", "designation", "status", "gender",
    "category", "province", "district", "institution", "date_from", "date_to",
)


def clean_term(value: Optional[str]) -> str:
    """Trim a free-text term and strip pattern metacharacters."""
    return _UNSAFE_PATTERN_CHARS.sub("", value or "").strip()


def contains(value: str) -> str:
    return f"%{value}%"


class MemberFilters(BaseModel):
    name: str = ""
    email: str = ""
    nic: str = ""
    phone: str = ""
    address: str = ""
    designation: str = ""
    status: str = ""
    gender: str = ""
    category: str = ""
    province: str = ""
    district: str = ""
    institution: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    page: int = 1

    @field_validator(*[f for f in FILTER_FIELDS if not f.startswith("date_")], mode="before")
    @classmethod
    def _strip(cls, value):
        return (value or "").strip() if isinstance(value, (str, type(None))) else value

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _blank_date(cls, value):
        return value or None

    @field_validator("page", mode="before")
    @classmethod
    def _page(cls, value):
        try:
            return max(1, int(value or 1))
        except (TypeError, ValueError):
            return 1

    @classmethod
    def from_args(cls, args) -> "MemberFilters":
        """Build from request.args (or any mapping); unknown keys are ignored."""
        data = {key: args.get(key) for key in FILTER_FIELDS + ("page",) if args.get(key) is not None}
        return cls(**data)

    def filter_values(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"page"})

    def is_empty(self) -> bool:
        return not any(self.filter_values().values())

    def changed(self, **updates) -> "MemberFilters":
        """
        Copy with updates applied. Any change to a filter value resets the page to 1;
        a page-only update keeps the requested page.
        """
        page = updates.pop("page", None)
        current = self.filter_values()
        candidate = MemberFilters(**{**current, **updates})
        if candidate.filter_values() != current:
            return candidate.model_copy(update={"page": 1})
        return candidate.model_copy(update={"page": page if page is not None else self.page})

    def query_args(self) -> Dict[str, str]:
        """Non-empty filters as strings, for building pagination links."""
        args = {}
        for key, value in self.filter_values().items():
            if value:
                args[key] = value.isoformat() if isinstance(value, date) else str(value)
        return args


def apply_status_filter(query, status: MemberStatus):
    """
    Match rows whose stored status normalizes to status, the same way
    MemberStatus.normalize does: case-insensitive, with anything that is not a
    Verified or Rejected spelling (including no status) counting as Pending.
    """
    if status == MemberStatus.PENDING:
        decided = ",".join(f"status.not.ilike.{s}" for s in MemberStatus.decided_spellings())
        return query.or_(f"status.is.null,and({decided})")
    return query.or_(",".join(f"status.ilike.{s}" for s in status.spellings()))


def apply_filters(query, filters: MemberFilters, category: Optional[CategoryLike] = None):
    """
    Add every active filter to a form_responses select query.
    category is the resolved Category for filters.category, so its table flags
    decide location and designation handling; the name is used when omitted.
    Returns the query; ordering and paging are added by paginate().
    """
    if category is None:
        category = filters.category
    direct = bool(filters.category) and is_direct_location(category)

    # Exact matches
    if filters.category:
        query = query.eq("category", filters.category)
    if filters.gender:
        query = query.eq("gender", filters.gender)
    if filters.status:
        query = apply_status_filter(query, MemberStatus.normalize(filters.status))
    if filters.institution:
        query = query.eq("type_of_organization_hospital", filters.institution)
    if not direct:
        if filters.province:
            query = query.eq("province_work_place", filters.province)
        if filters.district:
            query = query.eq("district_work_place", filters.district)

    # Substring matches
    for column, raw in (
        ("name_in_full", filters.name),
        ("email", filters.email),
        ("nic_number", filters.nic),
    ):
        term = clean_term(raw)
        if term:
            query = query.ilike(column, contains(term))

    designation = clean_term(filters.designation)
    if designation:
        if not filters.category or is_text_input_designation(category):
            query = query.ilike("designation", contains(designation))
        else:
            query = query.eq("designation", filters.designation)

    # Either-of-two-columns matches
    phone = clean_term(filters.phone)
    if phone:
        query = query.or_(
            f"phone_number_personal.ilike.{contains(phone)},whatsapp_number.ilike.{contains(phone)}"
        )
    address = clean_term(filters.address)
    if address:
        query = query.or_(
            f"official_address.ilike.{contains(address)},personal_address.ilike.{contains(address)}"
        )

    # Inclusive date range on created_at
    if filters.date_from:
        query = query.gte("created_at", datetime.combine(filters.date_from, time.min).isoformat())
    if filters.date_to:
        query = query.lte("created_at", datetime.combine(filters.date_to, time.max).isoformat())

    return query


def page_bounds(page: int, page_size: int) -> tuple:
    """Inclusive (start, end) row offsets for range()."""
    start = (max(1, page) - 1) * page_size
    return start, start + page_size - 1


def paginate(query, page: int, page_size: int):
    start, end = page_bounds(page, page_size)
    return query.order("created_at", desc=True).range(start, end)


class MemberPage(BaseModel):
    records: List[Dict[str, Any]] = []
    total: int = 0
    page: int = 1
    page_size: int = 10
    error: Optional[str] = None

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages
