"""Shared pytest fixtures: in-memory reference data and a fake Supabase query builder."""

import os
import re
import sys
from itertools import count
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from membership.classification import category_from_row  # noqa: E402
from membership.schema import District, Institution, Province  # noqa: E402


CATEGORY_ROWS = [
    {"id": 1, "name": "Hospital Services"},
    {"id": 2, "name": "Public Health"},
    {"id": 3, "name": "Line Ministry"},
    {"id": 4, "name": "Education"},
    {"id": 5, "name": "Nursing Training School"},
    {"id": 6, "name": "RDHS"},
]

PROVINCES = [Province(id=1, name="Western"), Province(id=2, name="Southern")]

DISTRICTS = {
    1: [District(id=11, name="Colombo", province_id=1), District(id=12, name="Gampaha", province_id=1)],
    2: [District(id=21, name="Galle", province_id=2), District(id=22, name="Matara", province_id=2)],
}

# (category_id, province_id, district_id) -> institution names
INSTITUTIONS = {
    (1, 1, 11): ["General Hospital", "National Hospital"],
    (1, 1, 12): ["Gampaha Base Hospital"],
    (1, 2, 21): ["Teaching Hospital Karapitiya"],
    (2, 1, 11): ["MOH Colombo"],
    (3, None, None): ["Ministry of Health"],
    (5, None, None): ["School of Nursing Colombo", "School of Nursing Kandy"],
}


class FakeReferenceStore:
    """Stand-in for ReferenceDataStore that records every lookup."""

    def __init__(self):
        self.calls = []

    def list_categories(self):
        self.calls.append(("categories",))
        return [category_from_row(row) for row in CATEGORY_ROWS]

    def list_provinces(self):
        self.calls.append(("provinces",))
        return list(PROVINCES)

    def list_districts(self, province_id):
        self.calls.append(("districts", province_id))
        return list(DISTRICTS.get(province_id, []))

    def list_institutions(self, category_id, province_id=None, district_id=None):
        self.calls.append(("institutions", category_id, province_id, district_id))
        names = INSTITUTIONS.get((category_id, province_id, district_id), [])
        return [
            Institution(name=n, category_id=category_id, province_id=province_id, district_id=district_id)
            for n in names
        ]


def _split_top_level(expr):
    """Split a PostgREST or=() body on commas outside parentheses."""
    parts, depth, current = [], 0, ""
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    if current:
        parts.append(current)
    return parts


def _like(pattern):
    """ilike as PostgREST runs it: whole-value, case-insensitive, % as wildcard."""
    regex = re.compile(".*".join(re.escape(part) for part in pattern.split("%")), re.IGNORECASE | re.DOTALL)
    return lambda value: value is not None and regex.fullmatch(str(value)) is not None


def _condition(part):
    if part.startswith("and(") and part.endswith(")"):
        conditions = [_condition(p) for p in _split_top_level(part[4:-1])]
        return lambda r: all(c(r) for c in conditions)
    column, op, value = part.split(".", 2)
    if op == "not":
        inner_op, inner_value = value.split(".", 1)
        inner = _condition(f"{column}.{inner_op}.{inner_value}")
        # SQL: NOT on a null comparison is still null, so the row is excluded.
        return lambda r: r.get(column) is not None and not inner(r)
    if op == "ilike":
        matches = _like(value)
        return lambda r: matches(r.get(column))
    if op == "is" and value == "null":
        return lambda r: r.get(column) is None
    if op == "in":
        values = value.strip("()").split(",")
        return lambda r: r.get(column) in values
    if op == "eq":
        return lambda r: str(r.get(column)) == value
    raise ValueError(f"Unsupported or() operator: {op}")


class FakeQuery:
    """
    Chainable query builder evaluated against FakeSupabase's in-memory tables.
    Every builder call is kept in .calls for assertions.
    """

    def __init__(self, db, table):
        self.db = db
        self.table_name = table
        self.calls = []
        self._predicates = []
        self._op = "select"
        self._payload = None
        self._count = None
        self._head = False
        self._order = None
        self._range = None
        self._limit = None

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, columns="*", count=None, head=False):
        self._count = count
        self._head = head
        return self._record("select", columns, count=count, head=head)

    def insert(self, rows):
        self._op, self._payload = "insert", rows
        return self._record("insert", rows)

    def update(self, values):
        self._op, self._payload = "update", values
        return self._record("update", values)

    def delete(self):
        self._op = "delete"
        return self._record("delete")

    def eq(self, column, value):
        self._predicates.append(lambda r: r.get(column) == value)
        return self._record("eq", column, value)

    def ilike(self, column, pattern):
        matches = _like(pattern)
        self._predicates.append(lambda r: matches(r.get(column)))
        return self._record("ilike", column, pattern)

    def in_(self, column, values):
        allowed = list(values)
        self._predicates.append(lambda r: r.get(column) in allowed)
        return self._record("in_", column, allowed)

    def or_(self, expr):
        conditions = [_condition(p) for p in _split_top_level(expr)]
        self._predicates.append(lambda r: any(c(r) for c in conditions))
        return self._record("or_", expr)

    def gte(self, column, value):
        self._predicates.append(lambda r: str(r.get(column) or "") >= value)
        return self._record("gte", column, value)

    def lte(self, column, value):
        self._predicates.append(lambda r: str(r.get(column) or "") <= value)
        return self._record("lte", column, value)

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self._record("order", column, desc=desc)

    def range(self, start, end):
        self._range = (start, end)
        return self._record("range", start, end)

    def limit(self, n):
        self._limit = n
        return self._record("limit", n)

    def call_names(self):
        return [c[0] for c in self.calls]

    def execute(self):
        if self.db.fail:
            raise RuntimeError("connection refused")
        rows = self.db.tables.setdefault(self.table_name, [])

        if self._op == "insert":
            inserted = []
            for row in self._payload:
                row = dict(row)
                row.setdefault("id", next(self.db.ids))
                row.setdefault("created_at", self.db.now())
                rows.append(row)
                inserted.append(dict(row))
            return Mock(data=inserted, count=None)

        matched = [r for r in rows if all(p(r) for p in self._predicates)]
        if self._op == "update":
            for r in matched:
                r.update(self._payload)
            return Mock(data=[dict(r) for r in matched], count=None)
        if self._op == "delete":
            for r in matched:
                rows.remove(r)
            return Mock(data=[dict(r) for r in matched], count=None)

        total = len(matched) if self._count == "exact" else None
        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: str(r.get(column) or ""), reverse=desc)
        if self._range:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[:self._limit]
        data = [] if self._head else [dict(r) for r in matched]
        return Mock(data=data, count=total)


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.queries = []
        self.fail = False
        self.ids = count(1000)
        self._clock = count(1)

    def now(self):
        return f"2030-01-01T00:00:{next(self._clock) % 60:02d}"

    def table(self, name):
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query


@pytest.fixture
def reference_store():
    return FakeReferenceStore()


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture(autouse=True)
def no_supabase_env(monkeypatch):
    """Tests never reach a real project or Redis."""
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
