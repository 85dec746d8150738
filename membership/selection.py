"""
Cascading selection for the work-place section of the application form.

Dependency chain:
    category -> province -> district -> institution
    category -> designation (free text or fixed list)

Assigning an upstream field clears every downstream value and recomputes
the option sets that depend on it. Each option set carries a generation
number so a fetch started before a newer change can't overwrite the newer
result.

Within one request the engine derives options synchronously, so its own
tokens are never stale when they complete. The guard that matters in practice
runs in the browser, where application_form.html drops any /api/options
reply whose echoed generation is not the latest.
begin_fetch/complete_fetch apply the same rule for callers that fetch out of
band.
"""

import logging
from typing import Dict, List, Optional, Set

from membership.classification import (
    designation_options,
    is_direct_location,
    is_text_input_designation,
)
from membership.reference_data import ReferenceDataStore
from membership.schema import (
    Category,
    DesignationInputMode,
    District,
    Province,
    SelectionState,
)

logger = logging.getLogger(__name__)

FIELD_ORDER = ("category", "province", "district", "institution", "designation", "rdhs")

# Values cleared when the key field changes (before the direct-location rule).
CLEARS = {
    "category": ("designation", "institution"),
    "province": ("district", "institution"),
    "district": ("institution",),
}

# form_responses column holding each selection field.
RECORD_COLUMNS = {
    "category": "category",
    "province": "province_work_place",
    "district": "district_work_place",
    "institution": "type_of_organization_hospital",
    "designation": "designation",
    "rdhs": "rdhs",
}

# Option sets recomputed when the key field changes.
DEPENDENT_OPTIONS = {
    "category": ("districts", "institutions", "designations"),
    "province": ("districts", "institutions"),
    "district": ("institutions",),
}


def resolve_category(categories: List[Category], name: str) -> Optional[Category]:
    """
    Category row for a name. Names missing from the table still classify by
    the built-in name sets; they get id 0 so no institution lookup matches.
    """
    if not name:
        return None
    for category in categories:
        if category.name == name:
            return category
    return Category(
        id=0,
        name=name,
        is_direct_location=is_direct_location(name),
        designation_input_mode=(
            DesignationInputMode.FREE_TEXT if is_text_input_designation(name) else DesignationInputMode.LIST
        ),
    )


def derive_districts(
    store: ReferenceDataStore,
    category: Optional[Category],
    province: Optional[Province],
) -> List[District]:
    if province is None or (category is not None and is_direct_location(category)):
        return []
    return store.list_districts(province.id)


def derive_institutions(
    store: ReferenceDataStore,
    category: Optional[Category],
    province: Optional[Province],
    district: Optional[District],
) -> List[str]:
    if category is None or not category.id:
        return []
    if is_direct_location(category):
        rows = store.list_institutions(category.id)
    elif province is not None and district is not None:
        rows = store.list_institutions(category.id, province.id, district.id)
    else:
        return []
    return [row.name for row in rows]


class SelectionEngine:
    """
    Holds one SelectionState plus the option sets derived from it.

    Args:
        store: reference-data reader
        state: starting values, applied in dependency order
    """

    def __init__(self, store: ReferenceDataStore, state: Optional[SelectionState] = None):
        self.store = store
        self.state = SelectionState()

        # Static lists, fetched once.
        self.categories: List[Category] = store.list_categories()
        self.provinces: List[Province] = store.list_provinces()

        self.districts: List[District] = []
        self.institutions: List[str] = []
        self.designations: Optional[List[str]] = []

        self._generations: Dict[str, int] = {"districts": 0, "institutions": 0, "designations": 0}

        if state is not None:
            self.load(state)

    @classmethod
    def from_record(cls, store: ReferenceDataStore, row: Dict) -> "SelectionEngine":
        """Engine restored from a form_responses row or a posted form keyed by column name."""
        state = SelectionState(**{
            field: str(row.get(column) or "").strip() for field, column in RECORD_COLUMNS.items()
        })
        return cls(store, state)

    # --- lookups -----------------------------------------------------------

    @property
    def category(self) -> Optional[Category]:
        return resolve_category(self.categories, self.state.category)

    @property
    def province(self) -> Optional[Province]:
        return next((p for p in self.provinces if p.name == self.state.province), None)

    @property
    def district(self) -> Optional[District]:
        return next((d for d in self.districts if d.name == self.state.district), None)

    @property
    def direct_location(self) -> bool:
        category = self.category
        return category is not None and is_direct_location(category)

    @property
    def designation_mode(self) -> Optional[DesignationInputMode]:
        """None until a category is chosen."""
        category = self.category
        if category is None:
            return None
        if is_text_input_designation(category):
            return DesignationInputMode.FREE_TEXT
        return DesignationInputMode.LIST

    # --- stale-response guard ----------------------------------------------

    def begin_fetch(self, option_set: str) -> int:
        """Start a fetch for an option set and return its token."""
        self._generations[option_set] += 1
        return self._generations[option_set]

    def complete_fetch(self, option_set: str, token: int, options) -> bool:
        """
        Store fetched options if token is still the latest for the option set.

        Returns:
            False when a newer fetch has started since token was issued
        """
        if token != self._generations[option_set]:
            logger.debug(f"Discarding stale {option_set} result (token {token})")
            return False
        setattr(self, option_set, options)
        return True

    def generation(self, option_set: str) -> int:
        return self._generations[option_set]

    # --- transitions -------------------------------------------------------

    def assign(self, field: str, value: Optional[str]) -> Set[str]:
        """
        Set one field, clear what depends on it and recompute dependent option sets.

        Returns:
            Names of the option sets that were recomputed
        """
        if field not in FIELD_ORDER:
            raise ValueError(f"Unknown selection field: {field}")

        value = (value or "").strip()
        if field in ("province", "district", "rdhs") and self.direct_location:
            value = ""
        setattr(self.state, field, value)

        for cleared in CLEARS.get(field, ()):
            setattr(self.state, cleared, "")
        if field == "category" and self.direct_location:
            self.state.province = ""
            self.state.district = ""
            self.state.rdhs = ""

        recomputed = set(DEPENDENT_OPTIONS.get(field, ()))
        for option_set in DEPENDENT_OPTIONS.get(field, ()):
            self._recompute(option_set)
        return recomputed

    def load(self, state: SelectionState) -> None:
        """Apply every field of state in dependency order without losing downstream values."""
        for field in FIELD_ORDER:
            value = getattr(state, field)
            if value:
                self.assign(field, value)

    def _recompute(self, option_set: str) -> None:
        token = self.begin_fetch(option_set)
        if option_set == "districts":
            options = derive_districts(self.store, self.category, self.province)
        elif option_set == "institutions":
            options = derive_institutions(self.store, self.category, self.province, self.district)
        else:
            options = designation_options(self.category) if self.category is not None else []
        self.complete_fetch(option_set, token, options)

    # --- queries -----------------------------------------------------------

    def visible_fields(self) -> Dict[str, bool]:
        has_category = self.category is not None
        direct = self.direct_location
        return {
            "category": True,
            "province": has_category and not direct,
            "district": has_category and not direct and bool(self.state.province),
            "rdhs": has_category and not direct,
            "institution": has_category and (direct or bool(self.state.district)),
            "designation": has_category,
        }

    def validate(self) -> List[str]:
        """
        Fields whose value is outside the current option set.
        Empty values are not reported; required-field checks live in validate.py.
        """
        errors = []
        state = self.state
        if state.category and self.categories and state.category not in {c.name for c in self.categories}:
            errors.append("category")
        if not self.direct_location:
            if state.province and self.province is None:
                errors.append("province")
            if state.district and self.district is None:
                errors.append("district")
        if state.institution and state.institution not in self.institutions:
            errors.append("institution")
        if (
            state.designation
            and self.designation_mode == DesignationInputMode.LIST
            and state.designation not in (self.designations or [])
        ):
            errors.append("designation")
        return errors

    def snapshot(self) -> Dict:
        """JSON-ready view of state, visibility and options for templates."""
        return {
            "state": self.state.model_dump(),
            "visible": self.visible_fields(),
            "designation_mode": self.designation_mode.value if self.designation_mode else None,
            "categories": [c.name for c in self.categories],
            "provinces": [p.name for p in self.provinces],
            "districts": [d.name for d in self.districts],
            "institutions": list(self.institutions),
            "designations": list(self.designations) if self.designations is not None else None,
        }
