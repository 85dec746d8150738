"""
Category classification rules.

Two questions decide how the work-place section of the form behaves:
  - direct-location: province/district are skipped, institutions are scoped by category only
  - text-input designation: designation is free text instead of a fixed list

Rows from the categories table may carry explicit flags; the name sets below
are the fallback for rows that don't.
"""

from typing import Dict, List, Optional, Union

from membership.schema import Category, DesignationInputMode


DIRECT_LOCATION_CATEGORIES = frozenset({
    "Line Ministry",
    "Nursing Training School",
})

TEXT_INPUT_DESIGNATION_CATEGORIES = DIRECT_LOCATION_CATEGORIES | frozenset({
    "Public Health",
    "RDHS",
    "MOH Divisions",
})

# No designations table exists, so the lists live here.
CATEGORY_DESIGNATIONS: Dict[str, List[str]] = {
    "Hospital Services": [
        "Chief Nursing Officer",
        "Deputy Chief Nursing Officer",
        "Senior Nursing Officer",
        "Nursing Officer",
        "Staff Nurse",
        "Ward Manager",
        "Clinical Nurse Specialist",
    ],
    "Public Health": [
        "Public Health Nursing Officer",
        "Community Health Nurse",
        "Health Education Officer",
        "Maternal & Child Health Officer",
        "Disease Surveillance Officer",
        "Health Promotion Officer",
    ],
    "Education": [
        "Nursing Tutor",
        "Senior Nursing Tutor",
        "Principal - School of Nursing",
        "Vice Principal - School of Nursing",
        "Lecturer in Nursing",
        "Clinical Instructor",
    ],
}

CategoryLike = Union[Category, str, None]


def _name(category: CategoryLike) -> str:
    if isinstance(category, Category):
        return category.name
    return (category or "").strip()


def category_from_row(row: Dict) -> Category:
    """
    Build a Category from a categories row, deriving missing flags from the name.
    """
    name = (row.get("name") or "").strip()
    is_direct = row.get("is_direct_location")
    if is_direct is None:
        is_direct = name in DIRECT_LOCATION_CATEGORIES

    mode = row.get("designation_input_mode")
    if mode is None:
        mode = (
            DesignationInputMode.FREE_TEXT
            if name in TEXT_INPUT_DESIGNATION_CATEGORIES
            else DesignationInputMode.LIST
        )
    return Category(
        id=row["id"],
        name=name,
        is_direct_location=bool(is_direct),
        designation_input_mode=DesignationInputMode(mode),
    )


def is_direct_location(category: CategoryLike) -> bool:
    if isinstance(category, Category):
        return category.is_direct_location
    return _name(category) in DIRECT_LOCATION_CATEGORIES


def is_text_input_designation(category: CategoryLike) -> bool:
    if isinstance(category, Category):
        return category.designation_input_mode == DesignationInputMode.FREE_TEXT
    return _name(category) in TEXT_INPUT_DESIGNATION_CATEGORIES


def designation_options(category: CategoryLike) -> Optional[List[str]]:
    """
    Designation choices for a category.

    Returns:
        None when designation is free text,
        otherwise the fixed list for the category name ([] if it has none).
    """
    if is_text_input_designation(category):
        return None
    return list(CATEGORY_DESIGNATIONS.get(_name(category), []))
