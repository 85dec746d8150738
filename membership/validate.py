"""
Validation for submitted membership applications.
"""

from typing import Dict, List, Optional, Tuple

from membership.classification import CategoryLike, is_direct_location
from membership.mapping import is_signature_reference
from membership.schema import MemberRecord, MemberStatus


# Fields every application must carry, by form_responses column.
REQUIRED_FIELDS = [
    "name_in_full",
    "email",
    "nic_number",
    "dob",
    "phone_number_personal",
    "gender",
    "category",
    "first_appointment_date",
    "employment_number_salary_number",
    "college_of_nursing_university",
    "nursing_council_registration_number",
    "signature",
    "designation",
    "type_of_organization_hospital",
]

LOCATION_FIELDS = ["province_work_place", "district_work_place"]

# Never taken from a submitted form.
SERVER_FIELDS = {"id", "status", "created_at", "updated_at"}

FIELD_LABELS = {
    "name_in_full": "Name in Full",
    "email": "E-mail",
    "nic_number": "NIC Number",
    "dob": "Date of Birth",
    "phone_number_personal": "Mobile Number (Personal)",
    "gender": "Gender",
    "category": "Category",
    "first_appointment_date": "First Appointment Date",
    "employment_number_salary_number": "Employment / Salary Number",
    "college_of_nursing_university": "School of Nursing / University",
    "nursing_council_registration_number": "Nursing Council Registration Number",
    "signature": "Signature",
    "designation": "Designation",
    "type_of_organization_hospital": "Institution",
    "province_work_place": "Province",
    "district_work_place": "District",
}


def _location_scoped(form: Dict, category: Optional[CategoryLike]) -> bool:
    """Province/district apply unless the category is direct-location. A Category's own flag wins over its name."""
    if category is None:
        category = form.get("category")
    return bool(category) and not is_direct_location(category)


def clean_application(form: Dict, category: Optional[CategoryLike] = None) -> Dict:
    """
    Normalize a submitted form: trim text, upper-case the NIC, turn blanks into None.
    Location fields are dropped for direct-location categories.
    """
    cleaned = {}
    for key, value in form.items():
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[key] = value
    if cleaned.get("nic_number"):
        cleaned["nic_number"] = cleaned["nic_number"].upper()
    if cleaned.get("category") and not _location_scoped(cleaned, category):
        for key in LOCATION_FIELDS + ["rdhs"]:
            cleaned[key] = None
    return cleaned


def missing_required_fields(form: Dict, category: Optional[CategoryLike] = None) -> List[str]:
    """Required fields that are blank, including province/district for location-scoped categories."""
    required = list(REQUIRED_FIELDS)
    if _location_scoped(form, category):
        required.extend(LOCATION_FIELDS)
    return [field for field in required if not form.get(field)]


def validate_application(
    form: Dict,
    category: Optional[CategoryLike] = None,
) -> Tuple[Optional[MemberRecord], List[str]]:
    """
    Validates a submitted application and builds a MemberRecord.

    Args:
        form: dict keyed by form_responses column names
        category: resolved Category for form["category"]; the name alone is used when omitted

    Returns:
        Tuple of (MemberRecord or None, list of problem fields). The record is
        None whenever the list is non-empty.
    """
    cleaned = clean_application(form, category)
    problems = missing_required_fields(cleaned, category)

    email = cleaned.get("email")
    if email and "@" not in email:
        problems.append("email")

    signature = cleaned.get("signature")
    if signature and not is_signature_reference(signature):
        problems.append("signature")

    if problems:
        return None, problems

    known = {k: v for k, v in cleaned.items() if k in MemberRecord.model_fields and k not in SERVER_FIELDS}
    known["status"] = MemberStatus.PENDING
    return MemberRecord(**known), []


def describe_problems(problems: List[str]) -> str:
    labels = [FIELD_LABELS.get(p, p.replace("_", " ").title()) for p in dict.fromkeys(problems)]
    return ", ".join(labels)
