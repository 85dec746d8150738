"""
Conversions between form_responses rows, the member view used by list pages,
and the application form's field dict.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from membership.schema import MemberStatus

# Hosts a signature link may point at; the PDF export fetches from these only.
SIGNATURE_HOSTS = {"drive.google.com", "drive.usercontent.google.com"}

SIGNATURE_DATA_URL = re.compile(r"^data:image/[\w.+-]+;base64,(?P<data>.+)$", re.DOTALL)

MARITAL_STATUSES = ("Single", "Married", "Divorced", "Widowed")

# Must all be non-blank for a member to count as complete.
COMPLETENESS_FIELDS = (
    "email",
    "name_in_full",
    "nic_number",
    "dob",
    "designation",
    "phone_number_personal",
    "educational_qualifications",
    "nursing_council_registration_number",
)


def parse_date(value: Any) -> Optional[date]:
    """Accept date, datetime or ISO strings (date or timestamp); None when unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def age_on(dob: Optional[date], today: Optional[date] = None) -> Optional[int]:
    if dob is None:
        return None
    today = today or date.today()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return years


def is_record_complete(row: Dict) -> bool:
    return all(str(row.get(field) or "").strip() for field in COMPLETENESS_FIELDS)


def valid_marital_status(value: Optional[str]) -> str:
    """Map legacy Yes/No answers onto the marital status choices; unknown values become ''."""
    if value in ("Yes", "Married"):
        return "Married"
    if value in ("No", "Single"):
        return "Single"
    if value in MARITAL_STATUSES:
        return value
    return ""


def split_specialties(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


def is_signature_reference(value: Optional[str]) -> bool:
    """
    True for the two accepted signature forms: an inline image data URL or an
    https Google Drive link. Anything else is never fetched or embedded.
    """
    value = (value or "").strip()
    if SIGNATURE_DATA_URL.match(value):
        return True
    parsed = urlparse(value)
    return parsed.scheme == "https" and (parsed.hostname or "").lower() in SIGNATURE_HOSTS


def signature_embed_url(url: Optional[str]) -> Optional[str]:
    """Turn a Google Drive share link into a direct image URL; other values pass through."""
    if not url or url.startswith("data:"):
        return url
    if "drive.google.com" in url:
        match = re.search(r"id=([^&]+)", url) or re.search(r"/d/([^/]+)", url)
        if match:
            return f"https://drive.google.com/uc?export=view&id={match.group(1)}"
    return url


def map_record_to_member(row: Dict, today: Optional[date] = None) -> Dict[str, Any]:
    """Display view of a form_responses row."""
    dob = parse_date(row.get("dob"))
    nic = row.get("nic_number")
    return {
        "id": row.get("id"),
        "status": MemberStatus.normalize(row.get("status")).value,
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
        "full_name": row.get("name_in_full") or "Unknown",
        "email": row.get("email") or "N/A",
        "phone_number": row.get("phone_number_personal"),
        "whatsapp_number": row.get("whatsapp_number"),
        "nic_number": str(nic).strip() if nic else None,
        "gender": row.get("gender"),
        "marital_status": row.get("marital_status"),
        "personal_address": row.get("personal_address"),
        "official_address": row.get("official_address"),
        "category": row.get("category"),
        "designation": row.get("designation"),
        "employment_number": row.get("employment_number_salary_number"),
        "nursing_council_number": row.get("nursing_council_registration_number"),
        "educational_qualifications": row.get("educational_qualifications"),
        "college_university": row.get("college_of_nursing_university"),
        "specialties": split_specialties(row.get("specialties_special_trainings")),
        "institution": row.get("type_of_organization_hospital"),
        "district": row.get("district_work_place"),
        "province": row.get("province_work_place"),
        "rdhs": row.get("rdhs"),
        "signature_url": (
            signature_embed_url(row.get("signature")) if is_signature_reference(row.get("signature")) else None
        ),
        "date_of_birth": dob,
        "first_appointment_date": parse_date(row.get("first_appointment_date")),
        "age": age_on(dob, today),
        "is_complete": is_record_complete(row),
        "submitted_at": row.get("timestamp") or row.get("created_at"),
    }


def prefill_from_record(row: Dict) -> Dict[str, Any]:
    """
    Application-form values for amend-and-resubmit ("Verify").
    Keys are form_responses column names, the same ones the form posts.
    """
    dob = parse_date(row.get("dob"))
    first_appointment = parse_date(row.get("first_appointment_date"))
    specialties = split_specialties(row.get("specialties_special_trainings"))
    return {
        "name_in_full": row.get("name_in_full") or "",
        "email": row.get("email") or "",
        "nic_number": row.get("nic_number") or "",
        "dob": dob.isoformat() if dob else "",
        "phone_number_personal": row.get("phone_number_personal") or "",
        "whatsapp_number": row.get("whatsapp_number") or "",
        "gender": row.get("gender") or "",
        "marital_status": valid_marital_status(row.get("marital_status")),
        "official_address": row.get("official_address") or "",
        "personal_address": row.get("personal_address") or "",
        "category": row.get("category") or "",
        "designation": row.get("designation") or "",
        "province_work_place": row.get("province_work_place") or "",
        "district_work_place": row.get("district_work_place") or "",
        "rdhs": row.get("rdhs") or "",
        "type_of_organization_hospital": row.get("type_of_organization_hospital") or "",
        "first_appointment_date": first_appointment.isoformat() if first_appointment else "",
        "employment_number_salary_number": row.get("employment_number_salary_number") or "",
        "college_of_nursing_university": row.get("college_of_nursing_university") or "",
        "nursing_council_registration_number": row.get("nursing_council_registration_number") or "",
        "educational_qualifications": row.get("educational_qualifications") or "",
        "specialties_special_trainings": ", ".join(specialties),
        "signature": row.get("signature") or "",
    }


def search_members_in_memory(members: List[Dict], term: str) -> List[Dict]:
    """Loaded-page search on name, email, NIC and designation (member views)."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(members)
    return [
        m for m in members
        if needle in (m.get("full_name") or "").lower()
        or needle in (m.get("email") or "").lower()
        or needle in (m.get("nic_number") or "").lower()
        or needle in (m.get("designation") or "").lower()
    ]
