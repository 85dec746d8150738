"""
Data models for membership applications and their reference data.
Uses Pydantic for validation and type safety.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


class DesignationInputMode(str, Enum):
    """How the designation field is captured for a category."""
    LIST = "list"
    FREE_TEXT = "free_text"


class MemberStatus(str, Enum):
    """
    Canonical application status. Older rows carry "pending", "approved" or
    "Verified" in mixed case; normalize() folds them onto these three values.
    Comparison is case-insensitive equality, and anything that is not a Verified or
    Rejected spelling counts as Pending. apply_status_filter() uses the same rule.
    """
    PENDING = "Pending"
    VERIFIED = "Verified"
    REJECTED = "Rejected"

    @classmethod
    def normalize(cls, value: Optional[str]) -> "MemberStatus":
        if isinstance(value, MemberStatus):
            return value
        key = (value or "").lower()
        for status in (cls.VERIFIED, cls.REJECTED):
            if key in status.spellings():
                return status
        return cls.PENDING

    def spellings(self) -> List[str]:
        """Lower-case stored values meaning this status."""
        return list(_STATUS_SPELLINGS[self])

    @classmethod
    def decided_spellings(cls) -> List[str]:
        """Every Verified or Rejected spelling; all other values are Pending."""
        return cls.VERIFIED.spellings() + cls.REJECTED.spellings()


_STATUS_SPELLINGS = {
    MemberStatus.PENDING: ("pending",),
    MemberStatus.VERIFIED: ("verified", "approved"),
    MemberStatus.REJECTED: ("rejected",),
}


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Category(BaseModel):
    """
    Work category. The two flags decide whether location is skipped and
    how designation is entered; when the table has no flag columns they are
    derived from the category name (see membership.classification).
    """
    id: int
    name: str
    is_direct_location: bool = False
    designation_input_mode: DesignationInputMode = DesignationInputMode.LIST


class Province(BaseModel):
    id: int
    name: str


class District(BaseModel):
    id: int
    name: str
    province_id: Optional[int] = None


class Institution(BaseModel):
    name: str
    category_id: Optional[int] = None
    province_id: Optional[int] = None
    district_id: Optional[int] = None


class SelectionState(BaseModel):
    """Names chosen in the category -> province -> district -> institution chain."""
    category: str = ""
    province: str = ""
    district: str = ""
    institution: str = ""
    designation: str = ""
    rdhs: str = ""


class MemberRecord(BaseModel):
    """
    One row of form_responses.
    Column names match the table so model_dump() can be inserted directly.
    """
    id: Optional[Any] = None

    # Identity
    name_in_full: str
    email: str
    nic_number: str
    dob: Optional[str] = None
    gender: Optional[str] = None
    marital_status: Optional[str] = None

    # Contact
    phone_number_personal: Optional[str] = None
    whatsapp_number: Optional[str] = None

    # Addresses
    official_address: Optional[str] = None
    personal_address: Optional[str] = None

    # Work place
    category: Optional[str] = None
    designation: Optional[str] = None
    province_work_place: Optional[str] = None
    district_work_place: Optional[str] = None
    rdhs: Optional[str] = None
    type_of_organization_hospital: Optional[str] = None

    # Employment and education
    first_appointment_date: Optional[str] = None
    employment_number_salary_number: Optional[str] = None
    college_of_nursing_university: Optional[str] = None
    nursing_council_registration_number: Optional[str] = None
    educational_qualifications: Optional[str] = None
    specialties_special_trainings: Optional[str] = None

    # Data URL or an external image link
    signature: Optional[str] = None

    status: MemberStatus = MemberStatus.PENDING
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    timestamp: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Insertable dict: server-assigned columns are left out when unset."""
        row = self.model_dump(mode="json")
        for key in ("id", "created_at", "updated_at", "timestamp"):
            if row.get(key) is None:
                row.pop(key, None)
        return row


class UserMetadata(BaseModel):
    """Typed view of Supabase user_metadata."""
    name: Optional[str] = None
    role: UserRole = UserRole.USER
    is_locked: bool = False

    def merge(self, patch: Dict[str, Any]) -> "UserMetadata":
        """Return a copy with the non-None keys of patch applied."""
        updates = {k: v for k, v in patch.items() if v is not None and k in type(self).model_fields}
        merged = self.model_dump()
        merged.update(updates)
        return UserMetadata.model_validate(merged)


class AdminUser(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: UserMetadata = Field(default_factory=UserMetadata)
    created_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.user_metadata.role == UserRole.ADMIN

    @property
    def is_locked(self) -> bool:
        return self.user_metadata.is_locked


class ActivityLogEntry(BaseModel):
    id: Optional[Any] = None
    user_id: Optional[str] = None
    action: Optional[str] = None
    details: Optional[Any] = None
    created_at: Optional[str] = None
