"""
User document model.

Maps to the `users` MongoDB collection.

account_status is the single source of truth for account gating; is_active
and is_approved are kept in step with it by the status transitions in
services.credential_service. The password hash is never part of a public
projection (see USER_PUBLIC_PROJECTION / to_public()).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.datetime_utils import ensure_utc, utcnow


class AccountStatus(str, Enum):
    ACTIVE = "Active"
    PAUSED = "Paused"
    DELETED = "Deleted"
    PENDING = "Pending"


class Role(str, Enum):
    SYSTEM_ADMIN = "SystemAdmin"
    INSTITUTE_ADMIN = "InstituteAdmin"
    TEACHER = "Teacher"
    STUDENT = "Student"
    SRO = "SRO"
    ACCOUNTS = "Accounts"
    IT = "IT"
    EMS = "EMS"


# Super-admin equivalent: bypasses tenant isolation.
TENANT_BYPASS_ROLES = frozenset({Role.SYSTEM_ADMIN.value})
# Admin equivalents: bypass resource-ownership checks.
OWNERSHIP_BYPASS_ROLES = frozenset({Role.SYSTEM_ADMIN.value, Role.INSTITUTE_ADMIN.value})

# Fields that never leave the service
PRIVATE_FIELDS = frozenset(
    {"password_hash", "password_reset_token_hash", "password_reset_expires"}
)
USER_PUBLIC_PROJECTION = {field: 0 for field in PRIVATE_FIELDS}


class ProfileModel(BaseModel):
    """Nested profile data. Accepts camelCase input, always stored snake_case."""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=AliasGenerator(validation_alias=to_camel),
    )


class FullName(ProfileModel):
    first_name: str
    last_name: str


class PhoneNumbers(ProfileModel):
    primary: Optional[str] = None
    secondary: Optional[str] = None


class EmergencyContact(ProfileModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None


class FamilyInfo(ProfileModel):
    father_name: Optional[str] = None
    father_occupation: Optional[str] = None
    emergency_contact: Optional[EmergencyContact] = None


class AcademicRecord(ProfileModel):
    matric_marks: Optional[str] = None
    matric_roll_no: Optional[str] = None
    matric_year: Optional[str] = None
    matric_board: Optional[str] = None
    first_year_marks: Optional[str] = None
    second_year_marks: Optional[str] = None


class ProfileUpdate(ProfileModel):
    """The self-service subset of UserDoc. Anything not declared here is dropped."""

    full_name: Optional[FullName] = None
    phone_numbers: Optional[PhoneNumbers] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    address: Optional[str] = None
    family_info: Optional[FamilyInfo] = None
    academic_history: Optional[AcademicRecord] = None


class UserDoc(MongoBaseModel):
    """Document model for the `users` collection."""

    email: str
    username: str
    password_hash: Optional[str] = None
    cnic: Optional[str] = None

    full_name: Optional[FullName] = None
    phone_numbers: Optional[PhoneNumbers] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    address: Optional[str] = None
    family_info: Optional[FamilyInfo] = None
    academic_history: Optional[AcademicRecord] = None

    role: str = Role.STUDENT.value
    roles: list[PyObjectId] = []
    institute_id: Optional[PyObjectId] = None

    account_status: AccountStatus = AccountStatus.PENDING
    is_active: bool = False
    is_approved: bool = False

    login_attempts: int = Field(default=0, ge=0)
    lock_until: Optional[datetime] = None

    password_changed_at: Optional[datetime] = None
    password_reset_token_hash: Optional[str] = None
    password_reset_expires: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @property
    def is_locked(self) -> bool:
        lock_until = ensure_utc(self.lock_until)
        return lock_until is not None and lock_until > utcnow()

    @property
    def is_account_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE

    @property
    def display_name(self) -> str:
        if self.full_name:
            return f"{self.full_name.first_name} {self.full_name.last_name}"
        return self.username

    def to_mongo(self) -> dict:
        data = super().to_mongo()
        data["account_status"] = self.account_status.value
        return data

    def to_public(self) -> dict[str, Any]:
        """JSON-safe representation with every private field stripped."""
        data = self.model_dump(mode="json", exclude=set(PRIVATE_FIELDS))
        data["id"] = data.pop("id", None)
        data["is_locked"] = self.is_locked
        return data
