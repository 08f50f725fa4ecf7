"""
Request DTOs for authentication endpoints.

RegisterRequest          — POST /api/auth/register
LoginRequest             — POST /api/auth/login
RefreshRequest           — POST /api/auth/refresh
ForgotPasswordRequest    — POST /api/auth/forgot-password
ResetPasswordRequest     — POST /api/auth/reset-password/{token}
ChangePasswordRequest    — POST /api/auth/change-password
UpdateProfileRequest     — PUT  /api/auth/profile
PasswordStrengthRequest  — POST /api/auth/password-strength

Bodies are accepted in camelCase (``fullName``) or snake_case (``full_name``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.models.base import PyObjectId
from schemas.models.user import AcademicRecord, FamilyInfo, FullName, PhoneNumbers, Role

CNIC_PATTERN = r"^\d{5}-\d{7}-\d$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )


class RegisterRequest(CamelModel):
    """Request body for POST /api/auth/register."""

    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    password: str
    full_name: FullName
    phone_numbers: Optional[PhoneNumbers] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    cnic: Optional[str] = Field(default=None, pattern=CNIC_PATTERN)
    institute_id: Optional[PyObjectId] = Field(default=None, alias="institute")
    role: Role = Role.STUDENT
    address: Optional[str] = None
    family_info: Optional[FamilyInfo] = None
    academic_history: Optional[AcademicRecord] = None

    def to_fields(self) -> dict:
        data = self.model_dump(exclude_none=True)
        data["role"] = self.role.value
        return data


class LoginRequest(CamelModel):
    """Request body for POST /api/auth/login. ``login`` is an email or username."""

    login: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    new_password: str


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str


class UpdateProfileRequest(CamelModel):
    """Request body for PUT /api/auth/profile.

    Only self-editable profile fields are declared. Keys such as instituteId,
    cnic or role are ignored.
    """

    full_name: Optional[FullName] = None
    phone_numbers: Optional[PhoneNumbers] = None
    gender: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    address: Optional[str] = None
    family_info: Optional[FamilyInfo] = None
    academic_history: Optional[AcademicRecord] = None

    def to_fields(self) -> dict:
        return self.model_dump(exclude_unset=True)


class PasswordStrengthRequest(CamelModel):
    password: str

    @field_validator("password")
    @classmethod
    def _not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("password is required")
        return v
