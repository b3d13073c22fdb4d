"""
E-Permitted Backend — User Schemas
===================================

What:  Request/response models for user accounts.
How:   Responses are built `from_attributes` off the ORM model and never
       include `password_hash`. Emails are lower-cased on the way in.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from epermitted.permissions import Role
from epermitted.schemas.application import ApplicationSummary

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 8


def normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")
    return email


def require_text(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("Must not be empty")
    return stripped


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    role: Role
    is_active: bool
    email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserDetailResponse(UserResponse):
    """A user together with summaries of their applications."""
    applications: List[ApplicationSummary] = Field(default_factory=list)


class UserCreate(BaseModel):
    """
    Staff/admin account creation.

    `password` may be omitted; such accounts cannot log in until one is set.
    """
    email: str
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[Dict[str, Any]] = None
    role: Role = Role.CITIZEN
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return require_text(v)


class UserUpdate(BaseModel):
    """
    Partial update. `role` and `is_active` require MANAGE_USERS; the other
    fields may be changed by the user themselves.
    """
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[Dict[str, Any]] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v is not None else v

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: Optional[str]) -> Optional[str]:
        return require_text(v) if v is not None else v

    @property
    def privileged_fields(self) -> List[str]:
        return [name for name in ("role", "is_active") if name in self.model_fields_set]
