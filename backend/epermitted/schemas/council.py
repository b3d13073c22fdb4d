"""
E-Permitted Backend — Council & Permit Type Schemas
====================================================

What:  Request/response models for councils and the permit types they offer.
How:   Council codes are letters only and stored upper-cased, because they
       become the prefix of every application reference for the council.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from epermitted.models import Council

COUNCIL_CODE_PATTERN = re.compile(r"^[A-Za-z]{2,16}$")
PERMIT_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,50}$")


def normalize_council_code(value: str) -> str:
    code = value.strip()
    if not COUNCIL_CODE_PATTERN.match(code):
        raise ValueError("Council code must be 2-16 letters")
    return code.upper()


def normalize_permit_code(value: str) -> str:
    code = value.strip()
    if not PERMIT_CODE_PATTERN.match(code):
        raise ValueError("Permit type code may only contain letters, digits and underscores")
    return code.upper()


class PermitTypeResponse(BaseModel):
    id: uuid.UUID
    council_id: uuid.UUID
    name: str
    code: str
    description: Optional[str] = None
    requirements: Optional[Dict[str, Any]] = None
    fees: Optional[Dict[str, Any]] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CouncilResponse(BaseModel):
    """A council with the permit types it currently accepts."""
    id: uuid.UUID
    name: str
    code: str
    country: str
    region: Optional[str] = None
    created_at: datetime
    permit_types: List[PermitTypeResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}

    @classmethod
    def from_council(cls, council: Council) -> "CouncilResponse":
        return cls(
            id=council.id,
            name=council.name,
            code=council.code,
            country=council.country,
            region=council.region,
            created_at=council.created_at,
            permit_types=[
                PermitTypeResponse.model_validate(pt) for pt in council.active_permit_types
            ],
        )


class CouncilCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(description="Reference prefix, letters only (e.g. KCDC)")
    country: str = Field(default="NZ", min_length=2, max_length=2)
    region: Optional[str] = Field(default=None, max_length=100)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return normalize_council_code(v)

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        return v.upper()


class CouncilUpdate(BaseModel):
    # The code is fixed once references have been issued under it
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    region: Optional[str] = Field(default=None, max_length=100)


class PermitTypeCreate(BaseModel):
    council_id: uuid.UUID
    name: str = Field(min_length=1, max_length=255)
    code: str
    description: Optional[str] = None
    requirements: Optional[Dict[str, Any]] = None
    fees: Optional[Dict[str, Any]] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return normalize_permit_code(v)


class PermitTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    requirements: Optional[Dict[str, Any]] = None
    fees: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
