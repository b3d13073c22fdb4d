"""
E-Permitted Backend — Registration & Login Schemas
===================================================
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from epermitted.schemas.user import MIN_PASSWORD_LENGTH, UserResponse, normalize_email, require_text


class RegisterRequest(BaseModel):
    email: str = Field(description="Login email; stored lower-cased")
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=128)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return require_text(v)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)


class RegisterResponse(BaseModel):
    success: bool = True
    user: UserResponse


class LoginResponse(BaseModel):
    success: bool = True
    token: str = Field(description="HS256 bearer token")
    user: UserResponse
