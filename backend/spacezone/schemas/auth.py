from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from spacezone.security.sanitizer import InputSanitizer


class RegisterIn(BaseModel):
    """Registration request."""
    model_config = ConfigDict(extra='forbid')

    name: str = Field(min_length=1, max_length=100)
    username: str = Field(
        min_length=3,
        max_length=64,
        description="Username (3-64 chars: letters, digits, dot, dash, underscore)",
    )
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return InputSanitizer.sanitize_display_name(v)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        return InputSanitizer.sanitize_username(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Password cannot be empty')
        return v


class LoginIn(BaseModel):
    model_config = ConfigDict(extra='forbid')

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
