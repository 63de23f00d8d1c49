"""
Auth Module - Form Schemas
=============================
"""

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from config.settings import MIN_PASSWORD_LENGTH
from modules.user.models import normalize_role


class LoginForm(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class SignupForm(BaseModel):
    email: str
    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str
    full_name: str = Field(min_length=2)
    location: str = Field(min_length=2)
    role: str = "consumer"

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Enter a valid email address")
        return v

    @field_validator("full_name", "location", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("role")
    @classmethod
    def role_value(cls, v: str) -> str:
        return normalize_role(v)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v
