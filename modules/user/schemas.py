"""
User Module - Form Schemas
=============================
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ProfileUpdateForm(BaseModel):
    full_name: str = Field(min_length=2)
    location: str = Field(min_length=2)
    bio: Optional[str] = None

    @field_validator("full_name", "location", "bio", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v
