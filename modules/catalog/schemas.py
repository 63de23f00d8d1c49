"""
Catalog Module - Form Schemas
================================
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class ProduceForm(BaseModel):
    name: str = Field(min_length=2)
    description: str = Field(min_length=10)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    location: str = Field(min_length=2)

    @field_validator("name", "description", "location", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("price", mode="before")
    @classmethod
    def blank_price(cls, v):
        if isinstance(v, str) and not v.strip():
            raise ValueError("Price is required")
        return v
