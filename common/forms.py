"""
Farm2Home - Form Validation
==============================
Runs a pydantic form model and turns its errors into a per-field dict,
raised as a business ValidationError before any remote call is made.
"""

from typing import Type, TypeVar

import pydantic
from pydantic import BaseModel

from common.exceptions import ValidationError

FormT = TypeVar("FormT", bound=BaseModel)


def validate_form(form_cls: Type[FormT], data: dict) -> FormT:
    try:
        return form_cls(**data)
    except pydantic.ValidationError as e:
        errors = {}
        for err in e.errors():
            field = str(err["loc"][0]) if err.get("loc") else "__all__"
            # First message per field wins
            errors.setdefault(field, _clean(err["msg"]))
        raise ValidationError(errors)


def _clean(msg: str) -> str:
    # pydantic prefixes custom validator messages with "Value error, "
    return msg.split(", ", 1)[1] if msg.startswith("Value error, ") else msg
