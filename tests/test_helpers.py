from decimal import Decimal

import pytest

from common.exceptions import ValidationError
from common.forms import validate_form
from common.helpers import to_decimal, format_price, city_of, safe_int
from common.security import hash_password, verify_password, create_token, decode_token
from modules.auth.schemas import SignupForm
from modules.catalog.schemas import ProduceForm
from modules.user.models import normalize_role


def test_to_decimal_treats_missing_values_as_zero():
    assert to_decimal(None) == Decimal("0")
    assert to_decimal("") == Decimal("0")
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal("2.50") == Decimal("2.50")


def test_format_price():
    assert format_price(Decimal("1234.5")) == "1,234.50"
    assert format_price(None) == "0.00"


def test_city_of_takes_first_segment():
    assert city_of("Pune, MH") == "Pune"
    assert city_of("  Goa ") == "Goa"
    assert city_of(None) == ""


def test_safe_int():
    assert safe_int(" 7 ") == 7
    assert safe_int("x") is None
    assert safe_int(None) is None


def test_normalize_role():
    assert normalize_role(" Farmer ") == "farmer"
    assert normalize_role("") == "consumer"
    assert normalize_role(None) == "consumer"


def test_password_hashing():
    hashed = hash_password("hunter22")
    assert verify_password("hunter22", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("hunter22", None)


def test_tokens_round_trip_and_reject_tampering():
    token = create_token({"sub": "abc"})
    assert decode_token(token)["sub"] == "abc"
    assert decode_token(token + "x") is None
    assert decode_token(create_token({"sub": "abc"}, expires_minutes=-1)) is None


# ==========================================
# Forms
# ==========================================

def test_signup_form_reports_each_field():
    with pytest.raises(ValidationError) as exc:
        validate_form(SignupForm, {
            "email": "not-an-email", "password": "123", "confirm_password": "123",
            "full_name": "A", "location": "", "role": "consumer",
        })
    errors = exc.value.errors
    assert set(errors) == {"email", "password", "full_name", "location"}
    assert errors["email"] == "Enter a valid email address"


def test_signup_form_password_mismatch():
    with pytest.raises(ValidationError) as exc:
        validate_form(SignupForm, {
            "email": "a@b.com", "password": "secret1", "confirm_password": "secret2",
            "full_name": "Ann", "location": "Pune",
        })
    assert exc.value.errors == {"confirm_password": "Passwords do not match"}


def test_signup_form_normalizes():
    form = validate_form(SignupForm, {
        "email": " Ann@Example.COM ", "password": "secret1", "confirm_password": "secret1",
        "full_name": " Ann ", "location": "Pune", "role": "FARMER",
    })
    assert form.email == "ann@example.com"
    assert form.full_name == "Ann"
    assert form.role == "farmer"


@pytest.mark.parametrize("price, message_part", [
    ("", "Price is required"),
    ("0", "greater than 0"),
    ("-3", "greater than 0"),
])
def test_produce_form_price_rules(price, message_part):
    with pytest.raises(ValidationError) as exc:
        validate_form(ProduceForm, {
            "name": "Carrot", "description": "Crunchy orange carrots", "price": price, "location": "Pune",
        })
    assert message_part in exc.value.errors["price"]


def test_produce_form_minimum_lengths():
    with pytest.raises(ValidationError) as exc:
        validate_form(ProduceForm, {"name": "C", "description": "short", "price": "1", "location": "P"})
    assert set(exc.value.errors) == {"name", "description", "location"}
