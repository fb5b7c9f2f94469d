"""
Shared input schemas and validation helpers.

Field rules follow the storefront forms: names are letters and spaces,
phones are 10-15 characters of digits and separators, passwords for new
accounts need lower, upper and a digit.
"""

import re
from decimal import Decimal
from typing import Annotated, Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from shared.config.constants import SELF_ASSIGNABLE_ROLES, Role
from shared.utils.exceptions import ValidationError

NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")
PASSWORD_STRENGTH_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")

FullName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=15)]


def _check_name(value: str) -> str:
    if not NAME_PATTERN.match(value):
        raise ValueError("Full name can only contain letters and spaces")
    return value


def _check_phone(value: str) -> str:
    if not PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone number format")
    return value


# =============================================================================
# Auth schemas
# =============================================================================


class SignUpRequest(BaseModel):
    """New account registration."""

    email: EmailStr
    password: str = Field(min_length=6, max_length=100)
    full_name: FullName
    phone: Phone | None = None
    role: Role = Role.CUSTOMER

    @field_validator("email")
    @classmethod
    def _email_length(cls, value: str) -> str:
        if len(value) > 100:
            raise ValueError("Email too long")
        return value

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        if not PASSWORD_STRENGTH_PATTERN.match(value):
            raise ValueError(
                "Password must contain at least one lowercase letter, "
                "one uppercase letter, and one number"
            )
        return value

    @field_validator("full_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str | None) -> str | None:
        return _check_phone(value) if value is not None else None

    @field_validator("role")
    @classmethod
    def _self_assignable(cls, value: Role) -> Role:
        if value not in SELF_ASSIGNABLE_ROLES:
            raise ValueError("Role must be customer or restaurant_owner")
        return value


class SignInRequest(BaseModel):
    """Credentials for password sign-in."""

    email: EmailStr
    password: str = Field(min_length=1)


class EmailRequest(BaseModel):
    """Password reset or confirmation resend."""

    email: EmailStr


class GuestInfo(BaseModel):
    """
    Contact details of a visitor who checks out without an account.

    Client-only; persisted to local storage, never to the backend.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    full_name: FullName = Field(alias="fullName")
    phone: Phone
    email: EmailStr

    @field_validator("full_name")
    @classmethod
    def _name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return _check_phone(value)


# =============================================================================
# Order schemas
# =============================================================================


class OrderDetails(BaseModel):
    """Checkout form. Contact fields default to the current identity's."""

    delivery_address: str = Field(min_length=10, max_length=200)
    special_instructions: str = Field(default="", max_length=500)
    customer_name: FullName | None = None
    customer_email: EmailStr | None = None
    customer_phone: Phone | None = None

    @field_validator("customer_phone")
    @classmethod
    def _phone(cls, value: str | None) -> str | None:
        return _check_phone(value) if value is not None else None


class CatalogItem(BaseModel):
    """Menu item as shown by the catalog pages; the unit the cart adds."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    price: Decimal = Field(gt=0, max_digits=8, decimal_places=2)


# =============================================================================
# Helpers
# =============================================================================

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_input(model: type[ModelT], data: ModelT | dict[str, Any]) -> ModelT:
    """
    Coerce ``data`` into ``model``.

    Raises:
        ValidationError: with the first failing field's message.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input")
        # pydantic prefixes messages raised from validators
        message = message.removeprefix("Value error, ")
        raise ValidationError(message, field=field, model=model.__name__) from e
