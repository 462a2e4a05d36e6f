"""
Purchaser identity: a registered user or a guest, never both.
"""

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegisteredPurchaser(BaseModel):
    """Purchaser with an account in the identity service."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["registered"] = "registered"
    user_id: UUID


class GuestPurchaser(BaseModel):
    """Purchaser checking out without an account."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    kind: Literal["guest"] = "guest"
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=50)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        digits = [c for c in v if c.isdigit()]
        if len(digits) < 7:
            raise ValueError("Phone number must contain at least 7 digits")
        return v


Purchaser = Annotated[Union[RegisteredPurchaser, GuestPurchaser], Field(discriminator="kind")]
