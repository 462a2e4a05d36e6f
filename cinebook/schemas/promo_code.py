"""
Pydantic schemas for promo code management.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.promo_code import DiscountType


class PromoCodeCreate(BaseModel):
    """Schema for creating a promo code."""
    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=500)
    discount_type: DiscountType
    discount_amount: Decimal = Field(..., gt=0, decimal_places=2)
    valid_from: date
    valid_until: date
    max_uses: Optional[int] = Field(None, description="Absent or non-positive means unlimited")
    min_purchase_amount: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Promo code cannot be blank")
        return v

    @field_validator("max_uses")
    @classmethod
    def normalize_max_uses(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            return None
        return v

    @model_validator(mode="after")
    def check_rules(self) -> "PromoCodeCreate":
        if self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_amount > 100:
            raise ValueError("Percentage discounts must be in (0, 100]")
        return self


class PromoCodeUpdate(BaseModel):
    """
    Partial update of a promo code; only fields that are set are applied.

    Setting ``max_uses`` to None or a non-positive number makes the code
    unlimited. Usage counters cannot be edited.
    """
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Optional[DiscountType] = None
    discount_amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None
    max_uses: Optional[int] = None
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if not v:
            raise ValueError("Promo code cannot be blank")
        return v

    @field_validator("max_uses")
    @classmethod
    def normalize_max_uses(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            return None
        return v

    def changes(self) -> dict:
        """Fields explicitly set by the caller, None values kept only for ``max_uses``."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None or name == "max_uses"
        }
