"""
Coupon schemas.

Field-level checks live here; cross-field rules (percentage range, future
expiry, code uniqueness) are enforced by CouponService.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.coupon import DiscountType


class CouponCreate(BaseModel):
    """Admin request to create a coupon."""

    code: str = Field(..., min_length=1, max_length=64)
    discount_type: DiscountType
    value: Decimal = Field(..., ge=0)
    min_order_value: Decimal = Field(Decimal("0"), ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[datetime] = None
    description: Optional[str] = None


class CouponUpdate(BaseModel):
    """Admin patch for a coupon. Unset fields are left alone."""

    code: Optional[str] = Field(None, min_length=1, max_length=64)
    discount_type: Optional[DiscountType] = None
    value: Optional[Decimal] = Field(None, ge=0)
    min_order_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=0)
    expiry_date: Optional[datetime] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CouponView(BaseModel):
    """Customer-facing view of a valid coupon."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    discount_type: DiscountType
    value: Decimal
    min_order_value: Decimal
    max_discount_amount: Optional[Decimal] = None
    description: Optional[str] = None


class CouponQuote(BaseModel):
    """Result of applying a valid coupon to an order value."""

    coupon: CouponView
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
