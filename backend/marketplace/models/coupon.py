"""
Coupon model.

Codes are unique case-insensitively: they are stored uppercase and every
lookup uppercases its input. used_count only moves through the atomic
conditional increment in CouponService.increment_usage().
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text

from marketplace.db_base import Base
from marketplace.models.base import TimestampMixin, as_utc, generate_uuid
from marketplace.models.catalog import MONEY


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def normalize_coupon_code(code: str) -> str:
    return str(code or "").strip().upper()


class Coupon(Base, TimestampMixin):
    """
    Admin-managed discount code.

    Attributes:
        code: Unique code, stored uppercase
        discount_type: percentage or fixed
        value: Percent (0-100) or fixed amount (>= 0)
        min_order_value: Subtotal required before the coupon applies
        max_discount_amount: Cap for percentage coupons (None = uncapped)
        usage_limit: Max redemptions (None = unlimited)
        used_count: Redemptions so far; never exceeds usage_limit
        expiry_date: Coupon stops applying after this instant (None = never)
        is_active: Admin toggle
    """

    __tablename__ = "coupons"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    code = Column(String(64), nullable=False, unique=True, index=True)
    discount_type = Column(Enum(DiscountType, name="discount_type"), nullable=False)
    value = Column(MONEY, nullable=False)
    min_order_value = Column(MONEY, nullable=False, default=Decimal("0"))
    max_discount_amount = Column(MONEY, nullable=True)
    usage_limit = Column(Integer, nullable=True, comment="NULL means unlimited")
    used_count = Column(Integer, nullable=False, default=0)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code}, type={self.discount_type.value}, value={self.value})>"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry_date is None:
            return False
        compare_at = now or datetime.now(timezone.utc)
        return compare_at > as_utc(self.expiry_date)

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit
