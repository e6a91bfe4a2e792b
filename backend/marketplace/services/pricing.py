"""
Pricing engine.

compute_totals() is pure and deterministic: the same prices and coupon
always produce the same subtotal, discount and total, and the total is
never negative. All arithmetic is Decimal; amounts are rounded to two
places half away from zero.

validate_coupon() applies the eligibility checks in one fixed order:
existence -> is_active -> expiry_date -> usage_limit -> min_order_value.
The first failing check is reported. min_order_value is last because it
depends on the caller's order value.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from marketplace.models.coupon import Coupon, DiscountType, normalize_coupon_code
from marketplace.platform.errors import CouponError, CouponRejection, InvalidInputError
from marketplace.schemas.coupon import CouponQuote, CouponView

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


class DiscountRule(Protocol):
    """What compute_totals needs from a coupon. Coupon rows and CouponView both fit."""

    discount_type: DiscountType
    value: Decimal
    max_discount_amount: Optional[Decimal]


def round2(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, halves away from zero."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceTotals:
    subtotal: Decimal
    discount: Decimal
    total: Decimal


def compute_totals(prices: Iterable, coupon: Optional[DiscountRule] = None) -> PriceTotals:
    """
    Price a list of already-resolved line prices.

    The coupon is trusted: callers validate eligibility first.
    - percentage: subtotal * value / 100, capped at max_discount_amount if set
    - fixed: min(value, subtotal)
    """
    subtotal = sum((Decimal(str(price)) for price in prices), ZERO)
    discount = ZERO

    if coupon is not None:
        value = Decimal(str(coupon.value))
        if DiscountType(coupon.discount_type) == DiscountType.PERCENTAGE:
            discount = subtotal * value / Decimal("100")
            cap = coupon.max_discount_amount
            if cap is not None and discount > Decimal(str(cap)):
                discount = Decimal(str(cap))
        else:
            discount = min(value, subtotal)

    # total uses the unrounded discount.
    total = max(ZERO, round2(subtotal - discount))
    return PriceTotals(
        subtotal=round2(subtotal),
        discount=round2(discount),
        total=total,
    )


class PricingEngine:
    """Coupon validation against the coupon table, plus cart totals."""

    def __init__(self, db: Session):
        self.db = db

    def find_coupon(self, code: str) -> Optional[Coupon]:
        normalized = normalize_coupon_code(code)
        if not normalized:
            return None
        return self.db.query(Coupon).filter(Coupon.code == normalized).first()

    def validate_coupon(
        self,
        code: str,
        order_value,
        now: Optional[datetime] = None,
    ) -> CouponView:
        """
        Check that a coupon code can be applied to order_value.

        Raises:
            InvalidInputError: blank code
            CouponError: first failing eligibility check
        """
        normalized = normalize_coupon_code(code)
        if not normalized:
            raise InvalidInputError("Coupon code is required", details={"field": "code"})
        order_amount = Decimal(str(order_value))
        compare_at = now or datetime.now(timezone.utc)

        coupon = self.find_coupon(normalized)
        if coupon is None:
            raise self._reject(CouponRejection.NOT_FOUND, normalized)
        if not coupon.is_active:
            raise self._reject(CouponRejection.INACTIVE, normalized)
        if coupon.is_expired(compare_at):
            raise self._reject(CouponRejection.EXPIRED, normalized)
        if coupon.is_exhausted:
            raise self._reject(
                CouponRejection.USAGE_LIMIT_REACHED,
                normalized,
                {"usage_limit": coupon.usage_limit},
            )
        min_order = Decimal(coupon.min_order_value or 0)
        if order_amount < min_order:
            raise self._reject(
                CouponRejection.BELOW_MIN_ORDER,
                normalized,
                {"min_order_value": str(min_order), "order_value": str(order_amount)},
            )

        return CouponView.model_validate(coupon)

    def quote_coupon(self, code: str, order_value, now: Optional[datetime] = None) -> CouponQuote:
        """Validate a coupon and show what it would take off order_value."""
        view = self.validate_coupon(code, order_value, now=now)
        totals = compute_totals([order_value], view)
        return CouponQuote(
            coupon=view,
            original_amount=totals.subtotal,
            discount_amount=totals.discount,
            final_amount=totals.total,
        )

    def price_cart(
        self,
        prices: Iterable,
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> tuple:
        """
        Totals for a cart, validating coupon_code against its subtotal.

        Returns (PriceTotals, CouponView or None).
        """
        prices = [Decimal(str(price)) for price in prices]
        coupon = None
        if coupon_code:
            coupon = self.validate_coupon(coupon_code, sum(prices, ZERO), now=now)
        return compute_totals(prices, coupon), coupon

    @staticmethod
    def _reject(reason: CouponRejection, code: str, details: Optional[dict] = None) -> CouponError:
        logger.info(
            "pricing.coupon_rejected",
            extra={"coupon_code": code, "reason": reason.value},
        )
        return CouponError(reason, code, details)
