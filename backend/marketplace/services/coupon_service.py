"""
Coupon administration and usage accounting.

Handles:
- Coupon CRUD and activation toggle (admin)
- Atomic, limit-respecting usage increments after a paid purchase
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from marketplace.models.base import as_utc
from marketplace.models.coupon import Coupon, DiscountType, normalize_coupon_code
from marketplace.platform.errors import ConflictError, InvalidInputError, NotFoundError
from marketplace.schemas.coupon import CouponCreate, CouponUpdate

logger = logging.getLogger(__name__)


def _check_value(discount_type: DiscountType, value: Decimal) -> None:
    if discount_type == DiscountType.PERCENTAGE and not (Decimal("0") <= value <= Decimal("100")):
        raise InvalidInputError(
            "Percentage discount must be between 0 and 100", details={"field": "value"}
        )
    if discount_type == DiscountType.FIXED and value < 0:
        raise InvalidInputError(
            "Fixed discount must be a positive number", details={"field": "value"}
        )


def _check_expiry(expiry_date: Optional[datetime], now: datetime) -> None:
    if expiry_date is not None and as_utc(expiry_date) <= now:
        raise InvalidInputError(
            "Expiry date must be in the future", details={"field": "expiry_date"}
        )


class CouponService:
    """Admin maintenance for coupons."""

    def __init__(self, db: Session):
        self.db = db

    def get_coupon(self, coupon_id: str) -> Coupon:
        coupon = self.db.query(Coupon).filter(Coupon.id == coupon_id).first()
        if coupon is None:
            raise NotFoundError("Coupon", coupon_id)
        return coupon

    def list_coupons(self) -> List[Coupon]:
        """All coupons, newest first."""
        return self.db.query(Coupon).order_by(Coupon.created_at.desc()).all()

    def create_coupon(
        self,
        request: CouponCreate,
        created_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Coupon:
        """
        Create a coupon.

        usage_limit 0 is stored as unlimited; max_discount_amount is dropped
        for fixed coupons.

        Raises:
            InvalidInputError: value out of range, blank code, past expiry
            ConflictError: code already exists (case-insensitive)
        """
        now = now or datetime.now(timezone.utc)
        code = normalize_coupon_code(request.code)
        if not code:
            raise InvalidInputError("Coupon code is required", details={"field": "code"})
        _check_value(request.discount_type, request.value)
        _check_expiry(request.expiry_date, now)

        if self._code_taken(code):
            raise ConflictError("Coupon code already exists", details={"code": code})

        coupon = Coupon(
            code=code,
            discount_type=request.discount_type,
            value=request.value,
            min_order_value=request.min_order_value,
            max_discount_amount=(
                request.max_discount_amount
                if request.discount_type == DiscountType.PERCENTAGE
                else None
            ),
            usage_limit=request.usage_limit or None,
            used_count=0,
            expiry_date=request.expiry_date,
            is_active=True,
            description=request.description,
            created_by=created_by,
        )
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)

        logger.info(
            "coupon.created",
            extra={"coupon_id": coupon.id, "code": code, "created_by": created_by},
        )
        return coupon

    def update_coupon(
        self,
        coupon_id: str,
        request: CouponUpdate,
        now: Optional[datetime] = None,
    ) -> Coupon:
        """Patch a coupon, re-checking the merged discount type and value."""
        now = now or datetime.now(timezone.utc)
        coupon = self.get_coupon(coupon_id)
        changes = request.model_dump(exclude_unset=True)

        if "code" in changes:
            code = normalize_coupon_code(changes["code"])
            if not code:
                raise InvalidInputError("Coupon code is required", details={"field": "code"})
            if code != coupon.code and self._code_taken(code):
                raise ConflictError("Coupon code already exists", details={"code": code})
            changes["code"] = code

        discount_type = changes.get("discount_type") or coupon.discount_type
        value = changes.get("value")
        if value is None:
            value = coupon.value
        _check_value(DiscountType(discount_type), Decimal(value))
        if changes.get("expiry_date") is not None:
            _check_expiry(changes["expiry_date"], now)
        if "usage_limit" in changes:
            # 0 means unlimited, as on create
            changes["usage_limit"] = changes["usage_limit"] or None
            limit = changes["usage_limit"]
            if limit is not None and limit < coupon.used_count:
                raise InvalidInputError(
                    "usage_limit cannot be below the number of redemptions",
                    details={"usage_limit": limit, "used_count": coupon.used_count},
                )

        for key, new_value in changes.items():
            if key in ("discount_type", "value", "min_order_value", "is_active") and new_value is None:
                continue
            setattr(coupon, key, new_value)
        if DiscountType(coupon.discount_type) == DiscountType.FIXED:
            coupon.max_discount_amount = None

        self.db.commit()
        self.db.refresh(coupon)

        logger.info(
            "coupon.updated",
            extra={"coupon_id": coupon_id, "fields": sorted(changes.keys())},
        )
        return coupon

    def toggle_coupon(self, coupon_id: str) -> Coupon:
        """Flip is_active."""
        coupon = self.get_coupon(coupon_id)
        coupon.is_active = not coupon.is_active
        self.db.commit()
        self.db.refresh(coupon)

        logger.info(
            "coupon.toggled",
            extra={"coupon_id": coupon_id, "is_active": coupon.is_active},
        )
        return coupon

    def delete_coupon(self, coupon_id: str) -> None:
        coupon = self.get_coupon(coupon_id)
        self.db.delete(coupon)
        self.db.commit()
        logger.info("coupon.deleted", extra={"coupon_id": coupon_id})

    def increment_usage(self, code: str) -> bool:
        """
        Count one redemption of code.

        Single conditional UPDATE: the row only changes while used_count is
        below usage_limit (or the coupon is unlimited). Returns True if a
        redemption was counted.
        """
        normalized = normalize_coupon_code(code)
        if not normalized:
            return False

        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.code == normalized,
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        counted = result.rowcount == 1
        if counted:
            logger.info("coupon.usage_incremented", extra={"code": normalized})
        else:
            logger.warning("coupon.usage_increment_refused", extra={"code": normalized})
        return counted

    def _code_taken(self, code: str) -> bool:
        return self.db.query(Coupon.id).filter(Coupon.code == code).first() is not None
