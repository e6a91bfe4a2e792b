"""
Consistent error handling for the marketplace core.

Every operation of the catalog, pricing, entitlement and checkout services
reports failures with these error classes. Each carries a machine-readable
code and an HTTP status, and to_dict() gives the response body, so a
boundary layer can map it without inspecting messages.

Standard HTTP status codes:
- 400: Bad Request (invalid input, invalid move, coupon rejected, payment proof rejected)
- 404: Not Found (missing folder/item/coupon/purchase, unknown coupon code)
- 409: Conflict (duplicate coupon code, stale or already-confirmed checkout)
- 502: Bad Gateway (payment gateway unreachable or failing)
"""

import enum
from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    """
    Base application error with consistent error shape.

    All custom errors should inherit from this class.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to API error response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class InvalidInputError(AppError):
    """Malformed or missing field, or price ordering violated (400)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="INVALID_INPUT",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": identifier} if identifier else {"resource": resource},
        )


class InvalidMoveError(AppError):
    """Folder move would create a cycle, or the parent chain is corrupted (400)."""

    def __init__(self, message: str = "Cannot move folder into itself or its descendants",
                 details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="INVALID_MOVE",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class CouponRejection(str, enum.Enum):
    """Coupon failure reasons, in the order they are checked."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    BELOW_MIN_ORDER = "below_min_order"


_COUPON_MESSAGES = {
    CouponRejection.NOT_FOUND: "Invalid coupon code",
    CouponRejection.INACTIVE: "This coupon is no longer active",
    CouponRejection.EXPIRED: "This coupon has expired",
    CouponRejection.USAGE_LIMIT_REACHED: "This coupon has reached its usage limit",
    CouponRejection.BELOW_MIN_ORDER: "Minimum order value not met for this coupon",
}


class CouponError(AppError):
    """Coupon could not be applied; reason says why (404 for unknown codes, else 400)."""

    def __init__(self, reason: CouponRejection, coupon_code: str,
                 details: Optional[dict[str, Any]] = None):
        self.reason = reason
        self.coupon_code = coupon_code
        payload = {"reason": reason.value, "coupon_code": coupon_code}
        payload.update(details or {})
        super().__init__(
            code=f"COUPON_{reason.name}",
            message=_COUPON_MESSAGES[reason],
            status_code=(
                status.HTTP_404_NOT_FOUND
                if reason == CouponRejection.NOT_FOUND
                else status.HTTP_400_BAD_REQUEST
            ),
            details=payload,
        )


class PaymentNotAuthenticError(AppError):
    """Payment proof failed verification (400)."""

    def __init__(self, message: str = "Payment verification failed",
                 details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="PAYMENT_NOT_AUTHENTIC",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class StaleCartError(AppError):
    """Checkout expired or was already confirmed (409)."""

    def __init__(self, correlation_id: str):
        super().__init__(
            code="STALE_CART",
            message="Checkout session has expired or was already confirmed",
            status_code=status.HTTP_409_CONFLICT,
            details={"correlation_id": correlation_id},
        )


class ConflictError(AppError):
    """Resource conflict (409)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class PaymentGatewayError(AppError):
    """Payment gateway call failed (502)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="PAYMENT_GATEWAY_ERROR",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )
