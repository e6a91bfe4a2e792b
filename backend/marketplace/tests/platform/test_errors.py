"""
Error taxonomy tests.

CRITICAL: These tests verify that:
1. Every marketplace error carries a stable code and HTTP status
2. to_dict() gives one response shape for every error
3. Coupon rejections keep their reason and code
"""

import pytest
from fastapi import status

from marketplace.platform.errors import (
    AppError,
    ConflictError,
    CouponError,
    CouponRejection,
    InvalidInputError,
    InvalidMoveError,
    NotFoundError,
    PaymentGatewayError,
    PaymentNotAuthenticError,
    StaleCartError,
)


# ============================================================================
# TEST SUITE: ERROR CLASSES
# ============================================================================

class TestErrorClasses:

    def test_app_error_to_dict(self):
        error = AppError(code="TEST_ERROR", message="Test message", details={"extra": "info"})

        result = error.to_dict()

        assert result == {
            "error": {"code": "TEST_ERROR", "message": "Test message", "details": {"extra": "info"}}
        }
        assert error.status_code == 500

    @pytest.mark.parametrize("error,code,status_code", [
        (InvalidInputError("bad"), "INVALID_INPUT", status.HTTP_400_BAD_REQUEST),
        (NotFoundError("Folder", "f1"), "NOT_FOUND", status.HTTP_404_NOT_FOUND),
        (InvalidMoveError(), "INVALID_MOVE", status.HTTP_400_BAD_REQUEST),
        (PaymentNotAuthenticError(), "PAYMENT_NOT_AUTHENTIC", status.HTTP_400_BAD_REQUEST),
        (StaleCartError("corr-1"), "STALE_CART", status.HTTP_409_CONFLICT),
        (ConflictError("dup"), "CONFLICT", status.HTTP_409_CONFLICT),
        (PaymentGatewayError("down"), "PAYMENT_GATEWAY_ERROR", status.HTTP_502_BAD_GATEWAY),
    ])
    def test_codes_and_statuses(self, error, code, status_code):
        assert error.code == code
        assert error.status_code == status_code
        assert error.to_dict()["error"]["code"] == code

    def test_not_found_message_names_resource(self):
        error = NotFoundError("Folder", "f1")

        assert error.message == "Folder with id 'f1' not found"
        assert error.details == {"resource": "Folder", "id": "f1"}

    def test_stale_cart_carries_correlation_id(self):
        body = StaleCartError("corr-1").to_dict()

        assert body["error"]["details"] == {"correlation_id": "corr-1"}

    def test_errors_are_exceptions_with_message(self):
        with pytest.raises(AppError, match="dup"):
            raise ConflictError("dup")


# ============================================================================
# TEST SUITE: COUPON REJECTIONS
# ============================================================================

class TestCouponError:

    @pytest.mark.parametrize("reason", list(CouponRejection))
    def test_coupon_error_reasons(self, reason):
        error = CouponError(reason, "SAVE10")

        assert error.reason is reason
        assert error.code == f"COUPON_{reason.name}"
        assert error.details["reason"] == reason.value
        assert error.details["coupon_code"] == "SAVE10"
        expected = 404 if reason == CouponRejection.NOT_FOUND else 400
        assert error.status_code == expected

    def test_expired_message(self):
        body = CouponError(CouponRejection.EXPIRED, "OLD").to_dict()

        assert body["error"]["code"] == "COUPON_EXPIRED"
        assert body["error"]["message"] == "This coupon has expired"
        assert body["error"]["details"]["coupon_code"] == "OLD"
