"""
Payment gateway contract and Razorpay client.

Checkout creates a gateway order for the server-computed total; the buyer
pays client-side and returns (order_id, payment_id, signature). verify()
checks that signature before anything is persisted.
"""

import hashlib
import hmac
import logging
from typing import Optional, Protocol

import httpx

from marketplace.config import RAZORPAY_API_BASE, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET
from marketplace.platform.errors import PaymentGatewayError
from marketplace.schemas.checkout import PaymentProof

logger = logging.getLogger(__name__)

# Razorpay rejects receipts longer than this
MAX_RECEIPT_LENGTH = 40


class PaymentGateway(Protocol):
    def create_order(self, amount_minor: int, currency: str, receipt: str) -> str:
        """Create an order for amount_minor (smallest currency unit); return its id."""
        ...

    def verify(self, proof: PaymentProof) -> bool:
        """True if proof was issued by the gateway for proof.order_id."""
        ...


class RazorpayGateway:
    """
    Razorpay Orders API client.

    Handles:
    - Order creation (POST /orders, HTTP basic auth with key id/secret)
    - Checkout signature verification (HMAC-SHA256 of "order_id|payment_id")
    """

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id or RAZORPAY_KEY_ID
        self.key_secret = key_secret or RAZORPAY_KEY_SECRET
        self.api_base = (api_base or RAZORPAY_API_BASE).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_base,
            auth=(self.key_id, self.key_secret),
            timeout=self._timeout,
            transport=self._transport,
        )

    def create_order(self, amount_minor: int, currency: str, receipt: str) -> str:
        """
        Create a Razorpay order.

        Raises:
            PaymentGatewayError: credentials missing, transport failure, non-2xx
                response or a response without an order id
        """
        if not self.key_id or not self.key_secret:
            raise PaymentGatewayError("Payment gateway credentials are not configured")
        if amount_minor <= 0:
            raise PaymentGatewayError(
                "Order amount must be positive", details={"amount": amount_minor}
            )

        payload = {
            "amount": int(amount_minor),
            "currency": currency,
            "receipt": receipt[:MAX_RECEIPT_LENGTH],
        }

        try:
            with self._client() as client:
                response = client.post("/orders", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("payment_gateway.http_error", extra={
                "status_code": e.response.status_code,
                "response": e.response.text[:500],
            })
            raise PaymentGatewayError(
                f"Payment gateway error: {e.response.status_code}",
                details={"status_code": e.response.status_code},
            )
        except httpx.RequestError as e:
            logger.error("payment_gateway.request_error", extra={"error": str(e)})
            raise PaymentGatewayError(f"Payment gateway request failed: {e}")

        order_id = data.get("id")
        if not order_id:
            raise PaymentGatewayError("Payment gateway returned no order id")

        logger.info("payment_gateway.order_created", extra={
            "order_id": order_id,
            "amount": payload["amount"],
            "currency": currency,
        })
        return order_id

    def verify(self, proof: PaymentProof) -> bool:
        if not self.key_secret:
            logger.error("payment_gateway.secret_not_configured")
            return False

        message = f"{proof.order_id}|{proof.payment_id}".encode("utf-8")
        expected = hmac.new(
            self.key_secret.encode("utf-8"),
            message,
            hashlib.sha256,
        ).hexdigest()

        return hmac.compare_digest(expected, proof.signature)
