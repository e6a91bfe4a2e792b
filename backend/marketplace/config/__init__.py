"""Configuration module for the marketplace core."""

from marketplace.config.settings import (
    CART_TTL_SECONDS,
    MAX_FOLDER_DEPTH,
    MEDIA_BUCKET,
    PAYMENT_CURRENCY,
    RAZORPAY_API_BASE,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    RECEIPT_EMAIL_TEMPLATE,
    REDIS_URL,
)

__all__ = [
    "CART_TTL_SECONDS",
    "MAX_FOLDER_DEPTH",
    "MEDIA_BUCKET",
    "PAYMENT_CURRENCY",
    "RAZORPAY_API_BASE",
    "RAZORPAY_KEY_ID",
    "RAZORPAY_KEY_SECRET",
    "RECEIPT_EMAIL_TEMPLATE",
    "REDIS_URL",
]
