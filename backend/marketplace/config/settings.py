"""
Marketplace settings.

Values are read from the environment once at import time; tests pass
explicit values to constructors instead of patching these.
"""

import os

# Checkout -> payment confirmation window. Expired stashes are dropped lazily.
CART_TTL_SECONDS = int(os.getenv("CART_TTL_SECONDS", "1800"))

# Upper bound for any parent-chain walk (path building, cycle checks)
MAX_FOLDER_DEPTH = int(os.getenv("MAX_FOLDER_DEPTH", "256"))

# Payment gateway
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID", "")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
RAZORPAY_API_BASE = os.getenv("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")

# Cart stash backend; unset means in-process memory
REDIS_URL = os.getenv("REDIS_URL", "")

# Object storage bucket for uploaded media
MEDIA_BUCKET = os.getenv("MEDIA_BUCKET", "marketplace-media")

RECEIPT_EMAIL_TEMPLATE = os.getenv("RECEIPT_EMAIL_TEMPLATE", "purchase_receipt")
