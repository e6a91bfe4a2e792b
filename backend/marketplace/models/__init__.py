"""
Database models for the catalog, coupons, purchases and access grants.

Importing this package registers every table on Base.metadata.
"""

from marketplace.models.base import TimestampMixin, generate_uuid
from marketplace.models.catalog import (
    CatalogFolder,
    CatalogItem,
    ContentKind,
    TargetType,
    effective_price,
)
from marketplace.models.coupon import Coupon, DiscountType, normalize_coupon_code
from marketplace.models.purchase import Purchase, PurchaseLineItem
from marketplace.models.access_grant import AccessGrant

__all__ = [
    "TimestampMixin",
    "generate_uuid",
    # Catalog
    "CatalogFolder",
    "CatalogItem",
    "ContentKind",
    "TargetType",
    "effective_price",
    # Pricing
    "Coupon",
    "DiscountType",
    "normalize_coupon_code",
    # Purchases and entitlements
    "Purchase",
    "PurchaseLineItem",
    "AccessGrant",
]
