"""Pydantic schemas for catalog, coupon and checkout inputs and views."""

from marketplace.schemas.catalog import (
    ATTRIBUTE_SCHEMAS,
    MEDIA_FIELDS,
    AudioAttributes,
    FolderUpdate,
    ItemUpdate,
    PictureAttributes,
    TemplateAttributes,
    VideoAttributes,
    media_urls,
)
from marketplace.schemas.checkout import CartItem, PaymentProof
from marketplace.schemas.coupon import CouponCreate, CouponQuote, CouponUpdate, CouponView

__all__ = [
    "ATTRIBUTE_SCHEMAS",
    "MEDIA_FIELDS",
    "AudioAttributes",
    "FolderUpdate",
    "ItemUpdate",
    "PictureAttributes",
    "TemplateAttributes",
    "VideoAttributes",
    "media_urls",
    "CartItem",
    "PaymentProof",
    "CouponCreate",
    "CouponQuote",
    "CouponUpdate",
    "CouponView",
]
