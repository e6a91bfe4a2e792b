"""
Purchase and purchase line item models.

A Purchase is written once, after the payment gateway proof verified, and
is never updated. Line items are point-in-time snapshots (title, price,
media URLs) so later catalog edits never change what a buyer bought.

The purchase record is the source of truth: access grants can always be
re-issued from it (see PurchaseOrchestrator.repair_entitlements).
"""

from decimal import Decimal

from sqlalchemy import (
    Column, DateTime, Enum, ForeignKey, Index, Integer, String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from marketplace.db_base import Base
from marketplace.models.base import generate_uuid, utcnow
from marketplace.models.catalog import MONEY, ContentKind, TargetType


class Purchase(Base):
    """A paid order and the snapshot of everything it bought."""

    __tablename__ = "purchases"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    total_amount = Column(MONEY, nullable=False, comment="Amount charged")
    discount_applied = Column(MONEY, nullable=False, default=Decimal("0"))
    coupon_code = Column(String(64), nullable=True)
    payment_id = Column(
        String(255),
        nullable=False,
        unique=True,
        comment="Gateway payment id; one purchase per payment",
    )
    order_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    line_items = relationship(
        "PurchaseLineItem",
        order_by="PurchaseLineItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_purchases_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Purchase(id={self.id}, user_id={self.user_id}, total={self.total_amount})>"


class PurchaseLineItem(Base):
    """Immutable snapshot of one charged line."""

    __tablename__ = "purchase_line_items"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    purchase_id = Column(
        String(255),
        ForeignKey("purchases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    content_kind = Column(Enum(ContentKind, name="content_kind"), nullable=False)
    target_type = Column(Enum(TargetType, name="target_type"), nullable=False)
    source_id = Column(String(255), nullable=False, comment="Item or folder id at purchase time")
    title_snapshot = Column(String(500), nullable=False)
    price_snapshot = Column(MONEY, nullable=False)
    media_snapshot = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="preview/download/thumbnail URLs at purchase time",
    )

    def __repr__(self) -> str:
        return (
            f"<PurchaseLineItem(kind={self.content_kind.value}, "
            f"type={self.target_type.value}, source_id={self.source_id})>"
        )
