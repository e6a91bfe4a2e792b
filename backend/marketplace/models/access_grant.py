"""
Access grant model.

Durable proof that a user may access an item, or a purchased folder's
frozen item set.

Invariants:
- At most one grant per (user_id, access_type, target_id), enforced by a
  unique constraint; concurrent writers resolve to the first row written
- included_item_ids is only set on folder grants and never changes after
  the grant is written
"""

from sqlalchemy import (
    Column, DateTime, Enum, Index, String, UniqueConstraint,
)
from sqlalchemy.types import JSON

from marketplace.db_base import Base
from marketplace.models.base import generate_uuid, utcnow
from marketplace.models.catalog import ContentKind, TargetType


class AccessGrant(Base):
    """
    Access granted to a user by a purchase.

    Attributes:
        user_id: Buyer
        access_type: item or folder
        content_kind: Catalog tree the target belongs to
        item_id / folder_id: The target, depending on access_type
        target_id: Copy of the target id carrying the uniqueness constraint
        purchase_id: Provenance (first purchase that granted it)
        included_item_ids: Folder grants only; descendant items at grant time
        granted_at: When the grant was written
    """

    __tablename__ = "access_grants"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    access_type = Column(Enum(TargetType, name="target_type"), nullable=False)
    content_kind = Column(Enum(ContentKind, name="content_kind"), nullable=False)
    item_id = Column(String(255), nullable=True)
    folder_id = Column(String(255), nullable=True)
    target_id = Column(String(255), nullable=False)
    purchase_id = Column(String(255), nullable=False, index=True)
    included_item_ids = Column(JSON, nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "access_type", "target_id",
            name="uq_access_grants_user_type_target",
        ),
        Index("ix_access_grants_user_type", "user_id", "access_type"),
    )

    def covers_item(self, item_id: str) -> bool:
        if self.access_type == TargetType.ITEM:
            return self.item_id == item_id
        return item_id in (self.included_item_ids or [])

    def __repr__(self) -> str:
        return (
            f"<AccessGrant(user_id={self.user_id}, type={self.access_type.value}, "
            f"target_id={self.target_id})>"
        )
