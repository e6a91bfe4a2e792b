"""
Catalog models: folders and items for every content kind.

The four content kinds (video templates, pictures, audio, video content)
share one folder table and one item table. The `kind` column scopes every
row; parent/child links never cross kinds. Media-specific fields live in the
item's `attributes` JSON payload, validated per kind by
marketplace.schemas.catalog before they are written.

Invariants:
- A folder's parent chain is acyclic (enforced by CatalogTree.move_folder)
- discount_price < base_price whenever discount_price is set
- item_count is the number of items whose folder_id is the folder
"""

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text,
)
from sqlalchemy.types import JSON

from marketplace.db_base import Base
from marketplace.models.base import generate_uuid, utcnow


class ContentKind(str, enum.Enum):
    """Content kinds; each has its own independent folder tree."""

    TEMPLATE = "template"
    PICTURE = "picture"
    AUDIO = "audio"
    VIDEO = "video"


class TargetType(str, enum.Enum):
    """What a cart line, purchase line or access grant points at."""

    ITEM = "item"
    FOLDER = "folder"


MONEY = Numeric(12, 2)


class CatalogFolder(Base):
    """
    Folder in a content kind's tree.

    basePrice 0 with is_purchasable=False is the default: folders are only
    sold as bundles once an admin prices and enables them.
    """

    __tablename__ = "catalog_folders"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    kind = Column(
        Enum(ContentKind, name="content_kind"),
        nullable=False,
        index=True,
        comment="Content kind; parent must share it",
    )
    name = Column(String(255), nullable=False)
    parent_id = Column(
        String(255),
        ForeignKey("catalog_folders.id"),
        nullable=True,
        index=True,
        comment="Parent folder; NULL means catalog root",
    )
    description = Column(Text, nullable=True)

    base_price = Column(MONEY, nullable=False, default=Decimal("0"))
    discount_price = Column(MONEY, nullable=True)
    is_purchasable = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Gates whether the folder can be bought as a bundle",
    )
    item_count = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Derived: direct items in this folder",
    )

    thumbnail_url = Column(String(1000), nullable=True)
    cover_photo_url = Column(String(1000), nullable=True)
    preview_video_url = Column(String(1000), nullable=True)

    created_by = Column(String(255), nullable=False, comment="Owning admin user id")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_catalog_folders_kind_parent", "kind", "parent_id"),
    )

    @property
    def effective_price(self) -> Decimal:
        return effective_price(self.base_price, self.discount_price)

    def __repr__(self) -> str:
        return f"<CatalogFolder(id={self.id}, kind={self.kind.value}, name={self.name!r})>"


class CatalogItem(Base):
    """Purchasable leaf asset. folder_id NULL means the item sits at the root."""

    __tablename__ = "catalog_items"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    kind = Column(Enum(ContentKind, name="content_kind"), nullable=False, index=True)
    folder_id = Column(
        String(255),
        ForeignKey("catalog_folders.id"),
        nullable=True,
        index=True,
    )
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)

    base_price = Column(MONEY, nullable=False)
    discount_price = Column(MONEY, nullable=True)

    attributes = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="Kind-specific media payload (URLs, format, duration, ...)",
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_catalog_items_kind_folder", "kind", "folder_id"),
    )

    @property
    def effective_price(self) -> Decimal:
        return effective_price(self.base_price, self.discount_price)

    def __repr__(self) -> str:
        return f"<CatalogItem(id={self.id}, kind={self.kind.value}, title={self.title!r})>"


def effective_price(base_price: Decimal, discount_price: Optional[Decimal]) -> Decimal:
    """The price a buyer pays: discount_price when set, otherwise base_price."""
    if discount_price is not None:
        return Decimal(discount_price)
    return Decimal(base_price or 0)
