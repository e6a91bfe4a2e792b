"""
Purchase history read path ("my purchases").

Reads stored purchases only; what a buyer bought is always the line item
snapshot, never the live catalog.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from marketplace.models.catalog import ContentKind, TargetType
from marketplace.models.purchase import Purchase, PurchaseLineItem
from marketplace.platform.errors import NotFoundError


@dataclass(frozen=True)
class PurchasedLine:
    purchase_id: str
    purchased_at: datetime
    line_item: PurchaseLineItem


@dataclass
class PurchasedContent:
    """One content kind's purchased lines, split into folder and item lines."""

    folders: List[PurchasedLine] = field(default_factory=list)
    items: List[PurchasedLine] = field(default_factory=list)


class PurchaseHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def list_purchases(self, user_id: str) -> List[Purchase]:
        """The user's purchases, newest first."""
        return (
            self.db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .order_by(Purchase.created_at.desc())
            .all()
        )

    def get_purchase(self, user_id: str, purchase_id: str) -> Purchase:
        """Raises NotFoundError if missing or owned by someone else."""
        purchase = (
            self.db.query(Purchase)
            .filter(Purchase.id == purchase_id, Purchase.user_id == user_id)
            .first()
        )
        if purchase is None:
            raise NotFoundError("Purchase", purchase_id)
        return purchase

    def purchased_by_kind(self, user_id: str, kind: ContentKind) -> PurchasedContent:
        kind = ContentKind(kind)
        content = PurchasedContent()

        for purchase in self.list_purchases(user_id):
            for line in purchase.line_items:
                if ContentKind(line.content_kind) != kind:
                    continue
                entry = PurchasedLine(
                    purchase_id=purchase.id,
                    purchased_at=purchase.created_at,
                    line_item=line,
                )
                if TargetType(line.target_type) == TargetType.FOLDER:
                    content.folders.append(entry)
                else:
                    content.items.append(entry)

        return content
