"""
Access grant ledger.

Read side of entitlements: answers "may user U access item/folder X".

Rules:
- Item access: a direct item grant, or any folder grant whose frozen
  included_item_ids contains the item
- Folder access: a direct folder grant only; owning every item of a folder
  never implies access to the folder itself
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.models.access_grant import AccessGrant
from marketplace.models.catalog import TargetType


class AccessGrantLedger:
    """Queries over stored access grants."""

    def __init__(self, db: Session):
        self.db = db

    def get_grant(
        self,
        user_id: str,
        target_type: TargetType,
        target_id: str,
    ) -> Optional[AccessGrant]:
        """The grant for (user_id, target_type, target_id), if one exists."""
        return (
            self.db.query(AccessGrant)
            .filter(
                AccessGrant.user_id == user_id,
                AccessGrant.access_type == TargetType(target_type),
                AccessGrant.target_id == target_id,
            )
            .first()
        )

    def has_access(self, user_id: str, target_type: TargetType, target_id: str) -> bool:
        if not user_id or not target_id:
            return False
        target_type = TargetType(target_type)

        if self.get_grant(user_id, target_type, target_id) is not None:
            return True
        if target_type == TargetType.FOLDER:
            return False

        return any(grant.covers_item(target_id) for grant in self._folder_grants(user_id))

    def accessible_item_ids(self, user_id: str) -> frozenset:
        """Every item id the user may access, directly or through folder grants."""
        item_ids: set = set()
        for grant in self.db.query(AccessGrant).filter(AccessGrant.user_id == user_id):
            if grant.access_type == TargetType.ITEM:
                item_ids.add(grant.item_id)
            else:
                item_ids.update(grant.included_item_ids or [])
        return frozenset(item_ids)

    def accessible_folders(self, user_id: str) -> List[AccessGrant]:
        """The user's folder grants, oldest first."""
        return self._folder_grants(user_id)

    def grants_for_purchase(self, purchase_id: str) -> List[AccessGrant]:
        return (
            self.db.query(AccessGrant)
            .filter(AccessGrant.purchase_id == purchase_id)
            .order_by(AccessGrant.granted_at.asc())
            .all()
        )

    def _folder_grants(self, user_id: str) -> List[AccessGrant]:
        return (
            self.db.query(AccessGrant)
            .filter(
                AccessGrant.user_id == user_id,
                AccessGrant.access_type == TargetType.FOLDER,
            )
            .order_by(AccessGrant.granted_at.asc())
            .all()
        )
