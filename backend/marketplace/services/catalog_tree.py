"""
Catalog tree service.

One CatalogTree instance manages the folders and items of a single content
kind. The four kinds share this implementation; only the item attribute
schema differs (see marketplace.schemas.catalog).

Handles:
- Folder CRUD with cycle-safe re-parenting
- Post-order cascade delete that is safe to retry after interruption
- Item CRUD with price ordering and per-kind attribute validation
- Browsing: direct children, root-to-folder path, purchasable folders
- Recursive descendant item collection for folder purchase snapshots

Parent-chain walks are iterative, bounded by max_depth and guarded by a
visited set, so they terminate even if stored data contains a cycle.
"""

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.config import MAX_FOLDER_DEPTH
from marketplace.models.catalog import CatalogFolder, CatalogItem, ContentKind
from marketplace.platform.errors import InvalidInputError, InvalidMoveError, NotFoundError
from marketplace.schemas.catalog import ATTRIBUTE_SCHEMAS, FolderUpdate, ItemUpdate

logger = logging.getLogger(__name__)


class ItemOrder(str, enum.Enum):
    """Item ordering for listings: browse views use ascending, admin views descending."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class PathEntry:
    id: str
    name: str


@dataclass
class CatalogListing:
    """Direct children of a folder (or of the root) plus the breadcrumb path."""

    folders: List[CatalogFolder]
    items: List[CatalogItem]
    path: List[PathEntry] = field(default_factory=list)


@dataclass
class FolderDeletion:
    """What a cascade delete removed."""

    folder_id: str
    deleted_folder_ids: List[str] = field(default_factory=list)
    deleted_item_ids: List[str] = field(default_factory=list)


def _to_money(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field_name} must be a number", details={"field": field_name})
    if not amount.is_finite():
        raise InvalidInputError(f"{field_name} must be a number", details={"field": field_name})
    return amount


def validate_price_pair(base_price: Any, discount_price: Any) -> Tuple[Decimal, Optional[Decimal]]:
    """
    Normalize and check a base/discount price pair.

    Raises InvalidInputError if a price is negative or discount >= base.
    """
    base = _to_money(base_price, "base_price")
    if base is None:
        raise InvalidInputError("base_price is required", details={"field": "base_price"})
    if base < 0:
        raise InvalidInputError("Base price must be non-negative", details={"field": "base_price"})

    discount = _to_money(discount_price, "discount_price")
    if discount is not None:
        if discount < 0:
            raise InvalidInputError(
                "Discount price must be non-negative", details={"field": "discount_price"}
            )
        if discount >= base:
            raise InvalidInputError(
                "Discount price must be less than base price",
                details={"base_price": str(base), "discount_price": str(discount)},
            )
    return base, discount


class CatalogTree:
    """Folder/item tree for one content kind."""

    def __init__(self, db: Session, kind: ContentKind, max_depth: int = MAX_FOLDER_DEPTH):
        if max_depth < 1:
            raise ValueError("max_depth must be positive")
        self.db = db
        self.kind = ContentKind(kind)
        self.max_depth = max_depth

    # =========================================================================
    # Lookups
    # =========================================================================

    def _find_folder(self, folder_id: Optional[str]) -> Optional[CatalogFolder]:
        if not folder_id:
            return None
        return (
            self.db.query(CatalogFolder)
            .filter(CatalogFolder.id == folder_id, CatalogFolder.kind == self.kind)
            .first()
        )

    def _find_item(self, item_id: Optional[str]) -> Optional[CatalogItem]:
        if not item_id:
            return None
        return (
            self.db.query(CatalogItem)
            .filter(CatalogItem.id == item_id, CatalogItem.kind == self.kind)
            .first()
        )

    def get_folder(self, folder_id: str) -> CatalogFolder:
        folder = self._find_folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)
        return folder

    def get_item(self, item_id: str) -> CatalogItem:
        item = self._find_item(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    def find_item(self, item_id: str) -> Optional[CatalogItem]:
        """Item of this kind, or None."""
        return self._find_item(item_id)

    def find_folder(self, folder_id: str) -> Optional[CatalogFolder]:
        """Folder of this kind, or None."""
        return self._find_folder(folder_id)

    # =========================================================================
    # Folders
    # =========================================================================

    def create_folder(
        self,
        name: str,
        parent_id: Optional[str] = None,
        *,
        created_by: str,
        description: Optional[str] = None,
        base_price: Any = Decimal("0"),
        discount_price: Any = None,
        is_purchasable: bool = False,
        thumbnail_url: Optional[str] = None,
        cover_photo_url: Optional[str] = None,
        preview_video_url: Optional[str] = None,
    ) -> CatalogFolder:
        """
        Create a folder at the root or under parent_id.

        Raises:
            InvalidInputError: blank name/creator or invalid prices
            NotFoundError: parent_id is not a folder of this kind
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise InvalidInputError("Name is required", details={"field": "name"})
        if not str(created_by or "").strip():
            raise InvalidInputError("created_by is required", details={"field": "created_by"})

        base, discount = validate_price_pair(base_price, discount_price)

        if parent_id:
            self.get_folder(parent_id)

        folder = CatalogFolder(
            kind=self.kind,
            name=clean_name,
            parent_id=parent_id or None,
            description=description,
            base_price=base,
            discount_price=discount,
            is_purchasable=bool(is_purchasable),
            item_count=0,
            thumbnail_url=thumbnail_url,
            cover_photo_url=cover_photo_url,
            preview_video_url=preview_video_url,
            created_by=created_by,
        )
        self.db.add(folder)
        self.db.commit()
        self.db.refresh(folder)

        logger.info(
            "catalog.folder_created",
            extra={
                "kind": self.kind.value,
                "folder_id": folder.id,
                "parent_id": folder.parent_id,
                "created_by": created_by,
            },
        )
        return folder

    def update_folder(self, folder_id: str, patch: FolderUpdate) -> CatalogFolder:
        """
        Patch folder metadata and pricing.

        Price ordering is checked on the merged values, so lowering
        base_price below an existing discount_price is rejected.
        """
        folder = self.get_folder(folder_id)
        changes = patch.model_dump(exclude_unset=True)

        if "name" in changes:
            clean_name = (changes["name"] or "").strip()
            if not clean_name:
                raise InvalidInputError("Name is required", details={"field": "name"})
            changes["name"] = clean_name
        if "is_purchasable" in changes and changes["is_purchasable"] is None:
            del changes["is_purchasable"]

        base, discount = validate_price_pair(
            changes.get("base_price", folder.base_price),
            changes.get("discount_price", folder.discount_price),
        )
        changes["base_price"] = base
        changes["discount_price"] = discount

        for key, value in changes.items():
            setattr(folder, key, value)

        self._recount_items(folder.id)
        self.db.commit()
        self.db.refresh(folder)

        logger.info(
            "catalog.folder_updated",
            extra={
                "kind": self.kind.value,
                "folder_id": folder.id,
                "fields": sorted(changes.keys()),
            },
        )
        return folder

    def move_folder(self, folder_id: str, new_parent_id: Optional[str] = None) -> CatalogFolder:
        """
        Re-parent a folder. new_parent_id None moves it to the root.

        Raises:
            NotFoundError: folder or new parent missing
            InvalidMoveError: self-move, move under a descendant, or the new
                parent's chain is corrupted. State is unchanged on failure.
        """
        folder = self.get_folder(folder_id)

        if new_parent_id:
            if new_parent_id == folder_id:
                raise InvalidMoveError(details={"folder_id": folder_id, "new_parent_id": new_parent_id})
            new_parent = self.get_folder(new_parent_id)

            chain, intact = self._ancestor_chain(new_parent)
            if any(ancestor.id == folder_id for ancestor in chain):
                raise InvalidMoveError(details={"folder_id": folder_id, "new_parent_id": new_parent_id})
            if not intact:
                raise InvalidMoveError(
                    "Folder hierarchy above the target is corrupted; move refused",
                    details={"folder_id": folder_id, "new_parent_id": new_parent_id},
                )

        previous_parent = folder.parent_id
        folder.parent_id = new_parent_id or None
        self.db.commit()
        self.db.refresh(folder)

        logger.info(
            "catalog.folder_moved",
            extra={
                "kind": self.kind.value,
                "folder_id": folder_id,
                "from_parent_id": previous_parent,
                "to_parent_id": folder.parent_id,
            },
        )
        return folder

    def delete_folder(self, folder_id: str, *, missing_ok: bool = False) -> FolderDeletion:
        """
        Delete a folder, every descendant folder and every item inside them.

        Folders are removed children-first. Each folder's items and row are
        committed as one step, so an interrupted cascade leaves a tree in
        which every remaining folder still has its parent and a retry of the
        same call finishes the job.

        Raises:
            NotFoundError: folder absent and missing_ok is False
        """
        if self._find_folder(folder_id) is None:
            if missing_ok:
                return FolderDeletion(folder_id=folder_id)
            raise NotFoundError("Folder", folder_id)

        # Breadth-first order reversed puts every child before its parent.
        deletion_order = list(reversed(self._subtree_folder_ids(folder_id)))
        result = FolderDeletion(folder_id=folder_id)

        for current_id in deletion_order:
            item_ids = [
                row.id
                for row in self.db.query(CatalogItem.id).filter(
                    CatalogItem.kind == self.kind,
                    CatalogItem.folder_id == current_id,
                )
            ]
            if item_ids:
                self.db.query(CatalogItem).filter(
                    CatalogItem.id.in_(item_ids)
                ).delete(synchronize_session=False)
            deleted = self.db.query(CatalogFolder).filter(
                CatalogFolder.id == current_id,
                CatalogFolder.kind == self.kind,
            ).delete(synchronize_session=False)
            self.db.commit()

            result.deleted_item_ids.extend(item_ids)
            if deleted:
                result.deleted_folder_ids.append(current_id)

        logger.info(
            "catalog.folder_deleted",
            extra={
                "kind": self.kind.value,
                "folder_id": folder_id,
                "folders_deleted": len(result.deleted_folder_ids),
                "items_deleted": len(result.deleted_item_ids),
            },
        )
        return result

    def list_folders(self) -> List[CatalogFolder]:
        """All folders of this kind, newest first (admin overview)."""
        return (
            self.db.query(CatalogFolder)
            .filter(CatalogFolder.kind == self.kind)
            .order_by(CatalogFolder.created_at.desc())
            .all()
        )

    def list_purchasable_folders(self) -> List[CatalogFolder]:
        """Folders an admin has priced and enabled for bundle purchase, newest first."""
        return (
            self.db.query(CatalogFolder)
            .filter(
                CatalogFolder.kind == self.kind,
                CatalogFolder.is_purchasable.is_(True),
                CatalogFolder.base_price > 0,
            )
            .order_by(CatalogFolder.created_at.desc())
            .all()
        )

    # =========================================================================
    # Items
    # =========================================================================

    def create_item(
        self,
        title: str,
        folder_id: Optional[str] = None,
        *,
        base_price: Any,
        discount_price: Any = None,
        description: Optional[str] = None,
        attributes: Optional[dict] = None,
    ) -> CatalogItem:
        """
        Create an item at the root or inside folder_id.

        Raises:
            InvalidInputError: blank title, invalid prices or attributes
            NotFoundError: folder_id is not a folder of this kind
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise InvalidInputError("Title is required", details={"field": "title"})
        base, discount = validate_price_pair(base_price, discount_price)
        payload = self._validate_attributes(attributes)

        if folder_id:
            self.get_folder(folder_id)

        item = CatalogItem(
            kind=self.kind,
            folder_id=folder_id or None,
            title=clean_title,
            description=description,
            base_price=base,
            discount_price=discount,
            attributes=payload,
        )
        self.db.add(item)
        self.db.flush()
        self._recount_items(item.folder_id)
        self.db.commit()
        self.db.refresh(item)

        logger.info(
            "catalog.item_created",
            extra={"kind": self.kind.value, "item_id": item.id, "folder_id": item.folder_id},
        )
        return item

    def update_item(self, item_id: str, patch: ItemUpdate) -> CatalogItem:
        """Patch an item; attributes are merged then re-validated."""
        item = self.get_item(item_id)
        changes = patch.model_dump(exclude_unset=True)

        if "title" in changes:
            clean_title = (changes["title"] or "").strip()
            if not clean_title:
                raise InvalidInputError("Title is required", details={"field": "title"})
            changes["title"] = clean_title

        base, discount = validate_price_pair(
            changes.get("base_price", item.base_price),
            changes.get("discount_price", item.discount_price),
        )
        changes["base_price"] = base
        changes["discount_price"] = discount

        if "attributes" in changes:
            merged = dict(item.attributes or {})
            merged.update(changes["attributes"] or {})
            changes["attributes"] = self._validate_attributes(merged)

        for key, value in changes.items():
            setattr(item, key, value)
        self.db.commit()
        self.db.refresh(item)

        logger.info(
            "catalog.item_updated",
            extra={"kind": self.kind.value, "item_id": item_id, "fields": sorted(changes.keys())},
        )
        return item

    def move_item(self, item_id: str, new_folder_id: Optional[str] = None) -> CatalogItem:
        """Move an item into new_folder_id, or to the root when None."""
        item = self.get_item(item_id)
        if new_folder_id:
            self.get_folder(new_folder_id)

        previous_folder_id = item.folder_id
        item.folder_id = new_folder_id or None
        self.db.flush()
        self._recount_items(previous_folder_id)
        self._recount_items(item.folder_id)
        self.db.commit()
        self.db.refresh(item)

        logger.info(
            "catalog.item_moved",
            extra={
                "kind": self.kind.value,
                "item_id": item_id,
                "from_folder_id": previous_folder_id,
                "to_folder_id": item.folder_id,
            },
        )
        return item

    def delete_item(self, item_id: str) -> None:
        item = self.get_item(item_id)
        folder_id = item.folder_id
        self.db.delete(item)
        self.db.flush()
        self._recount_items(folder_id)
        self.db.commit()

        logger.info(
            "catalog.item_deleted",
            extra={"kind": self.kind.value, "item_id": item_id, "folder_id": folder_id},
        )

    # =========================================================================
    # Browsing
    # =========================================================================

    def list_children(
        self,
        folder_id: Optional[str] = None,
        *,
        item_order: ItemOrder = ItemOrder.ASCENDING,
    ) -> CatalogListing:
        """
        Direct child folders and items of folder_id (or of the root).

        Folders are ordered oldest first; items follow item_order.
        """
        if folder_id:
            self.get_folder(folder_id)

        folder_query = self.db.query(CatalogFolder).filter(CatalogFolder.kind == self.kind)
        item_query = self.db.query(CatalogItem).filter(CatalogItem.kind == self.kind)
        if folder_id:
            folder_query = folder_query.filter(CatalogFolder.parent_id == folder_id)
            item_query = item_query.filter(CatalogItem.folder_id == folder_id)
        else:
            folder_query = folder_query.filter(CatalogFolder.parent_id.is_(None))
            item_query = item_query.filter(CatalogItem.folder_id.is_(None))

        item_sort = (
            CatalogItem.created_at.desc()
            if ItemOrder(item_order) == ItemOrder.DESCENDING
            else CatalogItem.created_at.asc()
        )

        return CatalogListing(
            folders=folder_query.order_by(CatalogFolder.created_at.asc()).all(),
            items=item_query.order_by(item_sort).all(),
            path=self.resolve_path(folder_id),
        )

    def resolve_path(self, folder_id: Optional[str] = None) -> List[PathEntry]:
        """Breadcrumb from the root down to folder_id; empty for the root."""
        if not folder_id:
            return []
        folder = self.get_folder(folder_id)
        chain, _ = self._ancestor_chain(folder)
        return [PathEntry(id=f.id, name=f.name) for f in reversed(chain)]

    def descendant_item_ids(self, folder_id: str) -> frozenset:
        """
        Ids of every item in folder_id or any folder below it.

        Fully materialized: the result is frozen into folder access grants.
        """
        self.get_folder(folder_id)
        folder_ids = self._subtree_folder_ids(folder_id)

        item_ids: set = set()
        for chunk in _chunks(folder_ids, 500):
            rows = self.db.query(CatalogItem.id).filter(
                CatalogItem.kind == self.kind,
                CatalogItem.folder_id.in_(chunk),
            )
            item_ids.update(row.id for row in rows)
        return frozenset(item_ids)

    # =========================================================================
    # Internals
    # =========================================================================

    def _ancestor_chain(self, start: CatalogFolder) -> Tuple[List[CatalogFolder], bool]:
        """
        Folders from start up to the root, start first.

        Returns (chain, intact). intact is False when the walk hit a revisit
        or exceeded max_depth; the chain is then truncated at that point.
        """
        chain: List[CatalogFolder] = []
        visited: set = set()
        current: Optional[CatalogFolder] = start

        while current is not None:
            if current.id in visited or len(chain) >= self.max_depth:
                logger.error(
                    "catalog.parent_chain_corrupted",
                    extra={
                        "kind": self.kind.value,
                        "start_folder_id": start.id,
                        "stopped_at": current.id,
                        "depth": len(chain),
                    },
                )
                return chain, False
            visited.add(current.id)
            chain.append(current)
            current = self._find_folder(current.parent_id)

        return chain, True

    def _subtree_folder_ids(self, folder_id: str) -> List[str]:
        """folder_id and all its descendants in breadth-first order."""
        order = [folder_id]
        seen = {folder_id}
        frontier = [folder_id]

        while frontier:
            next_frontier: List[str] = []
            for chunk in _chunks(frontier, 500):
                rows = self.db.query(CatalogFolder.id).filter(
                    CatalogFolder.kind == self.kind,
                    CatalogFolder.parent_id.in_(chunk),
                )
                for row in rows:
                    if row.id in seen:
                        continue
                    seen.add(row.id)
                    order.append(row.id)
                    next_frontier.append(row.id)
            frontier = next_frontier

        return order

    def _recount_items(self, folder_id: Optional[str]) -> None:
        folder = self._find_folder(folder_id)
        if folder is None:
            return
        folder.item_count = (
            self.db.query(func.count(CatalogItem.id))
            .filter(CatalogItem.kind == self.kind, CatalogItem.folder_id == folder.id)
            .scalar()
        ) or 0

    def _validate_attributes(self, attributes: Optional[dict]) -> dict:
        schema = ATTRIBUTE_SCHEMAS[self.kind]
        try:
            parsed = schema.model_validate(attributes or {})
        except PydanticValidationError as exc:
            raise InvalidInputError(
                f"Invalid {self.kind.value} attributes",
                details={
                    "errors": [
                        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
                        for error in exc.errors()
                    ]
                },
            )
        return parsed.model_dump(mode="json", exclude_none=True)


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]
