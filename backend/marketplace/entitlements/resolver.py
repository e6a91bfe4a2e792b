"""
Entitlement resolver.

Turns purchased line items into access grants.

- Item lines grant the item.
- Folder lines grant the folder plus a frozen snapshot of every item in it
  (recursively) at grant time. Items added later are not covered.
- Re-granting is idempotent: an existing grant for (user, type, target) is
  returned unchanged, even if it came from a different purchase.

Uniqueness is enforced by the access_grants unique constraint, not by
locking. A constraint violation on insert means a concurrent writer won:
the existing row is fetched and returned.

Grant failures never touch the Purchase row. The purchase is the source of
truth and grant_for_purchase() can be re-run from it at any time.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.entitlements.ledger import AccessGrantLedger
from marketplace.models.access_grant import AccessGrant
from marketplace.models.catalog import ContentKind, TargetType
from marketplace.models.purchase import Purchase, PurchaseLineItem
from marketplace.platform.errors import AppError, ConflictError
from marketplace.services.catalog_tree import CatalogTree

logger = logging.getLogger(__name__)


@dataclass
class LineItemFailure:
    """A purchase line whose grant could not be written."""

    position: int
    content_kind: ContentKind
    target_type: TargetType
    source_id: str
    error_code: str
    message: str


@dataclass
class GrantReport:
    """Outcome of granting every line of a purchase."""

    purchase_id: str
    granted: List[AccessGrant] = field(default_factory=list)
    failures: List[LineItemFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures


class EntitlementResolver:
    """Writes access grants for purchased line items."""

    def __init__(
        self,
        db: Session,
        ledger: Optional[AccessGrantLedger] = None,
        tree_factory: Optional[Callable[[ContentKind], CatalogTree]] = None,
    ):
        self.db = db
        self.ledger = ledger or AccessGrantLedger(db)
        self._tree_factory = tree_factory or (lambda kind: CatalogTree(db, kind))

    def grant_for_line_item(
        self,
        user_id: str,
        line_item: PurchaseLineItem,
        purchase_id: str,
    ) -> AccessGrant:
        """
        Grant access for one purchased line.

        Raises:
            NotFoundError: folder line whose folder no longer exists
            ConflictError: insert collided but no winning row could be read
        """
        target_type = TargetType(line_item.target_type)
        content_kind = ContentKind(line_item.content_kind)
        target_id = line_item.source_id

        existing = self.ledger.get_grant(user_id, target_type, target_id)
        if existing is not None:
            logger.info(
                "entitlements.already_granted",
                extra={
                    "user_id": user_id,
                    "access_type": target_type.value,
                    "target_id": target_id,
                    "purchase_id": purchase_id,
                    "existing_purchase_id": existing.purchase_id,
                },
            )
            return existing

        grant = AccessGrant(
            user_id=user_id,
            access_type=target_type,
            content_kind=content_kind,
            target_id=target_id,
            purchase_id=purchase_id,
        )
        if target_type == TargetType.ITEM:
            grant.item_id = target_id
        else:
            grant.folder_id = target_id
            snapshot = self._tree_factory(content_kind).descendant_item_ids(target_id)
            grant.included_item_ids = sorted(snapshot)

        return self._persist(grant)

    def grant_for_purchase(self, purchase: Purchase) -> GrantReport:
        """
        Grant every line of a purchase independently.

        A failing line is logged and recorded; the remaining lines are still
        granted.
        """
        report = GrantReport(purchase_id=purchase.id)

        for line_item in purchase.line_items:
            try:
                report.granted.append(
                    self.grant_for_line_item(purchase.user_id, line_item, purchase.id)
                )
            except (AppError, SQLAlchemyError) as exc:
                self.db.rollback()
                failure = LineItemFailure(
                    position=line_item.position,
                    content_kind=ContentKind(line_item.content_kind),
                    target_type=TargetType(line_item.target_type),
                    source_id=line_item.source_id,
                    error_code=getattr(exc, "code", type(exc).__name__),
                    message=str(exc),
                )
                report.failures.append(failure)
                logger.error(
                    "entitlements.line_item_failed",
                    extra={
                        "purchase_id": purchase.id,
                        "user_id": purchase.user_id,
                        "position": failure.position,
                        "target_type": failure.target_type.value,
                        "source_id": failure.source_id,
                        "error_code": failure.error_code,
                        "error": failure.message,
                    },
                )

        logger.info(
            "entitlements.purchase_granted",
            extra={
                "purchase_id": purchase.id,
                "granted": len(report.granted),
                "failed": len(report.failures),
            },
        )
        return report

    def _persist(self, grant: AccessGrant) -> AccessGrant:
        try:
            with self.db.begin_nested():
                self.db.add(grant)
        except IntegrityError:
            winner = self.ledger.get_grant(grant.user_id, grant.access_type, grant.target_id)
            if winner is None:
                raise ConflictError(
                    "Access grant collided with a concurrent write that could not be read back",
                    details={
                        "user_id": grant.user_id,
                        "access_type": grant.access_type.value,
                        "target_id": grant.target_id,
                    },
                )
            logger.info(
                "entitlements.grant_race_resolved",
                extra={
                    "user_id": grant.user_id,
                    "access_type": grant.access_type.value,
                    "target_id": grant.target_id,
                    "purchase_id": grant.purchase_id,
                    "winning_purchase_id": winner.purchase_id,
                },
            )
            return winner

        self.db.commit()
        logger.info(
            "entitlements.granted",
            extra={
                "user_id": grant.user_id,
                "access_type": grant.access_type.value,
                "target_id": grant.target_id,
                "purchase_id": grant.purchase_id,
                "included_items": len(grant.included_item_ids or []),
            },
        )
        return grant
