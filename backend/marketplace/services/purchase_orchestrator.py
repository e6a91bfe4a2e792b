"""
Purchase orchestrator.

Sequences a checkout through its stages:

    CART -> ORDER_CREATED -> PAYMENT_VERIFIED -> PURCHASE_PERSISTED
         -> ENTITLEMENTS_GRANTED -> COUPON_ACCOUNTED

checkout() prices the cart from the catalog (client amounts are never
trusted), creates a gateway order for the server total and stashes the
priced cart under a fresh correlation id.

confirm_payment() verifies the gateway proof before any write, claims the
stash entry (exactly once per correlation id) and persists the Purchase.
After that only local writes happen. Grant failures and coupon accounting
failures are logged for remediation and never undo the purchase: money
received implies a durable purchase record.
"""

import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.config import PAYMENT_CURRENCY, RECEIPT_EMAIL_TEMPLATE
from marketplace.entitlements.ledger import AccessGrantLedger
from marketplace.entitlements.resolver import EntitlementResolver, GrantReport, LineItemFailure
from marketplace.integrations.email import EmailSender, LoggingEmailSender
from marketplace.integrations.payment_gateway import PaymentGateway
from marketplace.models.access_grant import AccessGrant
from marketplace.models.catalog import CatalogFolder, CatalogItem, ContentKind, TargetType
from marketplace.models.purchase import Purchase, PurchaseLineItem
from marketplace.platform.errors import (
    InvalidInputError,
    NotFoundError,
    PaymentNotAuthenticError,
    StaleCartError,
)
from marketplace.schemas.catalog import media_urls
from marketplace.schemas.checkout import CartItem, PaymentProof
from marketplace.schemas.coupon import CouponView
from marketplace.services.cart_stash import CartStash, StashedCart, StashedLine
from marketplace.services.catalog_tree import CatalogTree
from marketplace.services.coupon_service import CouponService
from marketplace.services.pricing import PricingEngine

logger = logging.getLogger(__name__)

_FOLDER_MEDIA_FIELDS = ("thumbnail_url", "cover_photo_url", "preview_video_url")


class CheckoutStage(str, enum.Enum):
    CART = "cart"
    ORDER_CREATED = "order_created"
    PAYMENT_VERIFIED = "payment_verified"
    PURCHASE_PERSISTED = "purchase_persisted"
    ENTITLEMENTS_GRANTED = "entitlements_granted"
    COUPON_ACCOUNTED = "coupon_accounted"


@dataclass(frozen=True)
class CheckoutResult:
    """What the client needs to open the gateway's payment form."""

    correlation_id: str
    order_token: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    coupon: Optional[CouponView] = None


@dataclass
class PurchaseConfirmation:
    purchase: Purchase
    grants: List[AccessGrant] = field(default_factory=list)
    failed_line_items: List[LineItemFailure] = field(default_factory=list)
    coupon_accounted: bool = False

    @property
    def entitlements_complete(self) -> bool:
        return not self.failed_line_items


def to_minor_units(amount: Decimal) -> int:
    """2-decimal currency amount to the gateway's smallest unit (paise, cents)."""
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def _folder_media(folder: CatalogFolder) -> Dict[str, str]:
    return {
        name: getattr(folder, name)
        for name in _FOLDER_MEDIA_FIELDS
        if getattr(folder, name)
    }


class PurchaseOrchestrator:
    """Checkout and payment confirmation."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        stash: Optional[CartStash] = None,
        email_sender: Optional[EmailSender] = None,
        currency: str = PAYMENT_CURRENCY,
    ):
        self.db = db
        self.gateway = gateway
        self.stash = stash or CartStash()
        self.email_sender = email_sender or LoggingEmailSender()
        self.currency = currency
        self.pricing = PricingEngine(db)
        self.coupons = CouponService(db)
        self.ledger = AccessGrantLedger(db)
        self.resolver = EntitlementResolver(db, ledger=self.ledger, tree_factory=self._tree)

    def _tree(self, kind: ContentKind) -> CatalogTree:
        return CatalogTree(self.db, kind)

    # =========================================================================
    # Checkout
    # =========================================================================

    def checkout(
        self,
        user_id: str,
        cart: Sequence[CartItem],
        coupon_code: Optional[str] = None,
        *,
        buyer_email: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Price a cart, create the gateway order and stash the priced cart.

        Raises:
            InvalidInputError: missing user, empty or duplicate cart lines,
                folder not for sale, zero total
            NotFoundError: cart references a missing item or folder
            CouponError: coupon_code rejected
            PaymentGatewayError: order creation failed
        """
        if not str(user_id or "").strip():
            raise InvalidInputError("user_id is required", details={"field": "user_id"})
        if not cart:
            raise InvalidInputError("Cart is empty", details={"field": "cart"})

        seen = set()
        for entry in cart:
            key = (entry.kind, entry.target_type, entry.id)
            if key in seen:
                raise InvalidInputError(
                    "Cart contains the same entry twice",
                    details={"kind": entry.kind.value, "target_type": entry.target_type.value, "id": entry.id},
                )
            seen.add(key)

        lines = tuple(self._price_line(entry) for entry in cart)
        totals, coupon = self.pricing.price_cart(
            [line.price for line in lines], coupon_code=coupon_code
        )
        if totals.total <= 0:
            raise InvalidInputError(
                "Order total must be greater than zero",
                details={"subtotal": str(totals.subtotal), "discount": str(totals.discount)},
            )

        correlation_id = uuid.uuid4().hex
        self._log_stage(CheckoutStage.CART, correlation_id, user_id=user_id, lines=len(lines))

        order_token = self.gateway.create_order(
            to_minor_units(totals.total), self.currency, f"rcpt_{correlation_id[:30]}"
        )
        self._log_stage(
            CheckoutStage.ORDER_CREATED,
            correlation_id,
            order_id=order_token,
            total=str(totals.total),
        )

        self.stash.put(
            StashedCart(
                correlation_id=correlation_id,
                user_id=user_id,
                order_token=order_token,
                lines=lines,
                subtotal=totals.subtotal,
                discount=totals.discount,
                total=totals.total,
                currency=self.currency,
                coupon_code=coupon.code if coupon else None,
                buyer_email=buyer_email,
                created_at=time.time(),
            )
        )

        return CheckoutResult(
            correlation_id=correlation_id,
            order_token=order_token,
            subtotal=totals.subtotal,
            discount=totals.discount,
            total=totals.total,
            currency=self.currency,
            coupon=coupon,
        )

    def _price_line(self, entry: CartItem) -> StashedLine:
        tree = self._tree(entry.kind)
        if entry.target_type == TargetType.ITEM:
            item = tree.get_item(entry.id)
            return self._item_line(entry.kind, item)

        folder = tree.get_folder(entry.id)
        if not folder.is_purchasable:
            raise InvalidInputError(
                "Folder is not available for purchase",
                details={"folder_id": folder.id},
            )
        return self._folder_line(entry.kind, folder)

    @staticmethod
    def _item_line(kind: ContentKind, item: CatalogItem) -> StashedLine:
        return StashedLine(
            kind=kind,
            target_type=TargetType.ITEM,
            source_id=item.id,
            title=item.title,
            price=item.effective_price,
            media=media_urls(item.attributes),
        )

    @staticmethod
    def _folder_line(kind: ContentKind, folder: CatalogFolder) -> StashedLine:
        return StashedLine(
            kind=kind,
            target_type=TargetType.FOLDER,
            source_id=folder.id,
            title=folder.name,
            price=folder.effective_price,
            media=_folder_media(folder),
        )

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm_payment(self, correlation_id: str, proof: PaymentProof) -> PurchaseConfirmation:
        """
        Turn a verified payment into a Purchase plus access grants.

        The stash entry survives a failed verification so the buyer can
        retry with a correct proof; it is consumed once the proof verifies.

        Raises:
            InvalidInputError: blank correlation id
            StaleCartError: unknown, expired or already-confirmed correlation id
            PaymentNotAuthenticError: proof does not belong to this checkout
                or fails gateway verification
        """
        correlation_id = str(correlation_id or "").strip()
        if not correlation_id:
            raise InvalidInputError(
                "correlation_id is required", details={"field": "correlation_id"}
            )

        stashed = self.stash.peek(correlation_id)
        if stashed is None:
            raise StaleCartError(correlation_id)

        if proof.order_id != stashed.order_token or not self.gateway.verify(proof):
            logger.warning(
                "checkout.payment_not_authentic",
                extra={
                    "correlation_id": correlation_id,
                    "order_id": proof.order_id,
                    "payment_id": proof.payment_id,
                },
            )
            raise PaymentNotAuthenticError(
                details={"correlation_id": correlation_id, "order_id": proof.order_id}
            )
        self._log_stage(CheckoutStage.PAYMENT_VERIFIED, correlation_id, payment_id=proof.payment_id)

        claimed = self.stash.claim(correlation_id)
        if claimed is None:
            raise StaleCartError(correlation_id)

        try:
            purchase, created = self._persist_purchase(claimed, proof)
        except SQLAlchemyError:
            # A paid cart stays claimable until its Purchase is written.
            self.db.rollback()
            self.stash.put(claimed)
            logger.error(
                "checkout.persist_failed",
                extra={"correlation_id": correlation_id, "payment_id": proof.payment_id},
            )
            raise
        self._log_stage(
            CheckoutStage.PURCHASE_PERSISTED,
            correlation_id,
            purchase_id=purchase.id,
            newly_created=created,
        )
        if not created:
            return PurchaseConfirmation(
                purchase=purchase,
                grants=self.ledger.grants_for_purchase(purchase.id),
            )

        report = self.resolver.grant_for_purchase(purchase)
        self._log_stage(
            CheckoutStage.ENTITLEMENTS_GRANTED,
            correlation_id,
            purchase_id=purchase.id,
            complete=report.complete,
            failed=len(report.failures),
        )

        coupon_accounted = False
        if claimed.coupon_code and claimed.discount > 0:
            coupon_accounted = self._account_coupon(claimed.coupon_code, purchase.id)
            self._log_stage(
                CheckoutStage.COUPON_ACCOUNTED,
                correlation_id,
                coupon_code=claimed.coupon_code,
                counted=coupon_accounted,
            )

        if claimed.buyer_email:
            self._send_receipt(claimed.buyer_email, purchase)

        return PurchaseConfirmation(
            purchase=purchase,
            grants=report.granted,
            failed_line_items=report.failures,
            coupon_accounted=coupon_accounted,
        )

    def repair_entitlements(self, purchase_id: str) -> GrantReport:
        """Re-issue grants from a stored purchase. Safe to run any number of times."""
        purchase = self.db.query(Purchase).filter(Purchase.id == purchase_id).first()
        if purchase is None:
            raise NotFoundError("Purchase", purchase_id)

        report = self.resolver.grant_for_purchase(purchase)
        logger.info(
            "checkout.entitlements_repaired",
            extra={
                "purchase_id": purchase_id,
                "granted": len(report.granted),
                "failed": len(report.failures),
            },
        )
        return report

    def _resnapshot(self, line: StashedLine) -> StashedLine:
        """Re-read title, price and media from the catalog; keep the stashed line if the source is gone."""
        tree = self._tree(line.kind)
        if line.target_type == TargetType.ITEM:
            item = tree.find_item(line.source_id)
            if item is not None:
                return self._item_line(line.kind, item)
        else:
            folder = tree.find_folder(line.source_id)
            if folder is not None:
                return self._folder_line(line.kind, folder)

        logger.warning(
            "checkout.line_source_missing",
            extra={
                "kind": line.kind.value,
                "target_type": line.target_type.value,
                "source_id": line.source_id,
            },
        )
        return line

    def _persist_purchase(self, stashed: StashedCart, proof: PaymentProof):
        """Write the Purchase. Returns (purchase, created)."""
        existing = self._purchase_by_payment(proof.payment_id)
        if existing is not None:
            logger.info(
                "checkout.duplicate_payment",
                extra={"payment_id": proof.payment_id, "purchase_id": existing.id},
            )
            return existing, False

        purchase = Purchase(
            user_id=stashed.user_id,
            total_amount=stashed.total,
            discount_applied=stashed.discount,
            coupon_code=stashed.coupon_code,
            payment_id=proof.payment_id,
            order_id=proof.order_id,
        )
        for position, line in enumerate(self._resnapshot(line) for line in stashed.lines):
            purchase.line_items.append(
                PurchaseLineItem(
                    position=position,
                    content_kind=line.kind,
                    target_type=line.target_type,
                    source_id=line.source_id,
                    title_snapshot=line.title,
                    price_snapshot=line.price,
                    media_snapshot=dict(line.media),
                )
            )

        self.db.add(purchase)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._purchase_by_payment(proof.payment_id)
            if existing is None:
                raise
            return existing, False

        self.db.refresh(purchase)
        return purchase, True

    def _purchase_by_payment(self, payment_id: str) -> Optional[Purchase]:
        return self.db.query(Purchase).filter(Purchase.payment_id == payment_id).first()

    def _account_coupon(self, coupon_code: str, purchase_id: str) -> bool:
        try:
            return self.coupons.increment_usage(coupon_code)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "checkout.coupon_accounting_failed",
                extra={"coupon_code": coupon_code, "purchase_id": purchase_id, "error": str(exc)},
            )
            return False

    def _send_receipt(self, to: str, purchase: Purchase) -> None:
        data = {
            "purchase_id": purchase.id,
            "order_id": purchase.order_id,
            "total_amount": str(purchase.total_amount),
            "discount_applied": str(purchase.discount_applied),
            "currency": self.currency,
            "items": [
                {"title": line.title_snapshot, "price": str(line.price_snapshot)}
                for line in purchase.line_items
            ],
        }
        try:
            self.email_sender.send(to, RECEIPT_EMAIL_TEMPLATE, data)
        except Exception as exc:
            logger.warning(
                "checkout.receipt_email_failed",
                extra={"purchase_id": purchase.id, "error": str(exc)},
            )

    @staticmethod
    def _log_stage(stage: CheckoutStage, correlation_id: str, **fields) -> None:
        logger.info(
            "checkout.stage",
            extra={"stage": stage.value, "correlation_id": correlation_id, **fields},
        )
