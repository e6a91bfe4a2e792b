"""
Entitlement resolver and ledger tests.

Covers:
- Item and folder grants, including the frozen folder snapshot
- Idempotent re-grants and the insert race on the unique constraint
- Per-line failure isolation
- Ledger access rules
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from conftest import ADMIN_ID, BUYER_ID, make_item
from marketplace.entitlements.ledger import AccessGrantLedger
from marketplace.entitlements.resolver import EntitlementResolver
from marketplace.models.access_grant import AccessGrant
from marketplace.models.catalog import ContentKind, TargetType
from marketplace.models.purchase import Purchase, PurchaseLineItem
from marketplace.platform.errors import ConflictError


def _purchase(db, lines, user_id=BUYER_ID, payment_id="pay_1"):
    purchase = Purchase(
        user_id=user_id,
        total_amount=sum((price for _, _, price in lines), Decimal("0")),
        discount_applied=Decimal("0"),
        payment_id=payment_id,
        order_id=f"order_for_{payment_id}",
    )
    for position, (target_type, source_id, price) in enumerate(lines):
        purchase.line_items.append(
            PurchaseLineItem(
                position=position,
                content_kind=ContentKind.TEMPLATE,
                target_type=target_type,
                source_id=source_id,
                title_snapshot=f"line {position}",
                price_snapshot=price,
                media_snapshot={},
            )
        )
    db.add(purchase)
    db.commit()
    return purchase


@pytest.fixture
def folder_f(templates):
    """Folder F (500, discounted to 400) holding items A (300) and B (200)."""
    folder = templates.create_folder(
        "F",
        created_by=ADMIN_ID,
        base_price=Decimal("500"),
        discount_price=Decimal("400"),
        is_purchasable=True,
    )
    a = make_item(templates, "A", 300, folder_id=folder.id)
    b = make_item(templates, "B", 200, folder_id=folder.id)
    return folder, a, b


class TestGrantForLineItem:

    def test_folder_grant_snapshots_descendants(self, db, templates, folder_f):
        folder, a, b = folder_f
        nested = templates.create_folder("Nested", folder.id, created_by=ADMIN_ID)
        n1 = make_item(templates, "N1", 50, folder_id=nested.id)
        purchase = _purchase(db, [(TargetType.FOLDER, folder.id, Decimal("400"))])

        grant = EntitlementResolver(db).grant_for_line_item(
            BUYER_ID, purchase.line_items[0], purchase.id
        )

        assert grant.access_type == TargetType.FOLDER
        assert grant.folder_id == folder.id
        assert grant.item_id is None
        assert grant.purchase_id == purchase.id
        assert grant.included_item_ids == sorted([a.id, b.id, n1.id])

    def test_items_added_later_are_not_covered(self, db, templates, folder_f):
        folder, a, b = folder_f
        purchase = _purchase(db, [(TargetType.FOLDER, folder.id, Decimal("400"))])
        EntitlementResolver(db).grant_for_purchase(purchase)

        c = make_item(templates, "C", 100, folder_id=folder.id)
        ledger = AccessGrantLedger(db)

        assert ledger.has_access(BUYER_ID, TargetType.ITEM, a.id)
        assert ledger.has_access(BUYER_ID, TargetType.ITEM, b.id)
        assert not ledger.has_access(BUYER_ID, TargetType.ITEM, c.id)
        assert ledger.has_access(BUYER_ID, TargetType.FOLDER, folder.id)

    def test_item_grant(self, db, templates):
        item = make_item(templates, "Solo", 99)
        purchase = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))])

        grant = EntitlementResolver(db).grant_for_line_item(
            BUYER_ID, purchase.line_items[0], purchase.id
        )

        assert grant.item_id == item.id
        assert grant.folder_id is None
        assert grant.included_item_ids is None

    def test_regrant_is_idempotent(self, db, templates):
        item = make_item(templates, "Solo", 99)
        purchase = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))])
        resolver = EntitlementResolver(db)

        first = resolver.grant_for_line_item(BUYER_ID, purchase.line_items[0], purchase.id)
        second = resolver.grant_for_line_item(BUYER_ID, purchase.line_items[0], purchase.id)

        assert first.id == second.id
        assert db.query(AccessGrant).count() == 1

    def test_grant_from_second_purchase_keeps_first_provenance(self, db, templates):
        item = make_item(templates, "Solo", 99)
        first = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_1")
        second = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_2")
        resolver = EntitlementResolver(db)

        resolver.grant_for_purchase(first)
        grant = resolver.grant_for_line_item(BUYER_ID, second.line_items[0], second.id)

        assert grant.purchase_id == first.id
        assert db.query(AccessGrant).count() == 1

    def test_concurrent_insert_returns_winner(self, db, templates):
        """A unique-constraint collision resolves to the row already written."""
        item = make_item(templates, "Solo", 99)
        winner_purchase = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_1")
        loser_purchase = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_2")
        resolver = EntitlementResolver(db)
        resolver.grant_for_purchase(winner_purchase)

        real_get_grant = resolver.ledger.get_grant
        calls = []

        def stale_first_read(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                # The other writer has not committed yet from this reader's view
                return None
            return real_get_grant(*args, **kwargs)

        with patch.object(resolver.ledger, "get_grant", side_effect=stale_first_read):
            grant = resolver.grant_for_line_item(
                BUYER_ID, loser_purchase.line_items[0], loser_purchase.id
            )

        assert len(calls) == 2
        assert grant.purchase_id == winner_purchase.id
        assert db.query(AccessGrant).count() == 1

    def test_collision_without_readable_winner_is_conflict(self, db, templates):
        item = make_item(templates, "Solo", 99)
        first = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_1")
        second = _purchase(db, [(TargetType.ITEM, item.id, Decimal("99"))], payment_id="pay_2")
        resolver = EntitlementResolver(db)
        resolver.grant_for_purchase(first)

        with patch.object(resolver.ledger, "get_grant", return_value=None):
            with pytest.raises(ConflictError):
                resolver.grant_for_line_item(BUYER_ID, second.line_items[0], second.id)


class TestGrantForPurchase:

    def test_failed_line_does_not_block_others(self, db, templates):
        item = make_item(templates, "Solo", 99)
        purchase = _purchase(
            db,
            [
                (TargetType.FOLDER, "deleted-folder", Decimal("400")),
                (TargetType.ITEM, item.id, Decimal("99")),
            ],
        )

        report = EntitlementResolver(db).grant_for_purchase(purchase)

        assert not report.complete
        assert [g.item_id for g in report.granted] == [item.id]
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert failure.position == 0
        assert failure.source_id == "deleted-folder"
        assert failure.error_code == "NOT_FOUND"
        assert db.query(Purchase).filter(Purchase.id == purchase.id).count() == 1

    def test_rerun_is_idempotent(self, db, folder_f):
        folder, _, _ = folder_f
        purchase = _purchase(db, [(TargetType.FOLDER, folder.id, Decimal("400"))])
        resolver = EntitlementResolver(db)

        resolver.grant_for_purchase(purchase)
        report = resolver.grant_for_purchase(purchase)

        assert report.complete
        assert db.query(AccessGrant).count() == 1


class TestLedger:

    def test_owning_every_item_does_not_grant_folder(self, db, folder_f):
        folder, a, b = folder_f
        purchase = _purchase(
            db,
            [(TargetType.ITEM, a.id, Decimal("300")), (TargetType.ITEM, b.id, Decimal("200"))],
        )
        EntitlementResolver(db).grant_for_purchase(purchase)
        ledger = AccessGrantLedger(db)

        assert ledger.has_access(BUYER_ID, TargetType.ITEM, a.id)
        assert not ledger.has_access(BUYER_ID, TargetType.FOLDER, folder.id)

    def test_accessible_item_ids_union(self, db, templates, folder_f):
        folder, a, b = folder_f
        solo = make_item(templates, "Solo", 99)
        purchase = _purchase(
            db,
            [
                (TargetType.FOLDER, folder.id, Decimal("400")),
                (TargetType.ITEM, solo.id, Decimal("99")),
            ],
        )
        EntitlementResolver(db).grant_for_purchase(purchase)
        ledger = AccessGrantLedger(db)

        assert ledger.accessible_item_ids(BUYER_ID) == frozenset({a.id, b.id, solo.id})
        assert [g.folder_id for g in ledger.accessible_folders(BUYER_ID)] == [folder.id]
        assert len(ledger.grants_for_purchase(purchase.id)) == 2

    def test_other_users_have_no_access(self, db, folder_f):
        folder, a, _ = folder_f
        purchase = _purchase(db, [(TargetType.FOLDER, folder.id, Decimal("400"))])
        EntitlementResolver(db).grant_for_purchase(purchase)
        ledger = AccessGrantLedger(db)

        assert not ledger.has_access("someone-else", TargetType.ITEM, a.id)
        assert not ledger.has_access("", TargetType.ITEM, a.id)
