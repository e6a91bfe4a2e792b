"""Access grants: writing them from purchases and answering access checks."""

from marketplace.entitlements.ledger import AccessGrantLedger
from marketplace.entitlements.resolver import EntitlementResolver, GrantReport, LineItemFailure

__all__ = [
    "AccessGrantLedger",
    "EntitlementResolver",
    "GrantReport",
    "LineItemFailure",
]
