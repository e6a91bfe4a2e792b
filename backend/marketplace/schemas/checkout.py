"""Checkout request schemas."""

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.catalog import ContentKind, TargetType


class CartItem(BaseModel):
    """
    Reference to something the customer wants to buy.

    Carries no price: prices are always resolved server-side.
    """

    model_config = ConfigDict(frozen=True)

    kind: ContentKind
    target_type: TargetType
    id: str = Field(..., min_length=1)


class PaymentProof(BaseModel):
    """Fields returned by the gateway's client-side checkout."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)
