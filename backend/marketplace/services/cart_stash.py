"""
Expiring store for priced carts between checkout and payment confirmation.

Each checkout stashes its priced cart under a fresh correlation id. The
entry expires after ttl_seconds; expiry is lazy and checked on access.
claim() removes and returns the entry atomically, so a correlation id can be
confirmed at most once even when two confirmations race.

Redis-backed (SET EX / GETDEL) when REDIS_URL is configured, in-memory
otherwise.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from marketplace.config import CART_TTL_SECONDS
from marketplace.models.catalog import ContentKind, TargetType

logger = logging.getLogger(__name__)

STASH_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class StashedLine:
    """A cart line as priced at checkout time."""

    kind: ContentKind
    target_type: TargetType
    source_id: str
    title: str
    price: Decimal
    media: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StashedCart:
    """Everything confirm_payment needs from the checkout that created it."""

    correlation_id: str
    user_id: str
    order_token: str
    lines: Tuple[StashedLine, ...]
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    coupon_code: Optional[str] = None
    buyer_email: Optional[str] = None
    created_at: float = 0.0


class CartStash:
    """Correlation-id keyed, expiring cart store."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: int = CART_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._redis = None
        self._mem: Dict[str, Tuple[float, dict]] = {}
        self._lock = threading.Lock()
        redis_url = redis_url if redis_url is not None else os.getenv("REDIS_URL")

        if redis_url:
            try:
                import redis

                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except Exception as exc:
                logger.warning(
                    "cart_stash.redis_unavailable",
                    extra={"error": str(exc)},
                )
                self._redis = None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @staticmethod
    def _require_correlation_id(correlation_id: str) -> str:
        normalized = str(correlation_id or "").strip()
        if not normalized:
            raise ValueError("correlation_id is required")
        return normalized

    @staticmethod
    def _key(correlation_id: str) -> str:
        return f"checkout:v1:{correlation_id}"

    def put(self, cart: StashedCart, *, ttl_seconds: Optional[int] = None) -> None:
        correlation_id = self._require_correlation_id(cart.correlation_id)
        ttl = ttl_seconds or self._ttl_seconds
        key = self._key(correlation_id)
        payload = _encode_cart(cart)

        if self._redis is not None:
            self._redis.setex(key, ttl, json.dumps(payload))
            return

        with self._lock:
            self._mem[key] = (self._clock() + ttl, payload)

    def peek(self, correlation_id: str) -> Optional[StashedCart]:
        """The live entry for correlation_id without consuming it."""
        key = self._key(self._require_correlation_id(correlation_id))

        if self._redis is not None:
            raw = self._redis.get(key)
            return _decode_cart(json.loads(raw)) if raw else None

        with self._lock:
            payload = self._live_payload(key)
        return _decode_cart(payload) if payload is not None else None

    def claim(self, correlation_id: str) -> Optional[StashedCart]:
        """Remove and return the entry. Only one caller can win a given id."""
        key = self._key(self._require_correlation_id(correlation_id))

        if self._redis is not None:
            raw = self._redis.getdel(key)
            return _decode_cart(json.loads(raw)) if raw else None

        with self._lock:
            payload = self._live_payload(key)
            self._mem.pop(key, None)
        return _decode_cart(payload) if payload is not None else None

    def discard(self, correlation_id: str) -> None:
        key = self._key(self._require_correlation_id(correlation_id))
        if self._redis is not None:
            self._redis.delete(key)
        with self._lock:
            self._mem.pop(key, None)

    def _live_payload(self, key: str) -> Optional[dict]:
        entry = self._mem.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._clock() >= expires_at:
            self._mem.pop(key, None)
            logger.info("cart_stash.expired", extra={"key": key})
            return None
        return payload


def _encode_cart(cart: StashedCart) -> dict:
    return {
        "schema_version": STASH_SCHEMA_VERSION,
        "correlation_id": cart.correlation_id,
        "user_id": cart.user_id,
        "order_token": cart.order_token,
        "subtotal": str(cart.subtotal),
        "discount": str(cart.discount),
        "total": str(cart.total),
        "currency": cart.currency,
        "coupon_code": cart.coupon_code,
        "buyer_email": cart.buyer_email,
        "created_at": cart.created_at,
        "lines": [
            {
                "kind": line.kind.value,
                "target_type": line.target_type.value,
                "source_id": line.source_id,
                "title": line.title,
                "price": str(line.price),
                "media": dict(line.media),
            }
            for line in cart.lines
        ],
    }


def _decode_cart(raw: dict) -> StashedCart:
    if int(raw.get("schema_version", STASH_SCHEMA_VERSION)) != STASH_SCHEMA_VERSION:
        raise ValueError("Unsupported cart stash schema version")

    return StashedCart(
        correlation_id=raw["correlation_id"],
        user_id=raw["user_id"],
        order_token=raw["order_token"],
        subtotal=Decimal(raw["subtotal"]),
        discount=Decimal(raw["discount"]),
        total=Decimal(raw["total"]),
        currency=raw["currency"],
        coupon_code=raw.get("coupon_code"),
        buyer_email=raw.get("buyer_email"),
        created_at=float(raw.get("created_at", 0.0)),
        lines=tuple(
            StashedLine(
                kind=ContentKind(line["kind"]),
                target_type=TargetType(line["target_type"]),
                source_id=line["source_id"],
                title=line["title"],
                price=Decimal(line["price"]),
                media=dict(line.get("media") or {}),
            )
            for line in raw["lines"]
        ),
    )
