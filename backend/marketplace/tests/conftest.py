"""
Shared pytest fixtures for marketplace tests.

Every test gets a fresh in-memory SQLite database. Services commit as they
go, so isolation comes from a new engine per test rather than an outer
rolled-back transaction.
"""

from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import marketplace.models  # noqa: F401  registers every table
from marketplace.db_base import Base
from marketplace.integrations.media import ProcessedMedia
from marketplace.models.catalog import ContentKind
from marketplace.schemas.checkout import PaymentProof
from marketplace.services.cart_stash import CartStash
from marketplace.services.catalog_tree import CatalogTree

ADMIN_ID = "admin-1"
BUYER_ID = "buyer-1"

TEMPLATE_ATTRIBUTES = {
    "video_url": "https://cdn.test/template-previews/clip.mp4",
    "qr_url": "https://cdn.test/template-downloads/qr.png",
}


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy
    # emit BEGIN itself.
    @event.listens_for(eng, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def templates(db):
    return CatalogTree(db, ContentKind.TEMPLATE)


@pytest.fixture
def pictures(db):
    return CatalogTree(db, ContentKind.PICTURE)


def make_item(tree: CatalogTree, title: str, price, folder_id: Optional[str] = None,
              discount_price=None):
    """Template item with valid media attributes."""
    return tree.create_item(
        title,
        folder_id,
        base_price=Decimal(str(price)),
        discount_price=discount_price,
        attributes=dict(TEMPLATE_ATTRIBUTES),
    )


# ============================================================================
# COLLABORATOR FAKES
# ============================================================================

def sign(order_id: str, payment_id: str) -> str:
    return f"sig:{order_id}|{payment_id}"


class FakeGateway:
    """Issues sequential order ids; a proof is authentic if signed with sign()."""

    def __init__(self):
        self.orders: List[Dict] = []
        self.verified: List[PaymentProof] = []

    def create_order(self, amount_minor: int, currency: str, receipt: str) -> str:
        order_id = f"order_{len(self.orders) + 1}"
        self.orders.append(
            {"id": order_id, "amount": amount_minor, "currency": currency, "receipt": receipt}
        )
        return order_id

    def verify(self, proof: PaymentProof) -> bool:
        self.verified.append(proof)
        return proof.signature == sign(proof.order_id, proof.payment_id)


class FakeStorage:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    def put(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        self.objects[f"{bucket}/{key}"] = data
        return f"https://cdn.test/{bucket}/{key}"


class FakeProcessor:
    def __init__(self, fail: bool = False):
        self.fail = fail

    def process(self, raw: bytes, content_type: str) -> ProcessedMedia:
        if self.fail:
            raise RuntimeError("transcoder crashed")
        return ProcessedMedia(preview_bytes=b"preview:" + raw, metadata={"width": 640})


class RecordingEmailSender:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict] = []

    def send(self, to: str, template: str, data: Dict) -> None:
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append({"to": to, "template": template, "data": data})


class FakeRedis:
    """The subset of the redis client CartStash uses. Ignores TTLs."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def ping(self):
        return True

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def get(self, key):
        return self.store.get(key)

    def getdel(self, key):
        return self.store.pop(key, None)

    def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def stash(clock):
    return CartStash(redis_url="", ttl_seconds=1800, clock=clock)
