"""Pytest bootstrap configuration.

Environment defaults are set before any module that builds settings (or the
database engine) is imported. In-memory fakes for the unit of work and the
gateway live here so every payment test shares them.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MOYASAR__SECRET_KEY", "sk_test_conftest")
os.environ.setdefault("MOYASAR__CALLBACK_URL", "https://merchant.example.com/payments/callback")

import copy
from decimal import Decimal
from typing import Optional

import pytest

from application.dtos.payments import (
    GatewayCharge,
    GatewayChargeRequest,
    GatewayRefund,
    GatewayRefundRequest,
)
from core.settings import MoyasarSettings, PaymentSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus, generate_payment_public_id
from domain.payment.exceptions import GatewayChargeNotFoundException, PaymentNotFoundException
from domain.payment.repository import PaymentRepository
from domain.subscription.repository import SubscriptionRepository, SubscriptionTokenRef


class InMemoryDB:
    def __init__(self) -> None:
        self.payments: dict[str, Payment] = {}
        self.subscriptions: dict[str, SubscriptionTokenRef] = {}
        self.commits = 0
        self.rollbacks = 0
        # (lookup key, for_update) per repository read
        self.lookups: list[tuple[str, bool]] = []
        self._next_id = 1

    def add(self, payment: Payment) -> Payment:
        if payment.id is None:
            payment.id = self._next_id
            self._next_id += 1
        self.payments[payment.public_id] = copy.deepcopy(payment)
        return payment

    def get(self, public_id: str) -> Payment:
        return self.payments[public_id]


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, db: InMemoryDB):
        self.db = db

    async def create(self, payment: Payment) -> Payment:
        stored = self.db.add(copy.deepcopy(payment))
        return copy.deepcopy(stored)

    async def get_by_public_id(self, public_id, *, for_update=False):
        self.db.lookups.append((public_id, for_update))
        payment = self.db.payments.get(public_id)
        return copy.deepcopy(payment) if payment else None

    async def get_by_moyasar_id(self, moyasar_payment_id, *, for_update=False):
        self.db.lookups.append((moyasar_payment_id, for_update))
        for payment in self.db.payments.values():
            if payment.moyasar_payment_id == moyasar_payment_id:
                return copy.deepcopy(payment)
        return None

    async def get_by_session_id(self, session_id, *, for_update=False):
        self.db.lookups.append((session_id, for_update))
        for payment in self.db.payments.values():
            meta = payment.metadata
            if meta.session_id == session_id or meta.extra.get("sessionId") == session_id:
                return copy.deepcopy(payment)
        return None

    async def update(self, payment: Payment) -> Payment:
        if payment.public_id not in self.db.payments:
            raise PaymentNotFoundException(payment.public_id)
        self.db.payments[payment.public_id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)


class InMemorySubscriptionRepository(SubscriptionRepository):
    def __init__(self, db: InMemoryDB):
        self.db = db

    async def get_token_ref(self, subscription_id):
        return self.db.subscriptions.get(subscription_id)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Snapshots the store on enter and restores it on rollback."""

    def __init__(self, db: InMemoryDB, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.db = db

    async def __aenter__(self):
        self._snapshot = copy.deepcopy(self.db.payments)
        self.payment_repository = InMemoryPaymentRepository(self.db)
        self.subscription_repository = InMemorySubscriptionRepository(self.db)
        return self

    async def commit(self) -> None:
        self._committed = True
        self.db.commits += 1

    async def rollback(self) -> None:
        self.db.payments.clear()
        self.db.payments.update(self._snapshot)
        self.db.rollbacks += 1


class StubGateway:
    """Scriptable gateway double keeping charges by id."""

    provider = "stub"

    def __init__(self) -> None:
        self.charges: dict[str, dict] = {}
        self.charge_requests: list[GatewayChargeRequest] = []
        self.refund_requests: list[tuple[str, GatewayRefundRequest]] = []
        self.next_status = "paid"
        self.next_source: Optional[dict] = None
        self.charge_error: Optional[Exception] = None
        self.refund_error: Optional[Exception] = None
        self.closed = False

    def add_charge(self, charge_id: str, *, status: str = "paid", amount: int, currency: str = "SAR",
                   metadata: Optional[dict] = None, source: Optional[dict] = None) -> dict:
        self.charges[charge_id] = {
            "id": charge_id,
            "status": status,
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "source": source or {"type": "creditcard", "company": "visa", "number": "4111-11XX-XXXX-1111"},
            "created_at": "2026-01-01T10:00:00.000Z",
        }
        return self.charges[charge_id]

    async def create_charge(self, req: GatewayChargeRequest) -> GatewayCharge:
        self.charge_requests.append(req)
        if self.charge_error is not None:
            raise self.charge_error
        charge_id = f"pay_stub_{len(self.charge_requests)}"
        data = self.add_charge(
            charge_id,
            status=self.next_status,
            amount=req.amount,
            currency=req.currency,
            metadata=req.metadata,
            source=self.next_source,
        )
        return GatewayCharge.from_response(data)

    async def fetch_charge(self, charge_id: str) -> GatewayCharge:
        if charge_id not in self.charges:
            raise GatewayChargeNotFoundException(charge_id)
        return GatewayCharge.from_response(self.charges[charge_id])

    async def create_refund(self, charge_id: str, req: GatewayRefundRequest) -> GatewayRefund:
        self.refund_requests.append((charge_id, req))
        if self.refund_error is not None:
            raise self.refund_error
        charge = self.charges[charge_id]
        already = charge.get("refunded", 0)
        charge["refunded"] = already + (req.amount if req.amount is not None else charge["amount"] - already)
        charge["status"] = "refunded"
        return GatewayRefund.from_response({
            "id": charge_id,
            "status": "refunded",
            "amount": charge["amount"],
            "refunded": charge["refunded"],
            "currency": charge["currency"],
            "refunded_at": "2026-01-02T10:00:00.000Z",
        })

    async def aclose(self) -> None:
        self.closed = True


def build_payment(**overrides) -> Payment:
    values = dict(
        id=None,
        public_id=generate_payment_public_id(),
        business_id="biz_1",
        amount=Decimal("100.00"),
        currency="SAR",
        status=PaymentStatus.PENDING,
    )
    values.update(overrides)
    return Payment(**values)


@pytest.fixture
def make_payment():
    return build_payment


@pytest.fixture
def db() -> InMemoryDB:
    return InMemoryDB()


@pytest.fixture
def seed_payment(db):
    """Store a payment directly in the fake database and return it."""

    def _seed(**overrides) -> Payment:
        return db.add(build_payment(**overrides))

    return _seed


@pytest.fixture
def uow_factory(db):
    def _factory(**kwargs):
        return InMemoryUnitOfWork(db, **kwargs)
    return _factory


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def payment_config() -> PaymentSettings:
    return PaymentSettings(
        moyasar=MoyasarSettings(
            secret_key="sk_test_fixture",
            callback_url="https://merchant.example.com/payments/callback",
        )
    )


@pytest.fixture
def events() -> list:
    return []
