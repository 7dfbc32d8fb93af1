import pytest
from decimal import Decimal

from application.dtos.payments import RefundCommand
from application.services.refund_service import RefundService
from domain.payment.entity import PaymentStatus
from domain.payment.events import PaymentRefunded
from domain.payment.exceptions import (
    InvalidPaymentStateException,
    InvalidRequestException,
    PaymentAlreadyRefundedException,
    PaymentNotFoundException,
    RefundExceedsBalanceException,
)
from infrastructure.external.payments.exceptions import GatewayError


@pytest.fixture
def service(uow_factory, gateway, events):
    return RefundService(uow_factory, gateway, event_handler=events.append)


@pytest.fixture
def paid_payment(seed_payment, gateway):
    gateway.add_charge("pay_1", amount=20000)
    return seed_payment(moyasar_payment_id="pay_1", amount=Decimal("200.00"), status=PaymentStatus.PAID)


@pytest.mark.asyncio
async def test_partial_then_remaining_refund(service, gateway, db, paid_payment, events):
    first = await service.refund_payment("pay_1", RefundCommand(amount=Decimal("80")))

    assert first.success is True
    assert first.refund.amount == Decimal("80.00")
    assert first.payment.status is PaymentStatus.REFUNDED
    assert first.payment.refund_amount == Decimal("80.00")
    assert gateway.refund_requests[0][1].amount == 8000

    second = await service.refund_payment("pay_1", RefundCommand(amount=Decimal("120.00")))

    assert second.refund.amount == Decimal("120.00")
    stored = db.get(paid_payment.public_id)
    assert stored.refund_amount == Decimal("200.00")
    assert stored.is_fully_refunded()
    assert stored.metadata.refund["amount"] == "120.00"
    assert len([e for e in events if isinstance(e, PaymentRefunded)]) == 2

    with pytest.raises(PaymentAlreadyRefundedException):
        await service.refund_payment("pay_1", RefundCommand(amount=Decimal("1")))
    assert len(gateway.refund_requests) == 2


@pytest.mark.asyncio
async def test_refund_exceeding_balance_rejected_before_gateway(service, gateway, db, paid_payment):
    await service.refund_payment("pay_1", RefundCommand(amount=Decimal("150")))

    with pytest.raises(RefundExceedsBalanceException) as exc_info:
        await service.refund_payment("pay_1", RefundCommand(amount=Decimal("60")))

    assert "remaining amount 50.00 SAR" in exc_info.value.message
    assert len(gateway.refund_requests) == 1
    assert db.get(paid_payment.public_id).refund_amount == Decimal("150.00")


@pytest.mark.asyncio
async def test_full_refund_omits_amount(service, gateway, db, paid_payment):
    outcome = await service.refund_payment("pay_1")

    charge_id, request = gateway.refund_requests[0]
    assert charge_id == "pay_1"
    assert request.amount is None
    assert request.description == "Refund processed"
    assert outcome.refund.amount == Decimal("200.00")
    assert outcome.gateway_response.refunded == 20000
    assert db.get(paid_payment.public_id).refund_amount == Decimal("200.00")


@pytest.mark.asyncio
async def test_refund_records_description_and_gateway_response(service, gateway, db, paid_payment):
    outcome = await service.refund_payment(
        "pay_1", RefundCommand(amount=Decimal("10"), description="Customer goodwill")
    )

    assert outcome.refund.description == "Customer goodwill"
    assert gateway.refund_requests[0][1].description == "Customer goodwill"
    refund_meta = db.get(paid_payment.public_id).metadata.refund
    assert refund_meta["description"] == "Customer goodwill"
    assert refund_meta["response"]["refunded"] == 1000


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.CANCELLED])
async def test_refund_requires_settled_payment(service, gateway, seed_payment, status):
    seed_payment(moyasar_payment_id="pay_x", status=status)
    with pytest.raises(InvalidPaymentStateException):
        await service.refund_payment("pay_x", RefundCommand(amount=Decimal("1")))
    assert gateway.refund_requests == []


@pytest.mark.asyncio
async def test_refund_unknown_payment(service):
    with pytest.raises(PaymentNotFoundException):
        await service.refund_payment("pay_nowhere")


@pytest.mark.asyncio
async def test_refund_requires_id(service):
    with pytest.raises(InvalidRequestException):
        await service.refund_payment("")


@pytest.mark.asyncio
async def test_non_positive_refund_amount_rejected(service, gateway, paid_payment):
    with pytest.raises(InvalidRequestException):
        await service.refund_payment("pay_1", RefundCommand(amount=Decimal("0")))
    assert gateway.refund_requests == []


@pytest.mark.asyncio
async def test_gateway_failure_leaves_record_unchanged(service, gateway, db, paid_payment):
    gateway.refund_error = GatewayError("Moyasar Error: refund rejected", provider="moyasar", http_status=400)

    with pytest.raises(GatewayError):
        await service.refund_payment("pay_1", RefundCommand(amount=Decimal("50")))

    stored = db.get(paid_payment.public_id)
    assert stored.status is PaymentStatus.PAID
    assert stored.refund_amount is None
    assert db.rollbacks == 1
