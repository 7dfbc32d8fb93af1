import pytest
from decimal import Decimal

from application.dtos.payments import (
    CardSource,
    CreatePaymentCommand,
    CreateTokenizedPaymentCommand,
)
from application.services.payment_service import PaymentService
from domain.payment.entity import PaymentStatus
from domain.payment.events import PaymentFailed, PaymentPaid, TokenMismatchDetected
from domain.payment.exceptions import (
    InvalidRequestException,
    SubscriptionNotFoundException,
    TokenMismatchException,
)
from domain.subscription.repository import SubscriptionTokenRef
from infrastructure.external.payments.exceptions import GatewayTimeoutError


def _card() -> CardSource:
    return CardSource(name="Test User", number="4111111111111111", cvc="123", month=12, year=2030)


def _command(**overrides) -> CreatePaymentCommand:
    values = dict(
        business_id="biz_1",
        amount=Decimal("99.99"),
        currency="SAR",
        description="Pro plan",
        source=_card(),
    )
    values.update(overrides)
    return CreatePaymentCommand(**values)


@pytest.fixture
def service(uow_factory, gateway, payment_config, events):
    return PaymentService(uow_factory, gateway, settings=payment_config, event_handler=events.append)


@pytest.fixture
def subscription(db):
    ref = SubscriptionTokenRef(public_id="sub_1", business_id="biz_1", moyasar_token="token_abcdefghijklmnop")
    db.subscriptions[ref.public_id] = ref
    return ref


@pytest.mark.asyncio
async def test_paid_charge_marks_payment_paid(service, gateway, db, events):
    result = await service.create_payment(_command())

    assert result.success is True
    assert result.requires_verification is False
    request = gateway.charge_requests[0]
    assert request.amount == 9999
    assert request.currency == "SAR"
    assert request.callback_url == "https://merchant.example.com/payments/callback"
    assert request.metadata["payment_id"] == result.payment.public_id
    assert request.metadata["business_id"] == "biz_1"

    stored = db.get(result.payment.public_id)
    assert stored.status is PaymentStatus.PAID
    assert stored.amount == Decimal("99.99")
    assert stored.moyasar_payment_id == result.gateway_response.id
    assert stored.payment_date is not None
    assert stored.metadata.given_id == request.given_id
    assert stored.metadata.transaction_id == result.gateway_response.id
    assert stored.metadata.moyasar_response["status"] == "paid"
    assert any(isinstance(e, PaymentPaid) for e in events)


@pytest.mark.asyncio
async def test_each_charge_gets_new_record_and_given_id(service, gateway, db):
    first = await service.create_payment(_command())
    second = await service.create_payment(_command())

    assert first.payment.public_id != second.payment.public_id
    assert gateway.charge_requests[0].given_id != gateway.charge_requests[1].given_id
    assert len(db.payments) == 2


@pytest.mark.asyncio
async def test_initiated_charge_requires_verification(service, gateway, db):
    gateway.next_status = "initiated"
    gateway.next_source = {"type": "creditcard", "transaction_url": "https://3ds.example.com/auth"}

    result = await service.create_payment(_command())

    assert result.success is False
    assert result.requires_verification is True
    assert result.transaction_url == "https://3ds.example.com/auth"
    stored = db.get(result.payment.public_id)
    assert stored.status is PaymentStatus.PENDING
    assert stored.moyasar_payment_id == result.gateway_response.id


@pytest.mark.asyncio
async def test_failed_charge_records_gateway_message(service, gateway, db, events):
    gateway.next_status = "failed"
    gateway.next_source = {"type": "creditcard", "message": "Insufficient funds"}

    result = await service.create_payment(_command())

    assert result.success is False
    assert result.error == "Insufficient funds"
    stored = db.get(result.payment.public_id)
    assert stored.status is PaymentStatus.FAILED
    assert stored.failure_reason == "Insufficient funds"
    assert stored.metadata.failure["message"] == "Insufficient funds"
    assert any(isinstance(e, PaymentFailed) for e in events)


@pytest.mark.asyncio
async def test_failed_charge_without_message_uses_default(service, gateway, db):
    gateway.next_status = "failed"
    gateway.next_source = {"type": "creditcard"}

    result = await service.create_payment(_command())

    assert result.error == "Payment failed at Moyasar"
    assert db.get(result.payment.public_id).failure_reason == "Payment failed at Moyasar"


@pytest.mark.asyncio
async def test_unknown_status_leaves_payment_pending(service, gateway, db):
    gateway.next_status = "voided"

    result = await service.create_payment(_command())

    assert result.success is False
    assert result.requires_verification is False
    assert result.gateway_response.status == "voided"
    stored = db.get(result.payment.public_id)
    assert stored.status is PaymentStatus.PENDING
    assert stored.metadata.moyasar_response["status"] == "voided"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"business_id": None},
        {"amount": None},
        {"amount": Decimal("0")},
        {"amount": Decimal("-5")},
        {"amount": Decimal("0.001")},
        {"currency": None},
        {"currency": "RIYAL"},
        {"source": None},
    ],
)
async def test_invalid_input_creates_nothing(service, gateway, db, overrides):
    with pytest.raises(InvalidRequestException):
        await service.create_payment(_command(**overrides))
    assert db.payments == {}
    assert gateway.charge_requests == []


@pytest.mark.asyncio
async def test_missing_callback_url_rejected(uow_factory, gateway, db, monkeypatch):
    from core.settings import MoyasarSettings, PaymentSettings

    monkeypatch.delenv("MOYASAR__CALLBACK_URL", raising=False)
    service = PaymentService(uow_factory, gateway, settings=PaymentSettings(moyasar=MoyasarSettings()))
    with pytest.raises(InvalidRequestException) as exc_info:
        await service.create_payment(_command())
    assert exc_info.value.field == "callback_url"
    assert db.payments == {}


@pytest.mark.asyncio
async def test_lowercase_currency_normalized(service, gateway):
    result = await service.create_payment(_command(currency="sar"))
    assert gateway.charge_requests[0].currency == "SAR"
    assert result.payment.currency == "SAR"


@pytest.mark.asyncio
async def test_gateway_timeout_keeps_pending_record(service, gateway, db):
    gateway.charge_error = GatewayTimeoutError("Moyasar API request timeout", provider="moyasar")

    with pytest.raises(GatewayTimeoutError):
        await service.create_payment(_command(session_id="sess_42"))

    assert len(db.payments) == 1
    stored = next(iter(db.payments.values()))
    assert stored.status is PaymentStatus.PENDING
    assert stored.moyasar_payment_id is None
    assert stored.metadata.session_id == "sess_42"


@pytest.mark.asyncio
async def test_tokenized_charge_success(service, gateway, db, subscription):
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1",
        subscription_id="sub_1",
        token=subscription.moyasar_token,
        amount=Decimal("49.00"),
    )

    result = await service.create_tokenized_payment(cmd)

    assert result.success is True
    request = gateway.charge_requests[0]
    assert request.source.type == "token"
    assert request.source.token == subscription.moyasar_token
    assert request.amount == 4900
    assert request.description == "Recurring subscription payment for business biz_1"
    stored = db.get(result.payment.public_id)
    assert stored.subscription_id == "sub_1"
    assert stored.metadata.recurring is True
    assert stored.metadata.token_hint == "token_abcd..."
    assert subscription.moyasar_token not in str(stored.metadata.to_dict())


@pytest.mark.asyncio
async def test_tokenized_failure_uses_tokenized_default(service, gateway, db, subscription):
    gateway.next_status = "failed"
    gateway.next_source = {"type": "token"}
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1", subscription_id="sub_1", token=subscription.moyasar_token, amount=Decimal("10")
    )

    result = await service.create_tokenized_payment(cmd)

    assert result.error == "Tokenized payment failed at Moyasar"
    assert db.get(result.payment.public_id).status is PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_token_mismatch_rejected_without_record(service, gateway, db, subscription, events):
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1", subscription_id="sub_1", token="token_someone_else", amount=Decimal("10")
    )

    with pytest.raises(TokenMismatchException):
        await service.create_tokenized_payment(cmd)

    assert db.payments == {}
    assert gateway.charge_requests == []
    mismatch = [e for e in events if isinstance(e, TokenMismatchDetected)]
    assert len(mismatch) == 1
    assert mismatch[0].subscription_id == "sub_1"


@pytest.mark.asyncio
async def test_unknown_subscription_rejected(service, gateway, db):
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1", subscription_id="sub_missing", token="token_x", amount=Decimal("10")
    )
    with pytest.raises(SubscriptionNotFoundException):
        await service.create_tokenized_payment(cmd)
    assert gateway.charge_requests == []


@pytest.mark.asyncio
async def test_subscription_without_token_rejected(service, gateway, db):
    db.subscriptions["sub_2"] = SubscriptionTokenRef(public_id="sub_2", business_id="biz_1", moyasar_token=None)
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1", subscription_id="sub_2", token="token_x", amount=Decimal("10")
    )
    with pytest.raises(SubscriptionNotFoundException):
        await service.create_tokenized_payment(cmd)


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["subscription_id", "token"])
async def test_tokenized_requires_subscription_and_token(service, missing):
    values = dict(business_id="biz_1", subscription_id="sub_1", token="token_x", amount=Decimal("10"))
    values[missing] = None
    with pytest.raises(InvalidRequestException) as exc_info:
        await service.create_tokenized_payment(CreateTokenizedPaymentCommand(**values))
    assert exc_info.value.field == missing


@pytest.mark.asyncio
async def test_external_unit_of_work_is_not_committed(service, uow_factory, db, subscription):
    cmd = CreateTokenizedPaymentCommand(
        business_id="biz_1", subscription_id="sub_1", token=subscription.moyasar_token, amount=Decimal("10")
    )
    uow = uow_factory()
    async with uow:
        commits_before = db.commits
        result = await service.create_tokenized_payment(cmd, uow=uow)
        assert db.commits == commits_before
        assert db.get(result.payment.public_id).status is PaymentStatus.PAID
    # the caller's block exits cleanly and commits once
    assert db.commits == commits_before + 1


@pytest.mark.asyncio
async def test_aclose_closes_gateway(service, gateway):
    await service.aclose()
    assert gateway.closed is True
