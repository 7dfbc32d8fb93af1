import pytest
from decimal import Decimal

from fastapi.testclient import TestClient

from api.dependencies import get_payment_service, get_refund_service, get_verification_service
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.verification_service import VerificationService
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.exceptions import GatewayTimeoutError
from main import app


CARD = {
    "type": "creditcard",
    "name": "Test User",
    "number": "4111111111111111",
    "cvc": "123",
    "month": 12,
    "year": 2030,
}


@pytest.fixture
def client(uow_factory, gateway, payment_config):
    app.dependency_overrides[get_payment_service] = lambda: PaymentService(
        uow_factory, gateway, settings=payment_config
    )
    app.dependency_overrides[get_verification_service] = lambda: VerificationService(
        uow_factory, gateway, settings=payment_config
    )
    app.dependency_overrides[get_refund_service] = lambda: RefundService(uow_factory, gateway)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_routes_registered():
    paths = {getattr(route, "path", None) for route in app.routes}
    assert "/api/v1/payments" in paths
    assert "/api/v1/payments/tokenized" in paths
    assert "/api/v1/payments/callback" in paths
    assert "/api/v1/payments/{moyasar_payment_id}/verification" in paths
    assert "/api/v1/payments/{moyasar_payment_id}/refund" in paths
    assert "/health" in paths


def test_create_payment_returns_envelope(client, db):
    resp = client.post(
        "/api/v1/payments",
        json={"business_id": "biz_1", "amount": "99.99", "currency": "SAR", "source": CARD},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["success"] is True
    assert body["data"]["payment"]["status"] == "paid"
    assert body["data"]["gateway_response"]["amount"] == 9999
    assert "X-Request-ID" in resp.headers
    assert len(db.payments) == 1


def test_invalid_amount_is_422(client, db):
    resp = client.post(
        "/api/v1/payments",
        json={"business_id": "biz_1", "amount": "0", "currency": "SAR", "source": CARD},
    )

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == 21000
    assert body["error"]["type"] == "InvalidRequest"
    assert body["error"]["field"] == "amount"
    assert db.payments == {}


def test_unknown_source_type_is_422(client):
    resp = client.post(
        "/api/v1/payments",
        json={"business_id": "biz_1", "amount": "10", "source": {"type": "bitcoin"}},
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "InvalidRequest"


def test_gateway_timeout_is_504(client, gateway, db):
    gateway.charge_error = GatewayTimeoutError("Moyasar API request timeout", provider="moyasar")

    resp = client.post(
        "/api/v1/payments",
        json={"business_id": "biz_1", "amount": "10", "source": CARD},
    )

    assert resp.status_code == 504
    assert resp.json()["error"]["type"] == "GatewayTimeout"
    assert len(db.payments) == 1


def test_callback_verifies_payment(client, gateway, db, seed_payment):
    payment = seed_payment(moyasar_payment_id="pay_cb", amount=Decimal("50.00"))
    gateway.add_charge("pay_cb", amount=5000)

    resp = client.get("/api/v1/payments/callback", params={"id": "pay_cb"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Payment verified"
    assert body["data"]["verified"] is True
    assert body["data"]["success"] is True
    assert db.get(payment.public_id).status is PaymentStatus.PAID


def test_verification_for_unknown_charge_is_404(client):
    resp = client.get("/api/v1/payments/pay_unknown/verification")
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "GatewayChargeNotFound"


def test_refund_exceeding_balance_is_409(client, gateway, seed_payment):
    seed_payment(moyasar_payment_id="pay_r", amount=Decimal("100.00"), status=PaymentStatus.PAID)
    gateway.add_charge("pay_r", amount=10000)

    ok = client.post("/api/v1/payments/pay_r/refund", json={"amount": "60"})
    assert ok.status_code == 200
    assert ok.json()["data"]["refund"]["amount"] == "60.00"

    resp = client.post("/api/v1/payments/pay_r/refund", json={"amount": "50"})
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "RefundExceedsBalance"


def test_full_refund_without_body(client, gateway, seed_payment):
    seed_payment(moyasar_payment_id="pay_f", amount=Decimal("30.00"), status=PaymentStatus.PAID)
    gateway.add_charge("pay_f", amount=3000)

    resp = client.post("/api/v1/payments/pay_f/refund")

    assert resp.status_code == 200
    assert resp.json()["data"]["payment"]["status"] == "refunded"
    assert gateway.refund_requests[0][1].amount is None


def test_checkout_config(client, monkeypatch):
    monkeypatch.setattr(payment_settings.moyasar, "publishable_key", "pk_test_abc123")

    resp = client.get("/api/v1/payments/config")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["publishable_key"] == "pk_test_abc123"
    assert data["environment"] == "test"
    assert data["production"] is False
    assert data["currency"] == "SAR"


def test_health_reports_database_and_gateway():
    resp = TestClient(app).get("/health")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["database"] is True
    assert data["gateway_configured"] is True
    assert data["status"] == "healthy"
