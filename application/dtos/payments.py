"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from domain.payment.entity import Payment, PaymentMethod, PaymentStatus


# ---------------------------------------------------------------------------
# Payment sources (tagged by ``type`` as the gateway expects)
# ---------------------------------------------------------------------------


class CardSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["creditcard"] = "creditcard"
    name: str
    number: str
    cvc: str
    month: int
    year: int

    def __repr__(self) -> str:  # never leak PAN/CVC into logs
        return f"CardSource(name={self.name!r}, last4={self.number[-4:]!r})"


class TokenSource(BaseModel):
    type: Literal["token"] = "token"
    token: str

    def __repr__(self) -> str:
        return f"TokenSource(token={self.token[:10]!r}...)"


class ApplePaySource(BaseModel):
    type: Literal["applepay"] = "applepay"
    token: str


class StcPaySource(BaseModel):
    type: Literal["stcpay"] = "stcpay"
    mobile: str


PaymentSource = Annotated[
    Union[CardSource, TokenSource, ApplePaySource, StcPaySource],
    Field(discriminator="type"),
]

SOURCE_TYPE_TO_METHOD = {
    "creditcard": PaymentMethod.CARD,
    "token": PaymentMethod.CARD,
    "applepay": PaymentMethod.APPLE_PAY,
    "stcpay": PaymentMethod.STC_PAY,
}


# ---------------------------------------------------------------------------
# Gateway snapshots
# ---------------------------------------------------------------------------


class ChargeStatus(str, Enum):
    """Known gateway charge statuses; anything else maps to UNKNOWN."""

    PAID = "paid"
    INITIATED = "initiated"
    FAILED = "failed"
    AUTHORIZED = "authorized"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ChargeStatus":
        try:
            status = cls(raw)
        except ValueError:
            return cls.UNKNOWN
        return status


class GatewaySource(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    company: Optional[str] = None
    name: Optional[str] = None
    number: Optional[str] = None
    message: Optional[str] = None
    transaction_url: Optional[str] = None
    token: Optional[str] = None


class GatewayCharge(BaseModel):
    """Snapshot of a gateway payment (charge) object."""

    model_config = ConfigDict(extra="allow")

    id: str
    status: str
    amount: int
    currency: str
    description: Optional[str] = None
    source: Optional[GatewaySource] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "GatewayCharge":
        charge = cls.model_validate(data)
        charge.raw = dict(data)
        return charge

    @property
    def kind(self) -> ChargeStatus:
        return ChargeStatus.parse(self.status)

    @property
    def failure_message(self) -> Optional[str]:
        return self.source.message if self.source else None

    @property
    def transaction_url(self) -> Optional[str]:
        return self.source.transaction_url if self.source else None

    @property
    def session_id(self) -> Optional[str]:
        # TODO: drop the camelCase fallback once the checkout page only emits session_id
        meta = self.metadata or {}
        return meta.get("session_id") or meta.get("sessionId")

    def snapshot(self) -> dict[str, Any]:
        return self.raw or self.model_dump(mode="json", exclude_none=True)


class GatewayRefund(BaseModel):
    """Gateway response to a refund request (the refunded payment object)."""

    model_config = ConfigDict(extra="allow")

    id: str
    status: Optional[str] = None
    amount: Optional[int] = None
    refunded: Optional[int] = None
    currency: Optional[str] = None
    refunded_at: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "GatewayRefund":
        refund = cls.model_validate(data)
        refund.raw = dict(data)
        return refund

    def snapshot(self) -> dict[str, Any]:
        return self.raw or self.model_dump(mode="json", exclude_none=True)


class GatewayChargeRequest(BaseModel):
    """Body of ``POST /payments``; ``given_id`` is the idempotency key."""

    given_id: str
    amount: int = Field(gt=0)
    currency: str
    description: str
    callback_url: str
    source: PaymentSource
    metadata: Optional[dict[str, Any]] = None


class GatewayRefundRequest(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class CreatePaymentCommand(BaseModel):
    """One-time charge; required fields are checked by the orchestrator."""

    business_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = "SAR"
    description: Optional[str] = None
    callback_url: Optional[str] = None
    subscription_id: Optional[str] = None
    session_id: Optional[str] = None
    source: Optional[PaymentSource] = None


class CreateTokenizedPaymentCommand(BaseModel):
    business_id: Optional[str] = None
    subscription_id: Optional[str] = None
    token: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = "SAR"
    description: Optional[str] = None
    callback_url: Optional[str] = None


class RefundCommand(BaseModel):
    amount: Optional[Decimal] = None
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class PaymentDTO(BaseModel):
    public_id: str
    business_id: str
    subscription_id: Optional[str] = None
    moyasar_payment_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refunded_at: Optional[datetime] = None
    retry_count: int = 0
    last_retry_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, payment: Payment) -> "PaymentDTO":
        return cls(
            public_id=payment.public_id,
            business_id=payment.business_id,
            subscription_id=payment.subscription_id,
            moyasar_payment_id=payment.moyasar_payment_id,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status,
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            failure_reason=payment.failure_reason,
            refund_amount=payment.refund_amount,
            refunded_at=payment.refunded_at,
            retry_count=payment.retry_count,
            last_retry_at=payment.last_retry_at,
            created_at=payment.created_at,
            updated_at=payment.updated_at,
            metadata=payment.metadata.to_dict(),
        )


class PaymentResult(BaseModel):
    success: bool
    payment: PaymentDTO
    gateway_response: GatewayCharge
    requires_verification: bool = False
    transaction_url: Optional[str] = None
    error: Optional[str] = None


class VerificationDetails(BaseModel):
    status_match: bool
    amount_match: bool
    currency_match: bool
    amount_difference: Decimal
    expected_amount: Decimal
    actual_amount: Decimal
    expected_currency: str
    actual_currency: str
    expected_status: str = ChargeStatus.PAID.value
    actual_status: str


class VerificationResult(BaseModel):
    verified: bool
    payment: Optional[PaymentDTO] = None
    gateway_response: GatewayCharge
    issues: list[str] = Field(default_factory=list)
    verification_details: Optional[VerificationDetails] = None
    requires_manual_review: bool = False
    error: Optional[str] = None

    @computed_field  # type: ignore[misc]
    @property
    def success(self) -> bool:
        return self.verified


class RefundDetails(BaseModel):
    amount: Decimal
    currency: str
    description: Optional[str] = None
    refunded_at: Optional[str] = None


class RefundOutcome(BaseModel):
    success: bool
    payment: PaymentDTO
    refund: RefundDetails
    gateway_response: GatewayRefund
    error: Optional[str] = None
