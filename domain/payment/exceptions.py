"""
Payment error taxonomy.

Every failure surfaced by the charge, verification and refund flows is one of
these classes. Gateway transport failures live in
``infrastructure.external.payments.exceptions`` and share the same base.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class InvalidRequestException(BusinessException):
    """Missing or invalid orchestrator input; raised before any write or gateway call."""

    def __init__(self, message: str, *, field: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.INVALID_REQUEST,
            message=message,
            error_type="InvalidRequest",
            details=details,
            field=field,
        )


class InvalidAmountException(BusinessException):
    def __init__(self, amount: Any, reason: str = "must be a non-negative number"):
        super().__init__(
            code=PaymentCode.INVALID_AMOUNT,
            message=f"Invalid amount: {amount!r}, {reason}",
            error_type="InvalidAmount",
            details={"amount": str(amount)},
            field="amount",
        )


class TokenMismatchException(BusinessException):
    def __init__(self, subscription_id: str):
        super().__init__(
            code=PaymentCode.TOKEN_MISMATCH,
            message=(
                f"Token mismatch for subscription {subscription_id}. "
                "Provided token does not match stored payment method."
            ),
            error_type="TokenMismatch",
            details={"subscription_id": subscription_id},
            field="token",
        )


class NotFoundException(BusinessException):
    """Base for absent payments, subscriptions and gateway charges."""

    def __init__(self, code: int, message: str, error_type: str, details: Optional[dict] = None):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class PaymentNotFoundException(NotFoundException):
    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"identifier": identifier},
        )


class SubscriptionNotFoundException(NotFoundException):
    def __init__(self, subscription_id: str):
        super().__init__(
            code=PaymentCode.SUBSCRIPTION_NOT_FOUND,
            message=f"Subscription not found: {subscription_id}",
            error_type="SubscriptionNotFound",
            details={"subscription_id": subscription_id},
        )


class GatewayChargeNotFoundException(NotFoundException):
    def __init__(self, charge_id: str):
        super().__init__(
            code=PaymentCode.GATEWAY_CHARGE_NOT_FOUND,
            message=f"Payment not found on gateway: {charge_id}",
            error_type="GatewayChargeNotFound",
            details={"moyasar_payment_id": charge_id},
        )


class InvalidPaymentStateException(BusinessException):
    def __init__(self, status: str, action: str):
        super().__init__(
            code=PaymentCode.INVALID_STATE,
            message=f"Cannot {action} a payment in '{status}' status",
            error_type="InvalidState",
            details={"status": status, "action": action},
            field="status",
        )


class PaymentAlreadyRefundedException(BusinessException):
    def __init__(self, public_id: str):
        super().__init__(
            code=PaymentCode.ALREADY_REFUNDED,
            message="Payment has already been fully refunded",
            error_type="AlreadyRefunded",
            details={"payment_id": public_id},
        )


class RefundExceedsBalanceException(BusinessException):
    def __init__(self, refund_amount: Decimal, remaining: Decimal, currency: str):
        super().__init__(
            code=PaymentCode.REFUND_EXCEEDS_BALANCE,
            message=(
                f"Refund amount {refund_amount} {currency} exceeds "
                f"remaining amount {remaining} {currency}"
            ),
            error_type="RefundExceedsBalance",
            details={"refund_amount": str(refund_amount), "remaining": str(remaining)},
            field="amount",
        )
