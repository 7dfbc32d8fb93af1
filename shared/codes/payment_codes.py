"""
Payment outcome codes.

Ranges: 21xxx request/amount, 22xxx lookups, 23xxx state and refund rules,
6xxxx gateway failures.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    INVALID_REQUEST = 21000
    INVALID_AMOUNT = 21001
    TOKEN_MISMATCH = 21002

    PAYMENT_NOT_FOUND = 22000
    SUBSCRIPTION_NOT_FOUND = 22001
    GATEWAY_CHARGE_NOT_FOUND = 22002

    INVALID_STATE = 23000
    ALREADY_REFUNDED = 23001
    REFUND_EXCEEDS_BALANCE = 23002

    # 网关侧错误（凭证/超时/其他结构化错误）
    PROVIDER_ERROR = 60000
    AUTHENTICATION_ERROR = 60001
    TIMEOUT = 60003
