"""
Exceptions for the card gateway mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Any, Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class GatewayError(BusinessException):
    """Any structured gateway error not covered by a narrower variant."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        gateway_type: Optional[str] = None,
        http_status: Optional[int] = None,
        raw: Any = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "GatewayError",
    ):
        self.provider = provider
        self.gateway_type = gateway_type
        self.http_status = http_status
        self.raw = raw
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details={"provider": provider, "type": gateway_type, "http_status": http_status},
        )


class GatewayAuthenticationError(GatewayError):
    def __init__(self, message: str, *, provider: str, http_status: Optional[int] = None, raw: Any = None):
        super().__init__(
            message,
            provider=provider,
            gateway_type="authentication_error",
            http_status=http_status,
            raw=raw,
            code=PaymentCode.AUTHENTICATION_ERROR,
            error_type="AuthenticationError",
        )


class GatewayTimeoutError(GatewayError):
    def __init__(self, message: str, *, provider: str):
        super().__init__(
            message,
            provider=provider,
            gateway_type="timeout",
            code=PaymentCode.TIMEOUT,
            error_type="GatewayTimeout",
        )
