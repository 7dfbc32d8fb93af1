"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    GatewayCharge,
    GatewayChargeRequest,
    GatewayRefund,
    GatewayRefundRequest,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the card processor.

    Implementations never retry on their own and surface every failure as a
    taxonomy exception (auth, timeout, not found, generic gateway error).
    """

    provider: str

    async def create_charge(self, req: GatewayChargeRequest) -> GatewayCharge: ...

    async def fetch_charge(self, charge_id: str) -> GatewayCharge: ...

    async def create_refund(self, charge_id: str, req: GatewayRefundRequest) -> GatewayRefund: ...

    async def aclose(self) -> None: ...
