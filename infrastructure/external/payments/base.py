"""
Base payment client implementing shared concerns: http, timeouts, logging.

Concrete providers subclass and implement provider-specific logic. Requests
are never retried here; retrying a charge is a caller decision made with a
fresh idempotency key.
"""
from __future__ import annotations

from typing import Any, Optional
from contextlib import asynccontextmanager

import httpx

from core.logging_config import get_logger
from application.dtos.payments import (
    GatewayCharge,
    GatewayChargeRequest,
    GatewayRefund,
    GatewayRefundRequest,
)
from application.ports.payment_gateway import PaymentGateway


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 5.0, "read": 10.0, "write": 30.0}
        self._auth = auth
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def timeout_for(self, kind: str) -> httpx.Timeout:
        """Timeout whose every phase is bounded by the ``kind`` budget (read|write)."""
        budget = float(self._timeouts_cfg[kind])
        return httpx.Timeout(budget, connect=min(float(self._timeouts_cfg["connect"]), budget))

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                timeout=self.timeout_for("read"),
                transport=self._transport,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    # Default implementations raise to force override where needed
    async def create_charge(self, req: GatewayChargeRequest) -> GatewayCharge:  # type: ignore[override]
        raise NotImplementedError

    async def fetch_charge(self, charge_id: str) -> GatewayCharge:  # type: ignore[override]
        raise NotImplementedError

    async def create_refund(self, charge_id: str, req: GatewayRefundRequest) -> GatewayRefund:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _log(self, event: str, **kwargs: Any) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
