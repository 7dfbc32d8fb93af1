"""
Moyasar REST adapter over httpx.

API notes (https://docs.moyasar.com/api/):
- Basic auth with the secret key as username and an empty password.
- Amounts are integers in the smallest currency unit (halalas for SAR).
- Idempotency is the ``given_id`` body field, not a header.
- Omitting ``amount`` on refund refunds the whole outstanding balance.
"""
from __future__ import annotations

import re
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from application.dtos.payments import (
    GatewayCharge,
    GatewayChargeRequest,
    GatewayRefund,
    GatewayRefundRequest,
)
from core.logging_config import get_logger
from core.settings import MoyasarSettings
from domain.payment.exceptions import GatewayChargeNotFoundException
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    GatewayAuthenticationError,
    GatewayError,
    GatewayTimeoutError,
)


logger = get_logger(__name__)

PUBLISHABLE_KEY_RE = re.compile(r"^pk_(test|live)_[a-zA-Z0-9_]+$")
AUTH_KEYWORDS = ("authentication", "api key")


class PublishableKeyCheck(BaseModel):
    valid: bool
    environment: str
    message: str


def validate_publishable_key(publishable_key: Optional[str]) -> PublishableKeyCheck:
    match = PUBLISHABLE_KEY_RE.match(publishable_key or "")
    result = PublishableKeyCheck(
        valid=bool(match),
        environment=match.group(1) if match else "invalid",
        message="Valid key format" if match else "Invalid key format",
    )
    logger.debug(
        "publishable_key_validation",
        valid=result.valid,
        environment=result.environment,
        key_prefix=(publishable_key or "")[:15] + "...",
    )
    return result


def is_production_key(publishable_key: Optional[str]) -> bool:
    return bool(publishable_key) and publishable_key.startswith("pk_live_")


class MoyasarClient(BasePaymentClient):
    provider = "moyasar"

    def __init__(self, config: MoyasarSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.secret_key:
            raise GatewayAuthenticationError(
                "MOYASAR__SECRET_KEY is not configured", provider=self.provider
            )
        super().__init__(
            base_url=config.base_url,
            timeouts=config.timeouts.model_dump(),
            auth=(config.secret_key, ""),
            transport=transport,
        )
        self.config = config

    async def create_charge(self, req: GatewayChargeRequest) -> GatewayCharge:  # type: ignore[override]
        self._log(
            "moyasar_create_charge",
            given_id=req.given_id,
            amount=req.amount,
            currency=req.currency,
            source_type=req.source.type,
        )
        data = await self._request("POST", "/payments", kind="write", json=req.model_dump(mode="json", exclude_none=True))
        charge = self._parse(GatewayCharge, data)
        self._log("moyasar_charge_response", moyasar_payment_id=charge.id, status=charge.status)
        return charge

    async def fetch_charge(self, charge_id: str) -> GatewayCharge:  # type: ignore[override]
        self._log("moyasar_fetch_charge", moyasar_payment_id=charge_id)
        data = await self._request("GET", f"/payments/{charge_id}", kind="read", resource_id=charge_id)
        return self._parse(GatewayCharge, data)

    async def create_refund(self, charge_id: str, req: GatewayRefundRequest) -> GatewayRefund:  # type: ignore[override]
        self._log("moyasar_create_refund", moyasar_payment_id=charge_id, amount=req.amount)
        data = await self._request(
            "POST",
            f"/payments/{charge_id}/refund",
            kind="write",
            json=req.model_dump(mode="json", exclude_none=True),
            resource_id=charge_id,
        )
        refund = self._parse(GatewayRefund, data)
        self._log("moyasar_refund_response", moyasar_payment_id=refund.id, refunded=refund.refunded)
        return refund

    async def _request(
        self,
        method: str,
        path: str,
        *,
        kind: str,
        json: Optional[dict[str, Any]] = None,
        resource_id: Optional[str] = None,
    ) -> dict[str, Any]:
        async with self.client() as http:
            try:
                resp = await http.request(method, path, json=json, timeout=self.timeout_for(kind))
            except httpx.TimeoutException as exc:
                logger.error("moyasar_request_timeout", method=method, path=path)
                raise GatewayTimeoutError("Moyasar API request timeout", provider=self.provider) from exc
            except httpx.HTTPError as exc:
                logger.error("moyasar_transport_error", method=method, path=path, error=str(exc))
                raise GatewayError(
                    f"Moyasar Error: {exc}", provider=self.provider, gateway_type="network_error"
                ) from exc

        if resp.is_error:
            raise self._translate_error(resp, resource_id)
        try:
            data = resp.json()
        except ValueError as exc:
            raise GatewayError(
                "Moyasar Error: invalid JSON response",
                provider=self.provider,
                http_status=resp.status_code,
                raw=resp.text,
            ) from exc
        if not isinstance(data, dict):
            raise GatewayError(
                "Moyasar Error: unexpected response shape",
                provider=self.provider,
                http_status=resp.status_code,
                raw=data,
            )
        return data

    def _parse(self, model, data: dict[str, Any]):
        try:
            return model.from_response(data)
        except ValidationError as exc:
            logger.error("moyasar_response_invalid", model=model.__name__, errors=exc.error_count())
            raise GatewayError(
                "Moyasar Error: unexpected response shape",
                provider=self.provider,
                gateway_type="invalid_response",
                raw=data,
            ) from exc

    def _translate_error(self, resp: httpx.Response, resource_id: Optional[str]) -> Exception:
        try:
            body = resp.json()
        except ValueError:
            body = None
        payload = body if isinstance(body, dict) else {}
        message = str(payload.get("message") or "Unknown Moyasar error")
        error_type = str(payload.get("type") or "moyasar_error")

        logger.error(
            "moyasar_api_error",
            http_status=resp.status_code,
            error_type=error_type,
            message=message,
        )

        lowered = message.lower()
        if resp.status_code == 401 or any(word in lowered for word in AUTH_KEYWORDS):
            return GatewayAuthenticationError(
                "Invalid Moyasar API credentials. Check MOYASAR__SECRET_KEY.",
                provider=self.provider,
                http_status=resp.status_code,
                raw=body,
            )
        if resp.status_code == 404 and resource_id:
            return GatewayChargeNotFoundException(resource_id)
        return GatewayError(
            f"Moyasar Error: {message}",
            provider=self.provider,
            gateway_type=error_type,
            http_status=resp.status_code,
            raw=body if body is not None else resp.text,
        )
