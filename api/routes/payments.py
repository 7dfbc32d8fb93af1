"""
Payments API routes.

Thin HTTP adapter over the charge, verification and refund services. Errors
propagate as BusinessException and are rendered by the global handlers.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_payment_service, get_refund_service, get_verification_service
from application.dtos.payments import (
    CreatePaymentCommand,
    CreateTokenizedPaymentCommand,
    RefundCommand,
)
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.verification_service import VerificationService
from core.response import success_response
from core.settings import payment_settings
from infrastructure.external.payments.moyasar_client import is_production_key, validate_publishable_key


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/config", summary="Checkout configuration")
async def checkout_config():
    key = payment_settings.moyasar.publishable_key
    check = validate_publishable_key(key)
    return success_response(
        data={
            "publishable_key": key if check.valid else None,
            "environment": check.environment,
            "production": is_production_key(key),
            "callback_url": payment_settings.moyasar.callback_url,
            "currency": payment_settings.payment.default_currency,
        },
        message=check.message,
    )


@router.post("", summary="Create one-time payment")
async def create_payment(
    payload: CreatePaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.create_payment(payload)
    return success_response(result, message=result.error or "Payment processed")


@router.post("/tokenized", summary="Charge a stored card token")
async def create_tokenized_payment(
    payload: CreateTokenizedPaymentCommand,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.create_tokenized_payment(payload)
    return success_response(result, message=result.error or "Payment processed")


@router.get("/callback", summary="3-D Secure / checkout callback")
async def payment_callback(
    id: str = Query(..., description="Moyasar payment id"),
    service: VerificationService = Depends(get_verification_service),
):
    result = await service.verify_payment(id)
    message = "Payment verified" if result.verified else "Payment not verified"
    return success_response(result, message=message)


@router.get("/{moyasar_payment_id}/verification", summary="Inspect verification without side effects")
async def get_verification(
    moyasar_payment_id: str,
    service: VerificationService = Depends(get_verification_service),
):
    result = await service.get_verification_result(moyasar_payment_id)
    return success_response(result)


@router.post("/{moyasar_payment_id}/refund", summary="Refund a paid payment")
async def refund_payment(
    moyasar_payment_id: str,
    payload: RefundCommand | None = None,
    service: RefundService = Depends(get_refund_service),
):
    outcome = await service.refund_payment(moyasar_payment_id, payload)
    return success_response(outcome, message="Refund processed")
