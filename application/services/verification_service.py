"""
Verification Engine: reconcile a live gateway charge with the local record.

``get_verification_result`` never mutates payment state (the single exception
is backfilling a gateway id found through the session fallback).
``verify_payment`` wraps it and applies the paid/failed transition.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import (
    ChargeStatus,
    GatewayCharge,
    PaymentDTO,
    VerificationDetails,
    VerificationResult,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import DEFAULT_FAILURE_MESSAGE, EventHandler, dispatch_events
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.events import PaymentRequiresManualReview
from domain.payment.exceptions import InvalidRequestException
from domain.payment.money import to_major_unit
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

PAYMENT_RECORD_NOT_FOUND = "Payment record not found in database"
LINKED_TO_OTHER_CHARGE = "Payment record is linked to a different gateway charge"


class VerificationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        settings: Optional[PaymentSettings] = None,
        event_handler: Optional[EventHandler] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._settings = settings or payment_settings
        self._event_handler = event_handler

    @property
    def tolerance(self) -> Decimal:
        return self._settings.payment.amount_tolerance

    async def _resolve_payment(self, uow: AbstractUnitOfWork, charge: GatewayCharge) -> Optional[Payment]:
        payment = await uow.payment_repository.get_by_moyasar_id(charge.id)
        if payment is not None:
            return payment

        session_id = charge.session_id
        if not session_id:
            return None
        payment = await uow.payment_repository.get_by_session_id(session_id)
        if payment is None:
            return None

        logger.info(
            "payment_found_by_session_fallback",
            payment_id=payment.public_id,
            session_id=session_id,
            moyasar_payment_id=charge.id,
        )
        if not payment.moyasar_payment_id:
            payment = await PaymentDomainService(uow.payment_repository).link_gateway_payment(
                payment.public_id, charge.id
            )
        return payment

    def _evaluate(self, payment: Payment, charge: GatewayCharge) -> tuple[list[str], VerificationDetails]:
        issues: list[str] = []

        status_match = charge.kind is ChargeStatus.PAID
        if not status_match:
            issues.append(f"Payment status is {charge.status}, expected 'paid'")

        expected_amount = payment.amount
        actual_amount = to_major_unit(charge.amount)
        difference = abs(actual_amount - expected_amount)
        amount_match = difference <= self.tolerance
        if not amount_match:
            issues.append(
                f"Amount mismatch: expected {expected_amount} {payment.currency}, "
                f"got {actual_amount} {payment.currency} (difference: {difference:.2f} {payment.currency})"
            )

        currency_match = charge.currency == payment.currency
        if not currency_match:
            issues.append(f"Currency mismatch: expected {payment.currency}, got {charge.currency}")

        details = VerificationDetails(
            status_match=status_match,
            amount_match=amount_match,
            currency_match=currency_match,
            amount_difference=difference,
            expected_amount=expected_amount,
            actual_amount=actual_amount,
            expected_currency=payment.currency,
            actual_currency=charge.currency,
            actual_status=charge.status,
        )
        return issues, details

    async def get_verification_result(self, moyasar_payment_id: str) -> VerificationResult:
        """Compare gateway state with local expectations; mismatches come back as ``issues``."""
        if not moyasar_payment_id:
            raise InvalidRequestException(
                "moyasarPaymentId is required for verification", field="moyasar_payment_id"
            )

        charge = await self.gateway.fetch_charge(moyasar_payment_id)

        async with self._uow_factory() as uow:
            payment = await self._resolve_payment(uow, charge)

        if payment is None:
            logger.warning(
                "verification_payment_not_found",
                moyasar_payment_id=moyasar_payment_id,
                session_id=charge.session_id,
            )
            return VerificationResult(
                verified=False,
                payment=None,
                gateway_response=charge,
                issues=[PAYMENT_RECORD_NOT_FOUND],
            )

        if payment.moyasar_payment_id != charge.id:
            logger.critical(
                "verification_linked_to_other_charge",
                payment_id=payment.public_id,
                linked_moyasar_payment_id=payment.moyasar_payment_id,
                moyasar_payment_id=charge.id,
            )
            dispatch_events(
                [PaymentRequiresManualReview(
                    payment_id=payment.public_id,
                    moyasar_payment_id=charge.id,
                    issues=[LINKED_TO_OTHER_CHARGE],
                )],
                self._event_handler,
            )
            return VerificationResult(
                verified=False,
                payment=PaymentDTO.from_entity(payment),
                gateway_response=charge,
                issues=[LINKED_TO_OTHER_CHARGE],
                requires_manual_review=True,
            )

        issues, details = self._evaluate(payment, charge)
        verified = not issues and charge.kind is ChargeStatus.PAID
        requires_review = charge.kind is ChargeStatus.PAID and bool(issues)

        if requires_review:
            # Money moved but local expectations disagree; never auto-resolved
            logger.critical(
                "verification_manual_review_required",
                payment_id=payment.public_id,
                moyasar_payment_id=charge.id,
                issues=issues,
            )
            dispatch_events(
                [PaymentRequiresManualReview(
                    payment_id=payment.public_id,
                    moyasar_payment_id=charge.id,
                    issues=list(issues),
                )],
                self._event_handler,
            )
        elif issues:
            logger.warning(
                "verification_issues",
                payment_id=payment.public_id,
                moyasar_payment_id=charge.id,
                issues=issues,
            )
        else:
            logger.info("verification_passed", payment_id=payment.public_id, moyasar_payment_id=charge.id)

        return VerificationResult(
            verified=verified,
            payment=PaymentDTO.from_entity(payment),
            gateway_response=charge,
            issues=issues,
            verification_details=details,
            requires_manual_review=requires_review,
        )

    async def verify_payment(self, moyasar_payment_id: str) -> VerificationResult:
        """Verify and apply the outcome to the local record."""
        result = await self.get_verification_result(moyasar_payment_id)
        charge = result.gateway_response
        if result.payment is None or result.payment.moyasar_payment_id != charge.id:
            return result

        local_status = result.payment.status

        if result.verified:
            if local_status in (PaymentStatus.REFUNDED, PaymentStatus.CANCELLED):
                logger.warning(
                    "verification_skip_mark_paid",
                    payment_id=result.payment.public_id,
                    status=local_status.value,
                )
                return result
            async with self._uow_factory() as uow:
                service = PaymentDomainService(uow.payment_repository)
                updated = await service.mark_paid(
                    result.payment.public_id,
                    None,
                    {"verification": self._verification_snapshot(result)},
                )
                dispatch_events(service.clear_events(), self._event_handler)
            logger.info("payment_verified", payment_id=updated.public_id, moyasar_payment_id=charge.id)
            return result.model_copy(update={"payment": PaymentDTO.from_entity(updated)})

        if charge.kind is ChargeStatus.FAILED:
            if local_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
                logger.critical(
                    "verification_failed_charge_on_settled_payment",
                    payment_id=result.payment.public_id,
                    status=local_status.value,
                    moyasar_payment_id=charge.id,
                )
                return result.model_copy(update={"requires_manual_review": True})
            message = charge.failure_message or DEFAULT_FAILURE_MESSAGE
            reason = "; ".join([message, *result.issues])
            async with self._uow_factory() as uow:
                service = PaymentDomainService(uow.payment_repository)
                updated = await service.mark_failed(
                    result.payment.public_id,
                    reason,
                    {"verification": self._verification_snapshot(result)},
                )
                dispatch_events(service.clear_events(), self._event_handler)
            logger.warning("payment_verification_failed", payment_id=updated.public_id, reason=reason)
            return result.model_copy(update={"payment": PaymentDTO.from_entity(updated), "error": message})

        return result

    @staticmethod
    def _verification_snapshot(result: VerificationResult) -> dict:
        return {
            "verified": result.verified,
            "verified_at": datetime.now(timezone.utc).isoformat(),
            "gateway_status": result.gateway_response.status,
            "issues": list(result.issues),
            "details": result.verification_details.model_dump(mode="json") if result.verification_details else None,
        }
