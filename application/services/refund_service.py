"""
Refund orchestration for settled charges (full or partial).
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import (
    GatewayRefundRequest,
    PaymentDTO,
    RefundCommand,
    RefundDetails,
    RefundOutcome,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import EventHandler, dispatch_events
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import (
    InvalidPaymentStateException,
    InvalidRequestException,
    PaymentAlreadyRefundedException,
    PaymentNotFoundException,
    RefundExceedsBalanceException,
)
from domain.payment.money import quantize_major, to_minor_unit
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

DEFAULT_REFUND_DESCRIPTION = "Refund processed"
REFUNDABLE_STATUSES = (PaymentStatus.PAID, PaymentStatus.REFUNDED)


class RefundService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        event_handler: Optional[EventHandler] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self._event_handler = event_handler

    async def refund_payment(
        self,
        moyasar_payment_id: str,
        cmd: Optional[RefundCommand] = None,
    ) -> RefundOutcome:
        """Refund ``cmd.amount`` (or the whole remaining balance when omitted).

        The row lock is held across the gateway call so two refunds on the same
        charge cannot both pass the balance check. A rejected or failed refund
        leaves the record unchanged.
        """
        if not moyasar_payment_id:
            raise InvalidRequestException("moyasarPaymentId is required for refund", field="moyasar_payment_id")
        cmd = cmd or RefundCommand()

        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_moyasar_id(moyasar_payment_id, for_update=True)
            if payment is None:
                raise PaymentNotFoundException(moyasar_payment_id)
            if payment.status not in REFUNDABLE_STATUSES:
                raise InvalidPaymentStateException(payment.status.value, "refund")

            remaining = payment.remaining_refundable()
            if remaining <= 0:
                raise PaymentAlreadyRefundedException(payment.public_id)

            if cmd.amount is not None:
                requested = quantize_major(cmd.amount)
                if requested <= 0:
                    raise InvalidRequestException("Refund amount must be positive", field="amount")
                if requested > remaining:
                    raise RefundExceedsBalanceException(requested, remaining, payment.currency)
                refund_amount = requested
                amount_minor: Optional[int] = to_minor_unit(requested)
            else:
                # Omitted amount lets the gateway refund everything outstanding
                refund_amount = remaining
                amount_minor = None

            description = cmd.description or DEFAULT_REFUND_DESCRIPTION
            logger.info(
                "moyasar_refund_request",
                payment_id=payment.public_id,
                moyasar_payment_id=moyasar_payment_id,
                amount=str(refund_amount),
                full_refund=amount_minor is None,
            )
            refund = await self.gateway.create_refund(
                moyasar_payment_id,
                GatewayRefundRequest(amount=amount_minor, description=description),
            )

            service = PaymentDomainService(uow.payment_repository)
            updated = await service.process_refund(
                payment.public_id,
                refund_amount,
                {
                    "refund": {
                        "id": refund.id,
                        "amount": str(refund_amount),
                        "refunded_at": refund.refunded_at,
                        "description": description,
                        "response": refund.snapshot(),
                    }
                },
            )
            dispatch_events(service.clear_events(), self._event_handler)

        logger.info(
            "payment_refunded",
            payment_id=updated.public_id,
            moyasar_payment_id=moyasar_payment_id,
            amount=str(refund_amount),
            total_refunded=str(updated.refund_amount),
        )
        return RefundOutcome(
            success=True,
            payment=PaymentDTO.from_entity(updated),
            refund=RefundDetails(
                amount=refund_amount,
                currency=updated.currency,
                description=description,
                refunded_at=refund.refunded_at,
            ),
            gateway_response=refund,
        )
