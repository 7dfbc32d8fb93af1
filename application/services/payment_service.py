"""
Charge orchestration: one-time and tokenized (recurring) card charges.

This class depends only on the application PaymentGateway port, the unit of
work abstraction and DTOs. The gateway implementation is injected from the
composition root (API), keeping dependencies one-way.

Each charge runs in three steps:

1. validate and write a ``pending`` record (committed, so a charge that moved
   money is never left without a local row)
2. call the gateway with a fresh ``given_id`` idempotency key
3. record the gateway id and raw response, then branch on the reported status
"""
from __future__ import annotations

import secrets
import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Callable, Iterable, Optional

from application.dtos.payments import (
    SOURCE_TYPE_TO_METHOD,
    ChargeStatus,
    CreatePaymentCommand,
    CreateTokenizedPaymentCommand,
    GatewayCharge,
    GatewayChargeRequest,
    PaymentDTO,
    PaymentResult,
    TokenSource,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentMetadata, PaymentMethod
from domain.payment.events import PaymentEvent, TokenMismatchDetected
from domain.payment.exceptions import (
    InvalidRequestException,
    SubscriptionNotFoundException,
    TokenMismatchException,
)
from domain.payment.money import quantize_major, to_minor_unit
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

GATEWAY_NAME = "moyasar"
DEFAULT_FAILURE_MESSAGE = "Payment failed at Moyasar"
TOKENIZED_FAILURE_MESSAGE = "Tokenized payment failed at Moyasar"

EventHandler = Callable[[PaymentEvent], None]


def dispatch_events(events: Iterable[PaymentEvent], handler: Optional[EventHandler]) -> None:
    """Log domain events and hand them to the optional operator hook."""
    for event in events:
        logger.info(
            "payment_domain_event",
            event_type=type(event).__name__,
            event_id=event.event_id,
            payment_id=event.payment_id,
            moyasar_payment_id=event.moyasar_payment_id,
        )
        if handler is not None:
            handler(event)


class PaymentService:
    """Charge Orchestrator."""

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

    @asynccontextmanager
    async def _unit_of_work(self, uow: Optional[AbstractUnitOfWork]) -> AsyncIterator[AbstractUnitOfWork]:
        # An externally managed unit of work is committed/rolled back by its owner
        if uow is not None:
            yield uow
            return
        async with self._uow_factory() as local:
            yield local

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_callback_url(self, callback_url: Optional[str]) -> str:
        resolved = callback_url or self._settings.moyasar.callback_url
        if not resolved:
            raise InvalidRequestException(
                "callbackUrl is required for payment creation. "
                "Provide it in the request or set MOYASAR__CALLBACK_URL.",
                field="callback_url",
            )
        return resolved

    def _validate_common(
        self,
        business_id: Optional[str],
        amount: Optional[Decimal],
        currency: Optional[str],
    ) -> tuple[Decimal, str, int]:
        if not business_id:
            raise InvalidRequestException("businessId is required for payment creation", field="business_id")
        if amount is None or amount <= 0:
            raise InvalidRequestException("Valid amount is required for payment creation", field="amount")
        if not currency:
            raise InvalidRequestException("currency is required for payment creation", field="currency")
        currency = currency.upper()
        if len(currency) != 3 or not currency.isalpha():
            raise InvalidRequestException(f"Invalid currency code: {currency}", field="currency")
        amount_minor = to_minor_unit(amount)
        if amount_minor < 1:
            raise InvalidRequestException(
                f"Amount {amount} is below the smallest chargeable unit", field="amount"
            )
        return quantize_major(amount), currency, amount_minor

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    async def create_payment(self, cmd: CreatePaymentCommand) -> PaymentResult:
        """Charge a card (or wallet) source once."""
        amount, currency, amount_minor = self._validate_common(cmd.business_id, cmd.amount, cmd.currency)
        if cmd.source is None:
            raise InvalidRequestException(
                "source (payment method) is required for payment creation", field="source"
            )
        callback_url = self._resolve_callback_url(cmd.callback_url)
        given_id = str(uuid.uuid4())
        metadata = PaymentMetadata(
            gateway=GATEWAY_NAME,
            given_id=given_id,
            description=cmd.description,
            callback_url=callback_url,
            session_id=cmd.session_id,
        )

        async with self._unit_of_work(None) as uow:
            payment = await PaymentDomainService(uow.payment_repository).create_pending_payment(
                business_id=cmd.business_id,
                amount=amount,
                currency=currency,
                subscription_id=cmd.subscription_id,
                payment_method=SOURCE_TYPE_TO_METHOD.get(cmd.source.type, PaymentMethod.CARD),
                metadata=metadata,
            )
        logger.info(
            "payment_record_created",
            payment_id=payment.public_id,
            business_id=payment.business_id,
            amount=str(payment.amount),
            currency=payment.currency,
            given_id=given_id,
        )

        request = GatewayChargeRequest(
            given_id=given_id,
            amount=amount_minor,
            currency=currency,
            description=cmd.description or f"Subscription payment for business {cmd.business_id}",
            callback_url=callback_url,
            source=cmd.source,
            metadata=self._gateway_metadata(payment, session_id=cmd.session_id),
        )
        charge = await self._submit_charge(payment, request)

        async with self._unit_of_work(None) as uow:
            return await self._apply_charge_outcome(uow, payment, charge, DEFAULT_FAILURE_MESSAGE)

    async def create_tokenized_payment(
        self,
        cmd: CreateTokenizedPaymentCommand,
        *,
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> PaymentResult:
        """Charge a stored card token for a subscription renewal.

        When ``uow`` is supplied every write joins the caller's transaction and
        this method neither commits nor rolls back.
        """
        amount, currency, amount_minor = self._validate_common(cmd.business_id, cmd.amount, cmd.currency)
        if not cmd.subscription_id:
            raise InvalidRequestException(
                "subscriptionId is required for tokenized payment", field="subscription_id"
            )
        if not cmd.token:
            raise InvalidRequestException("token is required for tokenized payment", field="token")
        callback_url = self._resolve_callback_url(cmd.callback_url)
        given_id = str(uuid.uuid4())

        async with self._unit_of_work(uow) as tx:
            ref = await tx.subscription_repository.get_token_ref(cmd.subscription_id)
            if ref is None or not ref.moyasar_token:
                raise SubscriptionNotFoundException(cmd.subscription_id)
            if not secrets.compare_digest(ref.moyasar_token, cmd.token):
                logger.error(
                    "payment_token_mismatch",
                    subscription_id=cmd.subscription_id,
                    business_id=cmd.business_id,
                    provided_token_hint=cmd.token[:10] + "...",
                )
                dispatch_events(
                    [TokenMismatchDetected(payment_id=None, subscription_id=cmd.subscription_id)],
                    self._event_handler,
                )
                raise TokenMismatchException(cmd.subscription_id)

            payment = await PaymentDomainService(tx.payment_repository).create_pending_payment(
                business_id=cmd.business_id,
                amount=amount,
                currency=currency,
                subscription_id=cmd.subscription_id,
                payment_method=PaymentMethod.CARD,
                metadata=PaymentMetadata(
                    gateway=GATEWAY_NAME,
                    given_id=given_id,
                    description=cmd.description,
                    callback_url=callback_url,
                    recurring=True,
                    token_hint=cmd.token[:10] + "...",
                ),
            )
        logger.info(
            "tokenized_payment_record_created",
            payment_id=payment.public_id,
            subscription_id=cmd.subscription_id,
            amount=str(payment.amount),
            given_id=given_id,
        )

        request = GatewayChargeRequest(
            given_id=given_id,
            amount=amount_minor,
            currency=currency,
            description=cmd.description or f"Recurring subscription payment for business {cmd.business_id}",
            callback_url=callback_url,
            source=TokenSource(token=cmd.token),
            metadata=self._gateway_metadata(payment),
        )
        charge = await self._submit_charge(payment, request)

        async with self._unit_of_work(uow) as tx:
            return await self._apply_charge_outcome(tx, payment, charge, TOKENIZED_FAILURE_MESSAGE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _gateway_metadata(payment: Payment, session_id: Optional[str] = None) -> dict[str, str]:
        meta = {
            "payment_id": payment.public_id,
            "business_id": payment.business_id,
            "subscription_id": payment.subscription_id,
            "session_id": session_id,
        }
        return {k: v for k, v in meta.items() if v}

    async def _submit_charge(self, payment: Payment, request: GatewayChargeRequest) -> GatewayCharge:
        try:
            charge = await self.gateway.create_charge(request)
        except Exception as exc:
            # The pending record stays for later verification: money may have moved
            logger.error(
                "moyasar_charge_request_failed",
                payment_id=payment.public_id,
                given_id=request.given_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        logger.info(
            "moyasar_charge_created",
            payment_id=payment.public_id,
            moyasar_payment_id=charge.id,
            status=charge.status,
            amount=charge.amount,
        )
        return charge

    async def _apply_charge_outcome(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        charge: GatewayCharge,
        failure_default: str,
    ) -> PaymentResult:
        service = PaymentDomainService(uow.payment_repository)
        updated = await service.attach_gateway_response(payment.public_id, charge.id, charge.snapshot())

        kind = charge.kind
        if kind is ChargeStatus.PAID:
            updated = await service.mark_paid(
                payment.public_id,
                charge.id,
                {"transaction_id": charge.id, "moyasar_created_at": charge.created_at},
            )
            logger.info("payment_completed", payment_id=updated.public_id, moyasar_payment_id=charge.id)
            result = PaymentResult(
                success=True,
                payment=PaymentDTO.from_entity(updated),
                gateway_response=charge,
                requires_verification=False,
            )
        elif kind is ChargeStatus.INITIATED:
            logger.info(
                "payment_requires_3ds",
                payment_id=updated.public_id,
                moyasar_payment_id=charge.id,
                transaction_url=charge.transaction_url,
            )
            result = PaymentResult(
                success=False,
                payment=PaymentDTO.from_entity(updated),
                gateway_response=charge,
                requires_verification=True,
                transaction_url=charge.transaction_url,
            )
        elif kind is ChargeStatus.FAILED:
            message = charge.failure_message or failure_default
            patch = {"failure": charge.source.model_dump(exclude_none=True)} if charge.source else None
            updated = await service.mark_failed(payment.public_id, message, patch)
            logger.warning(
                "payment_failed",
                payment_id=updated.public_id,
                moyasar_payment_id=charge.id,
                reason=message,
            )
            result = PaymentResult(
                success=False,
                payment=PaymentDTO.from_entity(updated),
                gateway_response=charge,
                error=message,
            )
        else:
            logger.warning(
                "moyasar_charge_unhandled_status",
                payment_id=updated.public_id,
                moyasar_payment_id=charge.id,
                status=charge.status,
            )
            result = PaymentResult(
                success=False,
                payment=PaymentDTO.from_entity(updated),
                gateway_response=charge,
                requires_verification=False,
            )

        dispatch_events(service.clear_events(), self._event_handler)
        return result

    async def aclose(self) -> None:
        await self.gateway.aclose()
