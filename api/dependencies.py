"""
API依赖项 - 组装支付应用服务
"""
from typing import AsyncIterator

from fastapi import Depends

from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.verification_service import VerificationService
from core.settings import payment_settings
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_gateway() -> AsyncIterator[PaymentGateway]:
    """每个请求一个网关客户端，请求结束后关闭底层 HTTP 连接"""
    gateway = get_payment_gateway(payment_settings.moyasar)
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_payment_service(gateway: PaymentGateway = Depends(get_gateway)) -> PaymentService:
    return PaymentService(uow_factory=SQLAlchemyUnitOfWork, gateway=gateway, settings=payment_settings)


async def get_verification_service(gateway: PaymentGateway = Depends(get_gateway)) -> VerificationService:
    return VerificationService(uow_factory=SQLAlchemyUnitOfWork, gateway=gateway, settings=payment_settings)


async def get_refund_service(gateway: PaymentGateway = Depends(get_gateway)) -> RefundService:
    return RefundService(uow_factory=SQLAlchemyUnitOfWork, gateway=gateway)
