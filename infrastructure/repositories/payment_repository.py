"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, select
from sqlalchemy.sql import Select

from domain.payment.entity import Payment, PaymentMetadata, PaymentMethod, PaymentStatus
from domain.payment.exceptions import PaymentNotFoundException
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            public_id=model.public_id,
            business_id=model.business_id,
            subscription_id=model.subscription_id,
            moyasar_payment_id=model.moyasar_payment_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=PaymentStatus(model.status),
            payment_method=PaymentMethod(model.payment_method) if model.payment_method else None,
            payment_date=model.payment_date,
            failure_reason=model.failure_reason,
            refund_amount=Decimal(str(model.refund_amount)) if model.refund_amount is not None else None,
            refunded_at=model.refunded_at,
            retry_count=model.retry_count or 0,
            last_retry_at=model.last_retry_at,
            cancelled_at=model.cancelled_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            metadata=PaymentMetadata.from_dict(model.extra_metadata),
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            public_id=entity.public_id,
            business_id=entity.business_id,
            subscription_id=entity.subscription_id,
            moyasar_payment_id=entity.moyasar_payment_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            payment_method=entity.payment_method.value if entity.payment_method else None,
            payment_date=entity.payment_date,
            failure_reason=entity.failure_reason,
            refund_amount=entity.refund_amount,
            refunded_at=entity.refunded_at,
            retry_count=entity.retry_count,
            last_retry_at=entity.last_retry_at,
            cancelled_at=entity.cancelled_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            extra_metadata=entity.metadata.to_dict(),
        )

    async def _first(self, query: Select, for_update: bool) -> Optional[Payment]:
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.public_id,
            business_id=db_payment.business_id,
            amount=str(db_payment.amount),
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def get_by_public_id(self, public_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据公开ID获取支付"""
        return await self._first(
            select(PaymentModel).where(PaymentModel.public_id == public_id), for_update
        )

    async def get_by_moyasar_id(self, moyasar_payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据网关支付ID获取支付"""
        return await self._first(
            select(PaymentModel).where(PaymentModel.moyasar_payment_id == moyasar_payment_id), for_update
        )

    async def get_by_session_id(self, session_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据 metadata 中的会话ID获取支付（兼容 session_id / sessionId 两种写法）"""
        meta = PaymentModel.extra_metadata
        query = (
            select(PaymentModel)
            .where(or_(
                meta["session_id"].as_string() == session_id,
                meta["sessionId"].as_string() == session_id,
            ))
            .order_by(PaymentModel.created_at.desc())
        )
        return await self._first(query, for_update)

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise PaymentNotFoundException(payment.public_id)

        # 更新字段
        db_payment.moyasar_payment_id = payment.moyasar_payment_id
        db_payment.status = payment.status.value
        db_payment.payment_method = payment.payment_method.value if payment.payment_method else None
        db_payment.payment_date = payment.payment_date
        db_payment.failure_reason = payment.failure_reason
        db_payment.refund_amount = payment.refund_amount
        db_payment.refunded_at = payment.refunded_at
        db_payment.retry_count = payment.retry_count
        db_payment.last_retry_at = payment.last_retry_at
        db_payment.cancelled_at = payment.cancelled_at
        db_payment.updated_at = payment.updated_at
        db_payment.extra_metadata = payment.metadata.to_dict()

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.public_id,
            moyasar_payment_id=db_payment.moyasar_payment_id,
            status=db_payment.status,
        )

        return self._to_entity(db_payment)
