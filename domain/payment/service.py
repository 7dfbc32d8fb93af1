"""
支付领域服务 - 支付记录的原子状态变更

每个操作都在调用方的事务内完成：加行锁读取 -> 实体状态转换 -> 持久化。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from .entity import Payment, PaymentMetadata, PaymentMethod, PaymentStatus, generate_payment_public_id
from .events import PaymentFailed, PaymentPaid, PaymentRefunded
from .exceptions import PaymentNotFoundException
from .repository import PaymentRepository


class PaymentDomainService:
    """
    支付领域服务 - Payment Record Store

    职责：
    1. 创建 pending 支付记录
    2. 在行锁保护下执行状态转换（mark_paid / mark_failed / increment_retry / process_refund）
    3. 合并而非替换 metadata
    4. 产生领域事件
    """

    def __init__(self, payment_repository: PaymentRepository):
        self.payment_repository = payment_repository
        self.events: List = []  # 领域事件收集

    async def create_pending_payment(
        self,
        business_id: str,
        amount: Decimal,
        currency: str,
        subscription_id: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = PaymentMethod.CARD,
        metadata: Optional[PaymentMetadata] = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=None,
            public_id=generate_payment_public_id(),
            business_id=business_id,
            subscription_id=subscription_id,
            amount=amount,
            currency=currency.upper(),
            status=PaymentStatus.PENDING,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
            metadata=metadata or PaymentMetadata(),
        )
        return await self.payment_repository.create(payment)

    async def _load_for_update(self, public_id: str) -> Payment:
        payment = await self.payment_repository.get_by_public_id(public_id, for_update=True)
        if not payment:
            raise PaymentNotFoundException(public_id)
        return payment

    async def attach_gateway_response(
        self,
        public_id: str,
        moyasar_payment_id: Optional[str],
        response: Mapping[str, Any],
    ) -> Payment:
        """记录网关ID与原始响应（无论结果如何）"""
        payment = await self._load_for_update(public_id)
        if moyasar_payment_id:
            payment.moyasar_payment_id = moyasar_payment_id
        payment.merge_metadata({"moyasar_response": dict(response)})
        return await self.payment_repository.update(payment)

    async def link_gateway_payment(self, public_id: str, moyasar_payment_id: str) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.link_gateway_payment(moyasar_payment_id)
        return await self.payment_repository.update(payment)

    async def mark_paid(
        self,
        public_id: str,
        moyasar_payment_id: Optional[str] = None,
        metadata_patch: Optional[Mapping[str, Any]] = None,
    ) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.mark_paid(moyasar_payment_id, metadata_patch)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentPaid(payment_id=updated.public_id, moyasar_payment_id=updated.moyasar_payment_id))
        return updated

    async def mark_failed(
        self,
        public_id: str,
        reason: Optional[str] = None,
        metadata_patch: Optional[Mapping[str, Any]] = None,
    ) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.mark_failed(reason)
        if metadata_patch:
            payment.merge_metadata(metadata_patch)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentFailed(
            payment_id=updated.public_id,
            moyasar_payment_id=updated.moyasar_payment_id,
            reason=reason,
        ))
        return updated

    async def increment_retry(self, public_id: str) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.increment_retry()
        return await self.payment_repository.update(payment)

    async def cancel_payment(self, public_id: str) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.mark_cancelled()
        return await self.payment_repository.update(payment)

    async def process_refund(
        self,
        public_id: str,
        amount: Optional[Decimal] = None,
        metadata_patch: Optional[Mapping[str, Any]] = None,
    ) -> Payment:
        """
        记录退款

        余额校验由退款编排在调用网关之前完成，这里不再重复校验。
        """
        payment = await self._load_for_update(public_id)
        refunded = payment.process_refund(amount)
        if metadata_patch:
            payment.merge_metadata(metadata_patch)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentRefunded(
            payment_id=updated.public_id,
            moyasar_payment_id=updated.moyasar_payment_id,
            amount=str(refunded),
            total_refunded=str(updated.refund_amount),
        ))
        return updated

    async def merge_metadata(self, public_id: str, patch: Mapping[str, Any]) -> Payment:
        payment = await self._load_for_update(public_id)
        payment.merge_metadata(patch)
        return await self.payment_repository.update(payment)

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
