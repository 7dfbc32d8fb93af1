"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(64), unique=True, index=True, nullable=False, comment="对外公开ID")

    # 付款方
    business_id = Column(String(64), nullable=False, index=True, comment="付款商户ID")
    subscription_id = Column(String(64), nullable=True, index=True, comment="订阅ID")

    # 网关信息
    moyasar_payment_id = Column(String(100), unique=True, nullable=True, comment="Moyasar 支付ID")
    payment_method = Column(String(20), nullable=True, comment="支付方式: card/apple_pay/stc_pay")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=10, scale=2), nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, default="SAR", comment="货币代码 ISO-4217")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/paid/failed/refunded/cancelled"
    )
    payment_date = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failure_reason = Column(Text, nullable=True, comment="失败原因")

    # 退款信息（累计）
    refund_amount = Column(Numeric(precision=10, scale=2), nullable=True, comment="累计退款金额")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="最近退款时间")

    # 重试信息
    retry_count = Column(Integer, nullable=False, default=0, comment="重试次数")
    last_retry_at = Column(DateTime(timezone=True), nullable=True, comment="最近重试时间")

    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="网关关联数据")

    # 索引
    __table_args__ = (
        Index("ix_payments_business_status", "business_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, public_id='{self.public_id}', "
            f"moyasar_payment_id='{self.moyasar_payment_id}', amount={self.amount}, status='{self.status}')>"
        )
