"""
订阅数据库模型（仅映射支付流程需要读取的列）
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class SubscriptionModel(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(64), unique=True, index=True, nullable=False, comment="对外公开ID")
    business_id = Column(String(64), nullable=False, index=True, comment="商户ID")
    status = Column(String(20), nullable=False, default="active", comment="订阅状态")
    moyasar_token = Column(String(255), nullable=True, comment="Moyasar 卡片令牌（循环扣款）")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<SubscriptionModel(id={self.id}, public_id='{self.public_id}', status='{self.status}')>"
