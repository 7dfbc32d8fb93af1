"""
订阅令牌只读仓储 - 使用SQLAlchemy实现
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.subscription.repository import SubscriptionRepository, SubscriptionTokenRef
from infrastructure.models.subscription import SubscriptionModel


class SQLAlchemySubscriptionRepository(SubscriptionRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_token_ref(self, subscription_id: str) -> Optional[SubscriptionTokenRef]:
        result = await self.session.execute(
            select(SubscriptionModel).where(SubscriptionModel.public_id == subscription_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return SubscriptionTokenRef(
            public_id=model.public_id,
            business_id=model.business_id,
            moyasar_token=model.moyasar_token,
        )
