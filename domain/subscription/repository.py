"""
订阅令牌仓储接口（只读）
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SubscriptionTokenRef:
    """订阅上保存的网关令牌引用"""
    public_id: str
    business_id: str
    moyasar_token: Optional[str]


class SubscriptionRepository(ABC):

    @abstractmethod
    async def get_token_ref(self, subscription_id: str) -> Optional[SubscriptionTokenRef]:
        """根据订阅公开ID获取令牌引用"""
        pass
