"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Payment


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做

    ``for_update=True`` must take a row lock held until the surrounding
    transaction ends, so read-modify-write on one payment is serialized.
    """

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_public_id(self, public_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据公开ID获取支付"""
        pass

    @abstractmethod
    async def get_by_moyasar_id(self, moyasar_payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据网关支付ID获取支付"""
        pass

    @abstractmethod
    async def get_by_session_id(self, session_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据 metadata.session_id 获取支付（回退查找）"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass
