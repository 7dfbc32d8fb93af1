"""
Unit of Work 抽象定义

一个 UoW 即一个数据库事务。支付流程的约定：
- 待支付记录在网关调用之前单独提交
- 网关结果在新的 UoW 中落库
- 调用方传入的 UoW 由调用方负责提交/回滚
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentRepository
from domain.subscription.repository import SubscriptionRepository


class AbstractUnitOfWork(ABC):
    payment_repository: PaymentRepository
    subscription_repository: SubscriptionRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # 异常一律回滚；正常退出时自动提交（只读或已显式提交除外）
        if exc:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
