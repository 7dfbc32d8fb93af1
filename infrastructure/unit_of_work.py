"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository
from infrastructure.repositories.subscription_repository import SQLAlchemySubscriptionRepository


logger = get_logger(__name__)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    基于 AsyncSession 的事务边界

    - 每次进入创建新会话（或复用外部会话，此时不关闭它）
    - 非只读模式显式 BEGIN，行锁（SELECT ... FOR UPDATE）持有到提交或回滚
    - 只读模式不提交，退出时关闭会话即释放
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.payment_repository = SQLAlchemyPaymentRepository(self.session)
        self.subscription_repository = SQLAlchemySubscriptionRepository(self.session)
        if not self.readonly and not self.session.in_transaction():
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._owns_session and self.session is not None:
                await self.session.close()
                self.session = None

    async def commit(self) -> None:
        self._committed = True
        if self.readonly:
            return
        if self.session is not None and self.session.in_transaction():
            await self.session.commit()

    async def rollback(self) -> None:
        self._committed = False
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
            logger.debug("unit_of_work_rolled_back")
