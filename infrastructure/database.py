"""
数据库配置和连接管理
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """创建异步引擎（测试中用于指向 sqlite+aiosqlite）"""
    return create_async_engine(_build_async_url(database_url), echo=echo)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False：提交后实体转换仍可读取已加载属性
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, echo=settings.database.echo)

AsyncSessionLocal = build_session_factory(engine)


async def create_tables(bind: AsyncEngine = engine):
    """创建所有表"""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

