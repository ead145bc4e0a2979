"""数据库连接管理。"""
from sqlalchemy import Insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from call_tagging.settings import settings


def build_engine(url: str | None = None):
    return create_async_engine(
        url or settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=settings.sql_echo,
    )


def build_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def upsert(session: AsyncSession, model) -> Insert:
    """
    方言相关的 INSERT ... ON CONFLICT 语句。
    生产 PostgreSQL, 测试 SQLite, 两者都支持 on_conflict_do_update / excluded。
    """
    if session.get_bind().dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        from sqlalchemy.dialects.postgresql import insert
    return insert(model)
