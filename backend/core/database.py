"""
数据库连接管理
提供异步数据库连接和会话管理
"""

import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(url: str) -> AsyncEngine:
    """根据连接地址创建异步引擎（SQLite 不支持连接池参数）"""
    if url.startswith("sqlite"):
        from sqlalchemy.pool import StaticPool
        return create_async_engine(
            url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    return create_async_engine(
        url,
        echo=False,  # 禁用 SQL 详细输出，避免日志过多
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


engine = build_engine(settings.db_url)

# 会话工厂
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    """模型基类"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（依赖注入用）"""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def load_models():
    """导入所有模型，确保已注册到 Base.metadata"""
    import models  # noqa: F401
    import modules.exam.exam_models  # noqa: F401


async def init_db():
    """初始化数据库（创建缺失的表）"""
    load_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"数据库初始化完成，共 {len(Base.metadata.tables)} 张表")


async def close_db():
    """关闭数据库连接"""
    await engine.dispose()
    logger.debug("数据库连接已关闭")
