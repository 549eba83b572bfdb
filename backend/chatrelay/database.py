"""数据库连接和会话管理

Review note:
- 请求内的读写使用 `get_chat_session` 注入的会话。
- 流式回复在后台任务中持续写入，不能依赖请求作用域的会话，
  因此通过 `get_session_factory` 拿到会话工厂，每次写入单独开会话。
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator

from chatrelay.config import settings

# 创建对话数据库异步引擎（会话、消息、模型目录）
chat_engine = create_async_engine(
    settings.CHAT_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=settings.DEBUG,
)

# 创建对话数据库会话工厂
chat_session_maker = async_sessionmaker(
    chat_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_chat_session() -> AsyncGenerator[AsyncSession, None]:
    """获取对话数据库会话的依赖注入函数"""
    async with chat_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """获取会话工厂（供流式转发的后台写入使用）"""
    return chat_session_maker


async def init_db(engine=None) -> None:
    """初始化数据库表"""
    from chatrelay.models.base import Base
    from chatrelay.models import Conversation, Message, ModelCatalogEntry  # noqa: F401

    async with (engine or chat_engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
