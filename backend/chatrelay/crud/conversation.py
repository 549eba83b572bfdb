"""会话和消息的CRUD操作

Review note:
- `get_owned` 集中处理“存在 -> 归属 -> 未删除”三步校验，顺序固定。
- assistant 消息的 `content` 只由所属的流式转发会话通过 `update_content` 写入。
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import literal_column, select, update
from typing import Optional, List
from datetime import datetime
import uuid

from chatrelay.models.conversation import Conversation
from chatrelay.models.message import Message
from chatrelay.services.errors import NotFoundError, AuthorizationError, ConflictError


class CRUDConversation:
    """会话CRUD操作"""

    async def get(
        self,
        db: AsyncSession,
        conversation_id: str,
    ) -> Optional[Conversation]:
        """获取单个会话"""
        result = await db.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def get_owned(
        self,
        db: AsyncSession,
        conversation_id: str,
        user_id: str,
    ) -> Conversation:
        """获取调用者拥有且未删除的会话，否则抛出对应错误"""
        conversation = await self.get(db, conversation_id)
        if not conversation:
            raise NotFoundError("Chat not found")
        if conversation.user_id != user_id:
            raise AuthorizationError("Unauthorized")
        if conversation.is_deleted:
            raise ConflictError("Chat is deleted")
        return conversation

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
    ) -> List[Conversation]:
        """获取用户未删除的会话（最近更新在前）"""
        result = await db.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id, Conversation.is_deleted.is_(False))
            .order_by(Conversation.last_updated.desc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        user_id: str,
    ) -> Conversation:
        """创建会话"""
        db_obj = Conversation(
            id=str(uuid.uuid4()),
            user_id=user_id,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def rename(
        self,
        db: AsyncSession,
        conversation: Conversation,
        name: str,
    ) -> Conversation:
        """修改会话名称"""
        conversation.name = name
        await db.commit()
        await db.refresh(conversation)
        return conversation

    async def soft_delete(
        self,
        db: AsyncSession,
        conversation: Conversation,
    ) -> Conversation:
        """软删除会话"""
        conversation.is_deleted = True
        await db.commit()
        await db.refresh(conversation)
        return conversation

    async def touch(self, db: AsyncSession, conversation_id: str) -> None:
        """刷新会话的 last_updated"""
        await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_updated=datetime.utcnow())
        )
        await db.commit()


class CRUDMessage:
    """消息CRUD操作"""

    async def get(
        self,
        db: AsyncSession,
        message_id: str,
    ) -> Optional[Message]:
        """获取单个消息"""
        result = await db.execute(
            select(Message).where(Message.id == message_id)
        )
        return result.scalar_one_or_none()

    async def list_for_conversation(
        self,
        db: AsyncSession,
        conversation_id: str,
    ) -> List[Message]:
        """获取会话的所有消息（按创建时间升序，同一时间按插入顺序）"""
        result = await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, literal_column("messages.rowid"))
        )
        return list(result.scalars().all())

    async def create(
        self,
        db: AsyncSession,
        conversation_id: str,
        role: str,
        content: str,
        model_id: str,
        temperature: Optional[float] = None,
    ) -> Message:
        """创建消息"""
        db_obj = Message(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=role,
            content=content,
            model_id=model_id,
            temperature=temperature,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update_content(
        self,
        db: AsyncSession,
        message_id: str,
        content: str,
    ) -> bool:
        """覆盖写入消息内容"""
        result = await db.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(content=content)
        )
        await db.commit()
        return result.rowcount > 0


# 创建实例
conversation_crud = CRUDConversation()
message_crud = CRUDMessage()
