"""会话模型

Review note:
- 会话只做软删除（`is_deleted`），消息历史保留。
- `last_updated` 在新增消息时刷新，用于列表排序。
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime

from chatrelay.models.base import Base


class Conversation(Base):
    """对话会话表"""
    __tablename__ = "conversations"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), nullable=False, index=True)
    name = Column(String(50), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # 关系
    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan", order_by="Message.created_at")

    def __repr__(self):
        return f"<Conversation {self.id}>"
