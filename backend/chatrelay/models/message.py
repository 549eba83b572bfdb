"""消息模型

Review note:
- 流式回复开始前先插入一条空内容的 assistant 消息，之后由转发会话增量写入 `content`。
- 读取方需要容忍内容为空或只有部分内容的消息。
"""
from sqlalchemy import Column, String, Text, Float, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from chatrelay.models.base import Base


class Message(Base):
    """消息表"""
    __tablename__ = "messages"

    id = Column(String(50), primary_key=True)
    conversation_id = Column(String(50), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # user, assistant
    content = Column(Text, nullable=False, default="")
    model_id = Column(String(50), ForeignKey("model_catalog.id"), nullable=False)
    temperature = Column(Float, nullable=True, default=None)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # 关系
    conversation = relationship("Conversation", back_populates="messages")
    model = relationship("ModelCatalogEntry")

    # 约束
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="check_role"),
    )

    def __repr__(self):
        return f"<Message {self.role}: {self.content[:50]}...>"
