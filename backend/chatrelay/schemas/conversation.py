"""会话与消息相关的Pydantic schemas"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime

from chatrelay.config import settings


class ConversationUpdate(BaseModel):
    """重命名会话"""
    name: str = Field(..., min_length=1, max_length=settings.CHAT_NAME_MAX_LENGTH, description="会话名称")


class ConversationResponse(BaseModel):
    """会话响应"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime
    last_updated: datetime


class ConversationListResponse(BaseModel):
    """会话列表响应"""
    chats: list[ConversationResponse]


class MessageResponse(BaseModel):
    """消息响应（流式回复进行中的 assistant 消息内容可能为空）"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str
    content: str = ""
    model_id: str
    temperature: Optional[float] = None
    created_at: datetime


class MessageListResponse(BaseModel):
    """消息列表响应"""
    messages: list[MessageResponse]
