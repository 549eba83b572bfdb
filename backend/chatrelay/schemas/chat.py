"""聊天相关的Pydantic schemas"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional

from chatrelay.config import settings


class StreamRequest(BaseModel):
    """流式回复请求"""
    model: str = Field(..., min_length=1, max_length=settings.MODEL_FIELD_MAX_LENGTH, description="模型标识（对应模型目录的 value）")
    max_tokens: Optional[int] = Field(None, ge=1, le=settings.MAX_TOKENS_LIMIT, description="最大输出token数")
    temperature: Optional[float] = Field(None, ge=0, le=1, description="温度参数")

    @field_validator("model")
    @classmethod
    def model_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Model is required and must be a non-empty string")
        return v


class UserMessageRequest(BaseModel):
    """新增用户消息"""
    prompt: str = Field(..., min_length=1, max_length=settings.PROMPT_MAX_LENGTH, description="用户输入")
    model: str = Field(..., min_length=1, max_length=settings.MODEL_FIELD_MAX_LENGTH, description="模型标识")

    @field_validator("prompt", "model")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v


class ProviderTestRequest(BaseModel):
    """测试模型服务连接"""
    model: Optional[str] = Field(None, max_length=settings.MODEL_FIELD_MAX_LENGTH)


class ProviderTestResponse(BaseModel):
    """测试连接响应"""
    success: bool
    message: str
    model_info: Optional[dict] = None
