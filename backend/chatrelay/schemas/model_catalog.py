"""模型目录相关的Pydantic schemas"""
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime

from chatrelay.config import settings


class ModelCreate(BaseModel):
    """新增模型"""
    name: str = Field(..., min_length=1, max_length=settings.MODEL_FIELD_MAX_LENGTH, description="展示名称")
    value: str = Field(..., min_length=1, max_length=settings.MODEL_FIELD_MAX_LENGTH, description="服务商模型标识")


class ModelResponse(BaseModel):
    """模型响应"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    value: str
    created_at: datetime


class ModelListResponse(BaseModel):
    """模型列表响应"""
    models: list[ModelResponse]
