"""模型目录"""
from sqlalchemy import Column, String, DateTime
from datetime import datetime

from chatrelay.models.base import Base


class ModelCatalogEntry(Base):
    """模型目录表：展示名称 -> 服务商模型标识"""
    __tablename__ = "model_catalog"

    id = Column(String(50), primary_key=True)
    name = Column(String(100), nullable=False)
    value = Column(String(100), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ModelCatalogEntry {self.value}>"
