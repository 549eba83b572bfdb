"""模型包初始化"""
from chatrelay.models.base import Base
from chatrelay.models.conversation import Conversation
from chatrelay.models.message import Message
from chatrelay.models.model_catalog import ModelCatalogEntry

__all__ = [
    "Base",
    "Conversation",
    "Message",
    "ModelCatalogEntry",
]
