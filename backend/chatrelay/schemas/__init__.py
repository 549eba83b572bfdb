"""Schemas包初始化"""
from chatrelay.schemas.conversation import (
    ConversationUpdate,
    ConversationResponse,
    ConversationListResponse,
    MessageResponse,
    MessageListResponse,
)
from chatrelay.schemas.chat import (
    StreamRequest,
    UserMessageRequest,
    ProviderTestRequest,
    ProviderTestResponse,
)
from chatrelay.schemas.model_catalog import (
    ModelCreate,
    ModelResponse,
    ModelListResponse,
)

__all__ = [
    # Conversation schemas
    "ConversationUpdate",
    "ConversationResponse",
    "ConversationListResponse",
    "MessageResponse",
    "MessageListResponse",
    # Chat schemas
    "StreamRequest",
    "UserMessageRequest",
    "ProviderTestRequest",
    "ProviderTestResponse",
    # Model catalog schemas
    "ModelCreate",
    "ModelResponse",
    "ModelListResponse",
]
