"""会话管理API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.api.deps import get_current_user_id
from chatrelay.crud.conversation import conversation_crud
from chatrelay.database import get_chat_session
from chatrelay.schemas.conversation import (
    ConversationUpdate,
    ConversationResponse,
    ConversationListResponse,
)
from chatrelay.services.errors import ConflictError, NotFoundError, AuthorizationError

router = APIRouter()


@router.post("/chats", response_model=ConversationResponse, status_code=201)
async def create_chat(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """创建新会话"""
    return await conversation_crud.create(db, user_id)


@router.get("/chats", response_model=ConversationListResponse)
async def list_chats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """获取当前用户的会话列表（不含已删除）"""
    chats = await conversation_crud.list_for_user(db, user_id)
    return {"chats": chats}


@router.put("/chats/{chat_id}", response_model=ConversationResponse)
async def rename_chat(
    chat_id: str,
    chat_in: ConversationUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """修改会话名称"""
    conversation = await conversation_crud.get_owned(db, chat_id, user_id)
    return await conversation_crud.rename(db, conversation, chat_in.name.strip())


@router.delete("/chats/{chat_id}")
async def delete_chat(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """软删除会话"""
    conversation = await conversation_crud.get(db, chat_id)
    if not conversation:
        raise NotFoundError("Chat not found")
    if conversation.is_deleted:
        raise ConflictError("Chat already deleted")
    if conversation.user_id != user_id:
        raise AuthorizationError("Unauthorized")

    await conversation_crud.soft_delete(db, conversation)
    return {"success": True, "message": "Chat deleted successfully"}
