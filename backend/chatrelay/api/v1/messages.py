"""消息API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.api.deps import get_current_user_id
from chatrelay.crud.conversation import conversation_crud, message_crud
from chatrelay.crud.model_catalog import model_catalog_crud
from chatrelay.database import get_chat_session
from chatrelay.schemas.chat import UserMessageRequest
from chatrelay.schemas.conversation import MessageResponse, MessageListResponse
from chatrelay.services.errors import NotFoundError

router = APIRouter()


@router.get("/chats/{chat_id}/messages", response_model=MessageListResponse)
async def list_messages(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """获取会话的全部消息（包含正在生成中的 assistant 消息）"""
    await conversation_crud.get_owned(db, chat_id, user_id)
    messages = await message_crud.list_for_conversation(db, chat_id)
    return {"messages": messages}


@router.post("/chats/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def add_user_message(
    chat_id: str,
    message_in: UserMessageRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
):
    """新增用户消息"""
    await conversation_crud.get_owned(db, chat_id, user_id)
    entry = await model_catalog_crud.get_by_value(db, message_in.model)
    if not entry:
        raise NotFoundError("Model not found")

    message = await message_crud.create(db, chat_id, "user", message_in.prompt, entry.id)
    await conversation_crud.touch(db, chat_id)
    return message
