"""聊天API（流式输出）.

Review note:
- 校验、占位消息创建、打开上游流都在返回响应前完成：
  这些步骤失败时直接返回对应 HTTP 状态码，不发送任何帧。
- 之后的转发由后台任务驱动，响应体只负责从通道读取帧。
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from chatrelay.api.deps import get_current_user_id
from chatrelay.config import settings
from chatrelay.database import get_chat_session, get_session_factory
from chatrelay.schemas.chat import StreamRequest
from chatrelay.services.relay.channel import SSEChannel
from chatrelay.services.relay.coordinator import RelayCoordinator, request_stop
from chatrelay.services.relay.provider import ProviderClient, get_provider

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("/chats/{chat_id}/stream")
async def stream_reply(
    chat_id: str,
    request_in: StreamRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_chat_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    provider: ProviderClient = Depends(get_provider),
):
    """流式生成 assistant 回复（SSE）"""
    coordinator = RelayCoordinator(
        provider,
        session_factory,
        checkpoint_interval=settings.RELAY_CHECKPOINT_INTERVAL_SEC,
        timeout=settings.RELAY_TIMEOUT_SEC,
    )
    session = await coordinator.prepare(db, user_id, chat_id, request_in)
    await coordinator.open(session)

    channel = SSEChannel(request, poll_interval=settings.CLIENT_DISCONNECT_POLL_SEC)
    coordinator.start(session, channel)

    return StreamingResponse(
        channel.frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # 禁用nginx缓冲
            "X-Message-Id": session.message_id,
        }
    )


@router.post("/chats/{chat_id}/stop")
async def stop_reply(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
):
    """停止生成"""
    if request_stop(chat_id, user_id):
        return {"success": True, "message": "Stop signal sent"}

    return {"success": False, "message": "No reply is being generated"}
