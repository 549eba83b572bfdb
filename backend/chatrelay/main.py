"""FastAPI应用主文件"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import os

from chatrelay.config import settings
from chatrelay.database import init_db
from chatrelay.services.errors import RelayError

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时执行
    logger.info("启动 Chat Relay 后端...")

    # 确保必要的目录存在
    os.makedirs("data", exist_ok=True)

    # 初始化数据库
    await init_db()

    logger.info("数据库初始化完成")

    yield

    # 关闭时执行
    logger.info("关闭 Chat Relay 后端...")


# 创建FastAPI应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="多轮对话与流式回复转发API",
    lifespan=lifespan,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    """业务错误统一转换为 JSON 响应"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.error_type},
    )


@app.get("/health")
async def health_check():
    """健康检查"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# 导入并注册路由
from chatrelay.api.v1 import chats, messages, chat, models, provider  # noqa: E402
app.include_router(models.router, prefix="/api/v1", tags=["models"])
app.include_router(chats.router, prefix="/api/v1", tags=["chats"])
app.include_router(messages.router, prefix="/api/v1", tags=["messages"])
app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
app.include_router(provider.router, prefix="/api/v1", tags=["provider"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatrelay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
