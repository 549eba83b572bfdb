"""初始化数据库并写入默认模型目录"""
import asyncio
import sys
from pathlib import Path

# 添加项目根目录到Python路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatrelay.config import settings
from chatrelay.crud.model_catalog import model_catalog_crud
from chatrelay.database import init_db, chat_session_maker

DEFAULT_MODELS = [
    {"name": "DeepSeek V3.1 (free)", "value": settings.DEFAULT_MODEL},
]


async def init_model_catalog():
    """建表并补齐默认模型"""
    await init_db()

    created = 0
    async with chat_session_maker() as session:
        for item in DEFAULT_MODELS:
            if await model_catalog_crud.get_by_value(session, item["value"]):
                continue
            await model_catalog_crud.create(session, item["name"], item["value"])
            created += 1
    return created


if __name__ == "__main__":
    print("=" * 60)
    print("🚀 Chat Relay - 数据库初始化")
    print("=" * 60)

    Path("data").mkdir(exist_ok=True)
    count = asyncio.run(init_model_catalog())

    print(f"\n✅ 新增模型 {count} 个")
    print("   运行命令: uvicorn chatrelay.main:app --reload --port 8000")
    print("=" * 60)
