"""模型目录的CRUD操作"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List
import uuid

from chatrelay.models.model_catalog import ModelCatalogEntry
from chatrelay.services.errors import ConflictError


class CRUDModelCatalog:
    """模型目录CRUD操作"""

    async def list_all(self, db: AsyncSession) -> List[ModelCatalogEntry]:
        """获取全部模型"""
        result = await db.execute(
            select(ModelCatalogEntry).order_by(ModelCatalogEntry.created_at)
        )
        return list(result.scalars().all())

    async def get_by_value(
        self,
        db: AsyncSession,
        value: str,
    ) -> Optional[ModelCatalogEntry]:
        """按服务商模型标识查找"""
        result = await db.execute(
            select(ModelCatalogEntry).where(ModelCatalogEntry.value == value)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        db: AsyncSession,
        name: str,
        value: str,
    ) -> ModelCatalogEntry:
        """新增模型"""
        if await self.get_by_value(db, value):
            raise ConflictError("Model already exists")

        db_obj = ModelCatalogEntry(
            id=str(uuid.uuid4()),
            name=name,
            value=value,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj


# 创建实例
model_catalog_crud = CRUDModelCatalog()
