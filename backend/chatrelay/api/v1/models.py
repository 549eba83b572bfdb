"""模型目录API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.crud.model_catalog import model_catalog_crud
from chatrelay.database import get_chat_session
from chatrelay.schemas.model_catalog import ModelCreate, ModelResponse, ModelListResponse

router = APIRouter()


@router.get("/models", response_model=ModelListResponse)
async def list_models(db: AsyncSession = Depends(get_chat_session)):
    """获取可用模型"""
    return {"models": await model_catalog_crud.list_all(db)}


@router.post("/models", response_model=ModelResponse, status_code=201)
async def add_model(
    model_in: ModelCreate,
    db: AsyncSession = Depends(get_chat_session),
):
    """新增模型"""
    return await model_catalog_crud.create(db, model_in.name.strip(), model_in.value.strip())
