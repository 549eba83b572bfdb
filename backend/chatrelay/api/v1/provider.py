"""模型服务连通性检查"""
from fastapi import APIRouter, Depends

from chatrelay.schemas.chat import ProviderTestRequest, ProviderTestResponse
from chatrelay.services.errors import ProviderError
from chatrelay.services.relay.provider import ProviderClient, get_provider

router = APIRouter()


@router.post("/provider/test", response_model=ProviderTestResponse)
async def test_provider(
    request: ProviderTestRequest,
    provider: ProviderClient = Depends(get_provider),
):
    """发送一个最小请求测试模型服务连接"""
    try:
        result = await provider.complete(
            [{"role": "user", "content": "Hello"}],
            model=request.model,
            max_tokens=5,
        )
    except ProviderError as e:
        return ProviderTestResponse(
            success=False,
            message=f"Connection failed: {e.message}",
            model_info=None,
        )

    return ProviderTestResponse(
        success=True,
        message="Connection succeeded",
        model_info={"model": result.model, "available": True},
    )
