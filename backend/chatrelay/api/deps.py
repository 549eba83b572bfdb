"""公共依赖"""
from typing import Optional

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """获取调用者身份（由上游鉴权层写入 X-User-Id 请求头）"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()
