"""应用配置"""
from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import List


class Settings(BaseSettings):
    """应用配置类"""

    # 应用信息
    APP_NAME: str = "Chat Relay"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # 数据库配置
    CHAT_DATABASE_URL: str = "sqlite+aiosqlite:///./data/chat_relay.db"

    # CORS配置
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # 模型服务（OpenAI 兼容接口，默认走 OpenRouter）
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL: str = "deepseek/deepseek-chat-v3.1:free"
    DEFAULT_MAX_TOKENS: int = 1000
    DEFAULT_TEMPERATURE: float = 1.0
    PROVIDER_TIMEOUT_SEC: float = 60.0

    # 流式转发
    RELAY_CHECKPOINT_INTERVAL_SEC: float = 1.0  # 增量落库间隔
    RELAY_TIMEOUT_SEC: float = 300.0  # 单次流式回复的最长时间
    CLIENT_DISCONNECT_POLL_SEC: float = 0.5

    # 字段长度限制
    PROMPT_MAX_LENGTH: int = 10000
    CHAT_NAME_MAX_LENGTH: int = 50
    MODEL_FIELD_MAX_LENGTH: int = 100
    MAX_TOKENS_LIMIT: int = 4000

    @model_validator(mode="before")
    @classmethod
    def treat_empty_env_as_unset(cls, data):
        """
        将空字符串环境变量按“未配置”处理。
        这样 .env 中留空不会覆盖默认值。
        """
        if not isinstance(data, dict):
            return data

        cleaned = dict(data)
        for field_name, field in cls.model_fields.items():
            default = field.default

            # 仅当字段本身有可用默认值时，空字符串才回退到默认值
            if default in (None, ""):
                continue

            if cleaned.get(field_name) == "":
                cleaned.pop(field_name, None)

        return cleaned

    @property
    def cors_origins_list(self) -> List[str]:
        """获取CORS允许的源列表"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = (".env", "backend/.env")
        case_sensitive = True
        extra = "ignore"


# 全局配置实例
settings = Settings()
