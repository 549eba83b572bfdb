"""OpenAI-compatible provider client.

Review note:
- `ProviderClient` 是注入式句柄（FastAPI 依赖 `get_provider`），不再使用模块级单例客户端，
  测试可直接用假实现替换。
- `ProviderStream` 是单次、惰性的片段迭代器，`cancel()` 负责关闭上游连接，可重复调用。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional
import logging

from httpx import Timeout
from openai import AsyncOpenAI
import httpx
import openai

from chatrelay.config import settings
from chatrelay.services.errors import ProviderAuthError, ProviderUnavailableError, map_provider_error

logger = logging.getLogger("uvicorn.error")


@dataclass
class CompletionResult:
    """Full (non-streaming) completion."""

    message: str
    role: str = "assistant"
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    model: Optional[str] = None
    id: Optional[str] = None


class ProviderStream:
    """Cancellable async iterator of text fragments over one streaming call."""

    def __init__(self, stream: Any, model: str = "") -> None:
        self._stream = stream
        self.model = model
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Dict[str, Any]] = None
        self._cancelled = False
        self._released = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def released(self) -> bool:
        return self._released

    def __aiter__(self) -> "ProviderStream":
        return self

    async def __anext__(self) -> str:
        while True:
            if self._cancelled or self._released:
                raise StopAsyncIteration
            try:
                chunk = await self._stream.__anext__()
            except StopAsyncIteration:
                await self._release()
                raise
            except (openai.OpenAIError, httpx.HTTPError) as exc:
                await self._release()
                raise map_provider_error(exc) from exc

            self._record_meta(chunk)
            if self._cancelled:
                raise StopAsyncIteration
            text = _chunk_text(chunk)
            if text:
                return text

    async def cancel(self) -> None:
        """Stop yielding and close the upstream response. Safe to call repeatedly."""
        if self._cancelled:
            return
        self._cancelled = True
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._stream.close()
        except Exception:
            logger.warning("provider-stream close failed model=%s", self.model, exc_info=True)

    def _record_meta(self, chunk: Any) -> None:
        choices = getattr(chunk, "choices", None) or []
        if choices and getattr(choices[0], "finish_reason", None):
            self.finish_reason = choices[0].finish_reason
        usage = getattr(chunk, "usage", None)
        if usage and getattr(usage, "total_tokens", None):
            self.usage = usage.model_dump() if hasattr(usage, "model_dump") else dict(usage)


def _chunk_text(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


class ProviderClient:
    """Handle on an OpenAI-compatible chat completion endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "",
        default_model: str = "",
        default_max_tokens: int = 1000,
        default_temperature: float = 1.0,
        timeout_sec: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.default_model = default_model
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        if client is not None:
            self._client = client
        else:
            if not api_key:
                raise ProviderAuthError("OPENAI_API_KEY is not configured")
            client_kwargs = {
                "api_key": api_key,
                "timeout": Timeout(timeout_sec),
            }
            if base_url:
                client_kwargs["base_url"] = base_url
            self._client = AsyncOpenAI(**client_kwargs)

    def _params(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str],
        max_tokens: Optional[int],
        temperature: Optional[float],
    ) -> Dict[str, Any]:
        return {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else self.default_max_tokens,
            "temperature": temperature if temperature is not None else self.default_temperature,
        }

    async def complete(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> CompletionResult:
        """Blocking chat completion returning the full reply."""
        params = self._params(messages, model, max_tokens, temperature)
        logger.info("provider-complete model=%s", params["model"])
        try:
            completion = await self._client.chat.completions.create(**params)
        except openai.OpenAIError as exc:
            raise map_provider_error(exc) from exc

        if not getattr(completion, "choices", None):
            raise ProviderUnavailableError("No response choices received from AI")
        choice = completion.choices[0]
        usage = getattr(completion, "usage", None)
        return CompletionResult(
            message=(choice.message.content if choice.message else "") or "",
            role=(choice.message.role if choice.message else None) or "assistant",
            finish_reason=choice.finish_reason,
            usage=usage.model_dump() if hasattr(usage, "model_dump") else None,
            model=completion.model,
            id=completion.id,
        )

    async def open_stream(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> ProviderStream:
        """Open a streaming completion; connection-level failures raise here."""
        params = self._params(messages, model, max_tokens, temperature)
        logger.info("provider-stream-open model=%s history=%d", params["model"], len(messages))
        try:
            stream = await self._client.chat.completions.create(
                **params,
                stream=True,
                stream_options={"include_usage": True},
            )
        except openai.OpenAIError as exc:
            raise map_provider_error(exc) from exc
        return ProviderStream(stream, model=params["model"])


@lru_cache(maxsize=1)
def get_provider() -> ProviderClient:
    """FastAPI dependency: shared provider handle built from settings."""
    return ProviderClient(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        default_model=settings.DEFAULT_MODEL,
        default_max_tokens=settings.DEFAULT_MAX_TOKENS,
        default_temperature=settings.DEFAULT_TEMPERATURE,
        timeout_sec=settings.PROVIDER_TIMEOUT_SEC,
    )
