"""Push channel to the requesting client (server-sent events).

Review note:
- 帧格式：每帧一行 `data: <json>`，以空行结束；类型为 content / done / error。
- 通道自身从不取消上游模型流，只负责在客户端断开时触发一次 `on_closed` 回调。
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Dict, List, Optional
import asyncio
import json
import logging

logger = logging.getLogger("uvicorn.error")

_EOF = object()


class ChannelClosedError(RuntimeError):
    """Raised when sending on a channel the client already closed."""


def content_frame(text: str) -> Dict[str, Any]:
    return {"type": "content", "data": text}


def done_frame() -> Dict[str, Any]:
    return {"type": "done"}


def error_frame(message: str) -> Dict[str, Any]:
    return {"type": "error", "error": message}


def encode_frame(frame: Dict[str, Any]) -> str:
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


class ClientChannel:
    """One-directional, ordered frame channel with a one-shot close notification."""

    def __init__(self) -> None:
        self._closed = False
        self._ended = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def closed(self) -> bool:
        """True once the client has gone away."""
        return self._closed

    @property
    def ended(self) -> bool:
        """True once the server has terminated the stream (done or abort)."""
        return self._ended

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._closed:
            raise ChannelClosedError("client channel is closed")
        if self._ended:
            raise ChannelClosedError("client channel already ended")
        await self._write(frame)

    def on_closed(self, callback: Callable[[], None]) -> None:
        if self._closed:
            callback()
            return
        self._callbacks.append(callback)

    def mark_closed(self) -> None:
        """Record a client disconnect and fire the close callbacks exactly once."""
        if self._closed:
            return
        self._closed = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("channel close callback failed")

    def finish(self) -> None:
        """End the stream normally (after the last frame)."""
        if self._ended:
            return
        self._ended = True
        self._end()

    async def abort(self, message: str) -> None:
        """End the stream abnormally, reporting `message` if the client is still there."""
        if self._ended:
            return
        if not self._closed:
            await self._write(error_frame(message))
        self._ended = True
        self._end()

    async def _write(self, frame: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _end(self) -> None:
        pass


class SSEChannel(ClientChannel):
    """Queue-backed channel whose `frames()` iterator feeds a StreamingResponse."""

    def __init__(self, request: Optional[Any] = None, poll_interval: float = 0.5) -> None:
        super().__init__()
        self._request = request
        self._poll_interval = poll_interval
        self._queue: asyncio.Queue = asyncio.Queue()

    async def _write(self, frame: Dict[str, Any]) -> None:
        await self._queue.put(encode_frame(frame))

    def _end(self) -> None:
        self._queue.put_nowait(_EOF)

    async def frames(self) -> AsyncIterator[str]:
        """Response body: yields encoded frames until the stream ends."""
        drained = False
        watcher = None
        if self._request is not None:
            watcher = asyncio.create_task(self._watch_disconnect())
        try:
            while True:
                item = await self._queue.get()
                if item is _EOF:
                    drained = True
                    return
                yield item
        finally:
            if watcher is not None:
                watcher.cancel()
            if not drained:
                # 响应体被提前取消/关闭：视为客户端断开
                self.mark_closed()

    async def _watch_disconnect(self) -> None:
        while not self._closed and not self._ended:
            if await self._request.is_disconnected():
                logger.info("client-disconnected")
                self.mark_closed()
                return
            await asyncio.sleep(self._poll_interval)
