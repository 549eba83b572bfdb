"""Streaming completion relay.

Review note:
- 一次流式请求对应一个 `RelaySession`：缓冲区、已落库快照、定时器、取消标记都归它独有。
- 结束路径（正常结束 / 客户端断开 / 主动停止 / 超时 / 模型服务报错）全部汇入
  `_finalize`，且只执行一次：停定时器 -> 释放上游 -> 最后一次落库 -> 发送 done 或错误帧。
- 转发循环在后台任务中运行，不依赖响应体迭代器：客户端断开导致响应被取消时，
  收尾落库仍然能完整执行。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Set
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatrelay.config import settings
from chatrelay.crud.conversation import conversation_crud, message_crud
from chatrelay.crud.model_catalog import model_catalog_crud
from chatrelay.schemas.chat import StreamRequest
from chatrelay.services.errors import (
    ConflictError,
    NotFoundError,
    ProviderError,
    StreamInterruptedError,
)
from chatrelay.services.relay.channel import ChannelClosedError, ClientChannel, content_frame, done_frame
from chatrelay.services.relay.checkpoint import CheckpointScheduler
from chatrelay.services.relay.provider import ProviderStream

logger = logging.getLogger("uvicorn.error")

# 正在进行的流式回复（会话ID -> RelaySession），用于停止功能与并发保护
active_relays: Dict[str, Optional["RelaySession"]] = {}
# 持有后台任务的强引用，避免被垃圾回收
_relay_tasks: Set[asyncio.Task] = set()


class RelayState(str, Enum):
    PREPARING = "preparing"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    FAILED = "failed"


class RelayOutcome(str, Enum):
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    STOPPED = "stopped"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class RelaySession:
    """In-memory state of one in-flight streaming reply."""

    def __init__(
        self,
        message_id: str,
        conversation_id: str,
        user_id: str,
        model: str,
        history: List[Dict[str, str]],
        session_factory: async_sessionmaker,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self.message_id = message_id
        self.conversation_id = conversation_id
        self.user_id = user_id
        self.model = model
        self.history = history
        self.max_tokens = max_tokens
        self.temperature = temperature

        self.buffer: List[str] = []
        self.persisted = ""
        self.cancelled = False
        self.stop_requested = False
        self.frames_sent = 0
        self.writes = 0
        self.outcome: Optional[RelayOutcome] = None
        self.error: Optional[BaseException] = None
        self.stream: Optional[ProviderStream] = None
        self.scheduler = CheckpointScheduler(name=message_id)
        self.states: List[RelayState] = [RelayState.PREPARING]

        self._session_factory = session_factory
        self._write_lock = asyncio.Lock()
        self._interrupt = asyncio.Event()
        self._stream_released = False
        self._finalized = False

    @property
    def state(self) -> RelayState:
        return self.states[-1]

    @property
    def content(self) -> str:
        return "".join(self.buffer)

    @property
    def dirty(self) -> bool:
        return self.content != self.persisted

    @property
    def closed(self) -> bool:
        return self.state == RelayState.CLOSED

    def transition(self, state: RelayState) -> None:
        if self.state != state:
            self.states.append(state)

    def append(self, fragment: str) -> None:
        self.buffer.append(fragment)

    def interrupt(self) -> None:
        """Set the cancellation flag (client disconnect or explicit stop)."""
        if self.state in (RelayState.FINALIZING, RelayState.CLOSED):
            return
        self.cancelled = True
        self._interrupt.set()

    def request_stop(self) -> None:
        self.stop_requested = True
        self.interrupt()

    async def checkpoint(self) -> None:
        """Timer tick: persist the buffer if it changed since the last write."""
        if self.closed or not self.scheduler.armed:
            return
        await self._persist()

    async def flush(self) -> bool:
        return await self._persist()

    async def _persist(self) -> bool:
        async with self._write_lock:
            if self.closed:
                return False
            content = self.content
            if content == self.persisted:
                return False
            async with self._session_factory() as db:
                await message_crud.update_content(db, self.message_id, content)
            self.persisted = content
            self.writes += 1
            return True


async def _next_fragment(stream: Any) -> Optional[str]:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


async def _cancel_task(task: asyncio.Task) -> None:
    if task.done():
        if not task.cancelled():
            # 结果已被丢弃，取出异常避免 "exception was never retrieved"
            task.exception()
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("discarded fragment task error", exc_info=True)


class RelayCoordinator:
    """Drives provider fragments to the client while checkpointing them to storage."""

    def __init__(
        self,
        provider: Any,
        session_factory: async_sessionmaker,
        checkpoint_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._provider = provider
        self._session_factory = session_factory
        if checkpoint_interval is None:
            checkpoint_interval = settings.RELAY_CHECKPOINT_INTERVAL_SEC
        if timeout is None:
            timeout = settings.RELAY_TIMEOUT_SEC
        if checkpoint_interval <= 0 or timeout <= 0:
            raise ValueError("checkpoint interval and timeout must be positive")
        self._checkpoint_interval = checkpoint_interval
        self._timeout = timeout

    async def prepare(
        self,
        db: AsyncSession,
        user_id: str,
        chat_id: str,
        request: StreamRequest,
    ) -> RelaySession:
        """Validate the request, create the empty assistant placeholder and load history."""
        await conversation_crud.get_owned(db, chat_id, user_id)
        entry = await model_catalog_crud.get_by_value(db, request.model)
        if not entry:
            raise NotFoundError("Model not found")
        if chat_id in active_relays:
            raise ConflictError("A reply is already streaming for this chat")
        active_relays[chat_id] = None

        try:
            placeholder = await message_crud.create(
                db,
                chat_id,
                "assistant",
                "",
                entry.id,
                temperature=request.temperature,
            )
            session = RelaySession(
                message_id=placeholder.id,
                conversation_id=chat_id,
                user_id=user_id,
                model=entry.value,
                history=[],
                session_factory=self._session_factory,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
            active_relays[chat_id] = session
            await conversation_crud.touch(db, chat_id)
            messages = await message_crud.list_for_conversation(db, chat_id)
        except BaseException:
            active_relays.pop(chat_id, None)
            raise

        # 跳过占位消息以及此前失败留下的空 assistant 消息
        session.history = [
            {"role": m.role, "content": m.content}
            for m in messages
            if m.id != placeholder.id and m.content
        ]
        return session

    async def open(self, session: RelaySession) -> None:
        """Open the provider stream; on failure finalize and re-raise."""
        try:
            session.stream = await self._provider.open_stream(
                session.history,
                model=session.model,
                max_tokens=session.max_tokens,
                temperature=session.temperature,
            )
        except BaseException as exc:
            # 任何失败（包括取消）都先收尾再抛出
            session.error = exc
            session.transition(RelayState.FAILED)
            logger.warning(
                "relay-open-failed chat=%s message=%s error=%s",
                session.conversation_id,
                session.message_id,
                getattr(exc, "message", None) or repr(exc),
            )
            await self._finalize(session, RelayOutcome.FAILED, None)
            raise
        session.transition(RelayState.STREAMING)
        logger.info("relay-streaming chat=%s message=%s model=%s", session.conversation_id, session.message_id, session.model)

    def start(self, session: RelaySession, channel: ClientChannel) -> asyncio.Task:
        """Run the relay as a background task that outlives the response iterator."""
        task = asyncio.create_task(self.run(session, channel))
        _relay_tasks.add(task)
        task.add_done_callback(_relay_tasks.discard)
        return task

    async def run(self, session: RelaySession, channel: ClientChannel) -> RelayOutcome:
        if session.stream is None:
            try:
                await self.open(session)
            except ProviderError as exc:
                await channel.abort(exc.message)
                return RelayOutcome.FAILED
            except asyncio.CancelledError:
                channel.finish()
                raise
            except Exception:
                await channel.abort("AI service error")
                return RelayOutcome.FAILED

        channel.on_closed(session.interrupt)
        session.scheduler.arm(self._checkpoint_interval, session.checkpoint)

        try:
            outcome = await self._pump(session, channel)
        except ProviderError as exc:
            session.error = exc
            session.transition(RelayState.FAILED)
            logger.exception("relay-provider-error chat=%s message=%s", session.conversation_id, session.message_id)
            outcome = RelayOutcome.FAILED
        except asyncio.CancelledError:
            session.error = StreamInterruptedError("relay task cancelled")
            session.transition(RelayState.FAILED)
            await self._finalize(session, RelayOutcome.FAILED, channel)
            raise
        except Exception as exc:
            session.error = exc
            session.transition(RelayState.FAILED)
            logger.exception("relay-error chat=%s message=%s", session.conversation_id, session.message_id)
            outcome = RelayOutcome.FAILED

        await self._finalize(session, outcome, channel)
        return outcome

    async def _pump(self, session: RelaySession, channel: ClientChannel) -> RelayOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        interrupted = asyncio.create_task(session._interrupt.wait())
        try:
            while True:
                if session.cancelled:
                    return await self._interrupted(session, channel)
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return RelayOutcome.TIMED_OUT

                pending = asyncio.create_task(_next_fragment(session.stream))
                done, _ = await asyncio.wait(
                    {pending, interrupted},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if pending not in done or session.cancelled:
                    # 断开先于片段被处理：丢弃该片段
                    await _cancel_task(pending)
                    if session.cancelled:
                        return await self._interrupted(session, channel)
                    return RelayOutcome.TIMED_OUT

                fragment = pending.result()
                if fragment is None:
                    return RelayOutcome.COMPLETED

                session.append(fragment)
                try:
                    await channel.send(content_frame(fragment))
                except ChannelClosedError:
                    return await self._interrupted(session, channel)
                session.frames_sent += 1
        finally:
            interrupted.cancel()

    async def _interrupted(self, session: RelaySession, channel: ClientChannel) -> RelayOutcome:
        await self._release_stream(session)
        if channel.closed:
            session.error = StreamInterruptedError("client disconnected")
            return RelayOutcome.DISCONNECTED
        return RelayOutcome.STOPPED

    async def _release_stream(self, session: RelaySession) -> None:
        if session._stream_released or session.stream is None:
            return
        session._stream_released = True
        try:
            await session.stream.cancel()
        except Exception:
            logger.warning("relay-release failed message=%s", session.message_id, exc_info=True)

    async def _finalize(
        self,
        session: RelaySession,
        outcome: RelayOutcome,
        channel: Optional[ClientChannel],
    ) -> None:
        if session._finalized:
            return
        session._finalized = True
        session.outcome = outcome
        session.transition(RelayState.FINALIZING)

        session.scheduler.disarm()
        await session.scheduler.join()

        if outcome != RelayOutcome.COMPLETED:
            await self._release_stream(session)

        if session.dirty:
            try:
                await session.flush()
            except Exception:
                logger.exception("relay-final-flush failed message=%s", session.message_id)

        if channel is not None:
            await self._end_channel(session, outcome, channel)

        session.transition(RelayState.CLOSED)
        if active_relays.get(session.conversation_id) is session:
            active_relays.pop(session.conversation_id, None)
        logger.info(
            "relay-closed chat=%s message=%s outcome=%s fragments=%d persisted_len=%d writes=%d",
            session.conversation_id,
            session.message_id,
            outcome.value,
            session.frames_sent,
            len(session.persisted),
            session.writes,
        )

    async def _end_channel(self, session: RelaySession, outcome: RelayOutcome, channel: ClientChannel) -> None:
        if channel.closed:
            channel.finish()
            return
        try:
            if outcome in (RelayOutcome.COMPLETED, RelayOutcome.STOPPED):
                await channel.send(done_frame())
                channel.finish()
            elif outcome == RelayOutcome.TIMED_OUT:
                await channel.abort("Response timed out")
            else:
                error = session.error
                await channel.abort(getattr(error, "message", None) or "AI service error")
        except ChannelClosedError:
            channel.finish()


def request_stop(chat_id: str, user_id: str) -> bool:
    """Ask the in-flight relay on `chat_id` to stop; False if none is running for the caller."""
    session = active_relays.get(chat_id)
    if session is None or session.user_id != user_id:
        return False
    session.request_stop()
    return True
