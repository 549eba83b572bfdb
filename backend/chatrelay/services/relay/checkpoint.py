"""Fixed-interval checkpoint timer for relay sessions."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional
import asyncio
import logging

logger = logging.getLogger("uvicorn.error")


class CheckpointScheduler:
    """Repeating timer that awaits `on_tick` every `interval` seconds while armed.

    A tick that raises is logged and dropped; the next tick or the relay's final
    flush supersedes it. `disarm()` never interrupts a tick that is already
    running, only the sleep between ticks.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self._armed = False
        self._in_tick = False
        self.ticks = 0

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self, interval: float, on_tick: Callable[[], Awaitable[None]]) -> None:
        if interval <= 0:
            raise ValueError("checkpoint interval must be positive")
        if self._armed:
            raise RuntimeError("checkpoint scheduler already armed")
        self._armed = True
        self._task = asyncio.create_task(self._run(interval, on_tick))

    def disarm(self) -> None:
        if not self._armed:
            return
        self._armed = False
        if self._task is not None and not self._task.done() and not self._in_tick:
            self._task.cancel()

    async def join(self) -> None:
        """Wait for the timer task to exit (call after `disarm`)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        finally:
            self._task = None

    async def _run(self, interval: float, on_tick: Callable[[], Awaitable[None]]) -> None:
        while self._armed:
            await asyncio.sleep(interval)
            if not self._armed:
                break
            self._in_tick = True
            try:
                self.ticks += 1
                await on_tick()
            except Exception:
                logger.warning("checkpoint-tick failed session=%s", self.name, exc_info=True)
            finally:
                self._in_tick = False
