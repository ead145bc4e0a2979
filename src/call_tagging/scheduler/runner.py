"""
Pass 调度。

- 每 interval 触发 tick: 窗口外 → 跳过; 已有 pass 在跑 → 跳过; 否则跑一个完整 pass
- RunGuard 单槽互斥, 在 finally 中释放 (pass 异常也释放)
- trigger_now: 手动触发, 不检查时间窗, 仍受 RunGuard 约束

RunGuard 仅进程内有效; 多实例部署需外部互斥。
"""
from __future__ import annotations
import asyncio
from datetime import datetime, timezone
from typing import Protocol

from call_tagging.common.exceptions import RunInProgressError
from call_tagging.pipeline.ir import PassSummary
from call_tagging.scheduler.window import RunWindow
import structlog

logger = structlog.get_logger()


class PassRunner(Protocol):
    async def run_pass(self) -> PassSummary: ...


class RunGuard:
    """单槽互斥。try_acquire 不阻塞。"""

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


class PassScheduler:
    def __init__(
        self,
        orchestrator: PassRunner,
        guard: RunGuard | None = None,
        window: RunWindow | None = None,
        interval_seconds: float = 900.0,
        enabled: bool = True,
        circuit=None,
        clock=None,
    ) -> None:
        self._orchestrator = orchestrator
        self._circuit = circuit
        self._guard = guard or RunGuard()
        self._window = window
        self._interval = interval_seconds
        self._enabled = enabled
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._loop_task: asyncio.Task | None = None
        self._manual_task: asyncio.Task | None = None
        self._running = False

        self.last_started_at: datetime | None = None
        self.last_finished_at: datetime | None = None
        self.last_summary: PassSummary | None = None
        self.last_error: str | None = None

    @property
    def guard(self) -> RunGuard:
        return self._guard

    @property
    def enabled(self) -> bool:
        return self._enabled

    def in_window(self) -> bool:
        return self._window is None or self._window.contains(self._clock())

    async def tick(self) -> PassSummary | None:
        """一次定时触发。返回本次 pass 统计, 未执行则 None。"""
        if not self.in_window():
            logger.debug("tick_outside_window",
                         window=self._window.describe() if self._window else None)
            return None
        if not self._guard.try_acquire():
            logger.warning("tick_skipped_running")
            return None
        return await self._execute(trigger="schedule")

    async def trigger_now(self) -> datetime:
        """手动触发, 后台执行。已有 pass 在跑 → RunInProgressError。"""
        if not self._guard.try_acquire():
            raise RunInProgressError("A classification pass is already running")
        started = self._clock()
        self._manual_task = asyncio.create_task(self._execute(trigger="manual"))
        return started

    async def wait_manual(self) -> PassSummary | None:
        if self._manual_task is None:
            return None
        return await self._manual_task

    async def _execute(self, trigger: str) -> PassSummary | None:
        """调用方已持有 guard。"""
        self.last_started_at = self._clock()
        logger.info("pass_triggered", trigger=trigger)
        try:
            summary = await self._orchestrator.run_pass()
            self.last_summary = summary
            self.last_error = None
            return summary
        except Exception as e:
            self.last_error = f"{getattr(e, 'code', type(e).__name__)}: {e}"
            logger.exception("scheduled_pass_failed", trigger=trigger, error=str(e))
            return None
        finally:
            self.last_finished_at = self._clock()
            self._guard.release()

    async def start(self) -> None:
        if not self._enabled:
            logger.info("scheduler_disabled")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._loop())
        logger.info("scheduler_started",
                    interval_s=self._interval,
                    window=self._window.describe() if self._window else "always")

    async def stop(self) -> None:
        self._running = False
        tasks = [t for t in (self._loop_task, self._manual_task) if t and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._manual_task = None
        logger.info("scheduler_stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("scheduler_tick_error", error=str(e))

    def status(self) -> dict:
        return {
            "running": self._guard.held,
            "schedule_enabled": self._enabled,
            "in_window": self.in_window(),
            "last_started_at": self.last_started_at,
            "last_finished_at": self.last_finished_at,
            "last_error": self.last_error,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
            "circuit": self._circuit.snapshot() if self._circuit else {},
        }
