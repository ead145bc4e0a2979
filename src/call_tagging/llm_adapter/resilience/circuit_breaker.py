"""
Provider 熔断器 (3 态状态机)。

CLOSED    window_seconds 内 provider 失败 ≥ failure_threshold → OPEN
OPEN      check() 直接抛 LLMCircuitOpenError; open_timeout 后 → HALF_OPEN
HALF_OPEN 同时最多放行 success_threshold 个探测请求, 其余按 OPEN 处理;
          累计 success_threshold 次成功 → CLOSED, 任一失败 → OPEN

只统计 provider 层失败 (网络 / 非 2xx), 解析与校验失败不计入。
"""
from __future__ import annotations
import time
from collections import deque
from enum import StrEnum

from call_tagging.common.exceptions import LLMCircuitOpenError
import structlog

logger = structlog.get_logger()


class CircuitState(StrEnum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 10,
        success_threshold: int = 2,
        open_timeout: float = 120.0,
        window_seconds: float = 60.0,
        clock=time.monotonic,
    ) -> None:
        self._threshold = failure_threshold
        self._trials_needed = success_threshold
        self._cooldown = open_timeout
        self._window = window_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_times: deque[float] = deque()
        self._trial_successes = 0
        self._trials_in_flight = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._remaining() <= 0:
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    def check(self) -> None:
        state = self.state
        if state == CircuitState.OPEN:
            raise LLMCircuitOpenError(
                f"Classifier provider circuit OPEN, retry in {self._remaining():.0f}s")
        if state == CircuitState.HALF_OPEN:
            if self._trials_in_flight >= self._trials_needed:
                raise LLMCircuitOpenError(
                    f"Classifier provider circuit HALF_OPEN, "
                    f"{self._trials_in_flight} trial requests in flight")
            self._trials_in_flight += 1

    def record_success(self) -> None:
        if self._state != CircuitState.HALF_OPEN:
            return
        self._trials_in_flight = max(0, self._trials_in_flight - 1)
        self._trial_successes += 1
        if self._trial_successes >= self._trials_needed:
            self._move_to(CircuitState.CLOSED)

    def record_failure(self) -> None:
        now = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._open(now)
            return
        self._failure_times.append(now)
        self._prune(now)
        if len(self._failure_times) >= self._threshold:
            self._open(now)

    def snapshot(self) -> dict:
        self._prune(self._clock())
        return {
            "state": str(self.state),
            "recent_failures": len(self._failure_times),
            "failure_threshold": self._threshold,
            "open_timeout_s": self._cooldown,
        }

    def _remaining(self) -> float:
        return self._cooldown - (self._clock() - self._opened_at)

    def _prune(self, now: float) -> None:
        while self._failure_times and now - self._failure_times[0] >= self._window:
            self._failure_times.popleft()

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        logger.error("circuit_opened",
                     failures=len(self._failure_times), threshold=self._threshold,
                     cooldown_s=self._cooldown)

    def _move_to(self, state: CircuitState) -> None:
        self._state = state
        if state == CircuitState.HALF_OPEN:
            self._trial_successes = 0
            self._trials_in_flight = 0
        elif state == CircuitState.CLOSED:
            self._failure_times.clear()
        logger.info("circuit_state_changed", state=str(state))
