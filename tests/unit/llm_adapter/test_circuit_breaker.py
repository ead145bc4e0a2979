"""CircuitBreaker 单元测试。"""
import pytest
from call_tagging.llm_adapter.resilience.circuit_breaker import CircuitBreaker, CircuitState
from call_tagging.common.exceptions import LLMCircuitOpenError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_initial_state_closed():
    cb = CircuitBreaker()
    assert cb.state == CircuitState.CLOSED
    cb.check()


def test_trip_after_failures():
    cb = CircuitBreaker(failure_threshold=3, open_timeout=9999)
    for _ in range(3):
        cb.record_failure()
    assert cb.state == CircuitState.OPEN


def test_check_raises_when_open():
    cb = CircuitBreaker(failure_threshold=2, open_timeout=9999)
    cb.record_failure()
    cb.record_failure()
    with pytest.raises(LLMCircuitOpenError):
        cb.check()


def test_failures_outside_window_do_not_trip():
    clock = FakeClock()
    cb = CircuitBreaker(failure_threshold=3, window_seconds=60, clock=clock)
    cb.record_failure()
    cb.record_failure()
    clock.now += 120
    cb.record_failure()
    assert cb.state == CircuitState.CLOSED


def test_half_open_then_closed():
    clock = FakeClock()
    cb = CircuitBreaker(failure_threshold=2, success_threshold=2, open_timeout=30, clock=clock)
    cb.record_failure()
    cb.record_failure()
    assert cb.state == CircuitState.OPEN

    clock.now += 31
    assert cb.state == CircuitState.HALF_OPEN
    cb.record_success()
    assert cb.state == CircuitState.HALF_OPEN
    cb.record_success()
    assert cb.state == CircuitState.CLOSED


def test_failure_in_half_open_trips_again():
    clock = FakeClock()
    cb = CircuitBreaker(failure_threshold=2, open_timeout=30, clock=clock)
    cb.record_failure()
    cb.record_failure()
    clock.now += 31
    assert cb.state == CircuitState.HALF_OPEN
    cb.record_failure()
    assert cb.state == CircuitState.OPEN


def test_snapshot():
    cb = CircuitBreaker(failure_threshold=5)
    cb.record_failure()
    snap = cb.snapshot()
    assert snap["state"] == "CLOSED"
    assert snap["recent_failures"] == 1
    assert snap["failure_threshold"] == 5


def _half_open(clock, trials=2) -> CircuitBreaker:
    cb = CircuitBreaker(failure_threshold=1, success_threshold=trials, open_timeout=30, clock=clock)
    cb.record_failure()
    clock.now += 31
    assert cb.state == CircuitState.HALF_OPEN
    return cb


def test_half_open_admits_limited_trials():
    clock = FakeClock()
    cb = _half_open(clock, trials=2)
    cb.check()
    cb.check()
    with pytest.raises(LLMCircuitOpenError, match="HALF_OPEN"):
        cb.check()

    # 一个试探请求成功 → 释放一个名额
    cb.record_success()
    assert cb.state == CircuitState.HALF_OPEN
    cb.check()
    with pytest.raises(LLMCircuitOpenError):
        cb.check()


def test_trial_slots_reset_on_next_half_open():
    clock = FakeClock()
    cb = _half_open(clock, trials=1)
    cb.check()
    cb.record_failure()
    assert cb.state == CircuitState.OPEN

    clock.now += 31
    assert cb.state == CircuitState.HALF_OPEN
    cb.check()


def test_closed_after_trials_admits_everyone():
    clock = FakeClock()
    cb = _half_open(clock, trials=2)
    for _ in range(2):
        cb.check()
        cb.record_success()
    assert cb.state == CircuitState.CLOSED
    for _ in range(5):
        cb.check()
