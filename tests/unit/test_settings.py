"""Settings 测试: 默认值 / 环境变量覆盖。"""
from datetime import date

from call_tagging.settings import Settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("BATCH_SIZE", raising=False)
    s = Settings(_env_file=None)
    assert s.batch_size == 5
    assert s.pass_ceiling == 5000
    assert s.schedule_timezone == "Asia/Kolkata"
    assert (s.schedule_window_start, s.schedule_window_end) == ("21:00", "06:30")
    assert s.classify_max_attempts == 0


def test_env_overrides_and_unknown_keys_ignored(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "2")
    monkeypatch.setenv("CLASSIFY_SINCE", "2026-02-01")
    monkeypatch.setenv("WORKER_ID", "worker-7")
    s = Settings(_env_file=None)
    assert s.batch_size == 2
    assert s.classify_since == date(2026, 2, 1)
    assert "worker_id" not in s.model_dump()
