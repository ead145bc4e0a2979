"""
运行时间窗。

按指定时区判断: 星期在允许集合内, 且时刻在 [start, end] 内 (两端含)。
start > end 表示跨午夜, 例如 21:00–06:30。星期按当前本地日期判断。
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

ALL_WEEKDAYS = frozenset(range(7))


def parse_hhmm(value: str) -> time:
    hour, _, minute = value.strip().partition(":")
    return time(int(hour), int(minute or 0))


def parse_weekdays(value: str) -> frozenset[int]:
    days = {int(p) for p in value.split(",") if p.strip()}
    if not days <= ALL_WEEKDAYS:
        raise ValueError(f"Weekday out of range 0-6: {value!r}")
    return frozenset(days)


@dataclass(frozen=True)
class RunWindow:
    tz: str = "Asia/Kolkata"
    start: time = time(21, 0)
    end: time = time(6, 30)
    weekdays: frozenset[int] = field(default=frozenset({0, 1, 2, 3, 4}))

    @classmethod
    def from_settings(cls, s) -> RunWindow:
        return cls(
            tz=s.schedule_timezone,
            start=parse_hhmm(s.schedule_window_start),
            end=parse_hhmm(s.schedule_window_end),
            weekdays=parse_weekdays(s.schedule_weekdays),
        )

    def contains(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(ZoneInfo(self.tz))
        if local.weekday() not in self.weekdays:
            return False

        t = local.time().replace(second=0, microsecond=0)
        if self.start <= self.end:
            return self.start <= t <= self.end
        return t >= self.start or t <= self.end

    def describe(self) -> str:
        return (f"{self.start:%H:%M}-{self.end:%H:%M} {self.tz} "
                f"weekdays={','.join(str(d) for d in sorted(self.weekdays))}")
