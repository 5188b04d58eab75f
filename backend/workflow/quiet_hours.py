"""Store-local quiet hours.

The window is half-open, ``[start, end)``, in the store's timezone and
may wrap midnight (21:00-08:00). Actions that come due inside it are
pushed to the window's end, never dropped.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger(__name__)


def parse_clock(value: str) -> time:
    hours, _, minutes = value.strip().partition(":")
    return time(int(hours), int(minutes or 0))


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown store timezone, using UTC", timezone=name)
        return ZoneInfo("UTC")


@dataclass(frozen=True)
class QuietWindow:
    start: time
    end: time
    tz: ZoneInfo

    @classmethod
    def for_store(cls, store, default_start: str = "21:00", default_end: str = "08:00") -> "QuietWindow":
        start = (store.quiet_hours_start if store else None) or default_start
        end = (store.quiet_hours_end if store else None) or default_end
        return cls(parse_clock(start), parse_clock(end), _zone(store.timezone if store else None))

    def _local(self, now: datetime) -> datetime:
        """``now`` is naive UTC."""
        return now.replace(tzinfo=timezone.utc).astimezone(self.tz)

    def contains(self, now: datetime) -> bool:
        t = self._local(now).time()
        if self.start == self.end:
            return False
        if self.start < self.end:
            return self.start <= t < self.end
        return t >= self.start or t < self.end

    def window_end(self, now: datetime) -> datetime:
        """Naive-UTC moment the window containing ``now`` closes."""
        local = self._local(now)
        end_date = local.date()
        if self.start > self.end and local.time() >= self.start:
            end_date += timedelta(days=1)
        local_end = datetime.combine(end_date, self.end, tzinfo=self.tz)
        return local_end.astimezone(timezone.utc).replace(tzinfo=None)
