"""Time windows over which challenge progress is measured."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from config import ENGINE_TIMEZONE

from .errors import UnknownChallengeFrequency


DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)


def engine_zone() -> tzinfo:
    return ZoneInfo(ENGINE_TIMEZONE)


def localize(ts: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Attach (naive) or convert (aware) a timestamp to the engine time zone."""

    tz = tz or engine_zone()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def current_time(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz or engine_zone())


@dataclass(frozen=True)
class Window:
    frequency: str
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        ts = localize(ts, self.start.tzinfo)
        if self.frequency == DAILY:
            return ts.date() == self.start.date()
        return self.start <= ts <= self.end


def window_for(now: datetime, frequency: str) -> Window:
    """Build the inclusive window for ``frequency`` containing ``now``.

    Weeks start on Monday; a Sunday belongs to the week of the preceding
    Monday. Weekly and monthly windows end at ``now``.
    """

    now = localize(now)
    midnight = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    if frequency == DAILY:
        end = datetime.combine(now.date(), time.max, tzinfo=now.tzinfo)
        return Window(DAILY, midnight, end)
    if frequency == WEEKLY:
        start = midnight - timedelta(days=now.weekday())
        return Window(WEEKLY, start, now)
    if frequency == MONTHLY:
        start = midnight.replace(day=1)
        return Window(MONTHLY, start, now)
    raise UnknownChallengeFrequency(frequency)
