"""Grafana-style time ranges.

``from``/``to`` accept the same forms as the Grafana URL: ``now``, relative
offsets such as ``now-6h`` or ``now-7d/d`` and epoch milliseconds.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

DEFAULT_FROM = "now-1h"
DEFAULT_TO = "now"

_RELATIVE = re.compile(r"^now(?:(?P<sign>[+-])(?P<amount>\d+)(?P<unit>[smhdwMy]))?(?:/(?P<round>[smhdwMy]))?$")

_FIXED_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _shift(moment: datetime, amount: int, unit: str) -> datetime:
    if unit == "M":
        return _add_months(moment, amount)
    if unit == "y":
        return _add_months(moment, amount * 12)
    return moment + amount * _FIXED_UNITS[unit]


def _start_of(moment: datetime, unit: str) -> datetime:
    if unit == "s":
        return moment.replace(microsecond=0)
    if unit == "m":
        return moment.replace(second=0, microsecond=0)
    if unit == "h":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "d":
        return day
    if unit == "w":
        return day - timedelta(days=day.weekday())
    if unit == "M":
        return day.replace(day=1)
    return day.replace(month=1, day=1)


def parse_time(value: str, now: datetime, *, upper: bool = False) -> datetime:
    """Resolve one end of a time range to an aware UTC datetime.

    ``upper`` rounds ``/unit`` expressions to the end of the unit instead of the start.
    """
    value = value.strip()
    if value.isdigit():
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)

    match = _RELATIVE.match(value)
    if not match:
        raise ValueError(f"unsupported time expression: {value!r}")

    moment = now
    if match.group("unit"):
        amount = int(match.group("amount"))
        if match.group("sign") == "-":
            amount = -amount
        moment = _shift(moment, amount, match.group("unit"))

    rounding = match.group("round")
    if rounding:
        moment = _start_of(moment, rounding)
        if upper:
            moment = _shift(moment, 1, rounding) - timedelta(milliseconds=1)
    return moment


@dataclass(frozen=True)
class TimeRange:
    """A dashboard time range as passed in the request."""

    from_: str = DEFAULT_FROM
    to: str = DEFAULT_TO
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False, compare=False)

    @classmethod
    def create(cls, from_: str | None = None, to: str | None = None) -> TimeRange:
        """Build a range, defaulting to the last hour. Raises ValueError on bad input."""
        time_range = cls(from_ or DEFAULT_FROM, to or DEFAULT_TO)
        time_range.start()
        time_range.end()
        return time_range

    def start(self) -> datetime:
        return parse_time(self.from_, self.clock())

    def end(self) -> datetime:
        return parse_time(self.to, self.clock(), upper=True)

    def start_unix(self) -> int:
        return int(self.start().timestamp())

    def end_unix(self) -> int:
        return int(self.end().timestamp())

    def from_formatted(self) -> str:
        return self.start().strftime("%a %b %d %H:%M:%S %Z %Y")

    def to_formatted(self) -> str:
        return self.end().strftime("%a %b %d %H:%M:%S %Z %Y")

    def __str__(self) -> str:
        return f"{self.from_} to {self.to}"
