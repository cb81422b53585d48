"""
Values -- immutable, self-validating domain value objects.

Responsibility:
    Money coercion, the Sunday-first weekday numbering used by tariff
    rules, the ``DaySet`` bitset and the ``TimeInterval`` a quote prices.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by every
    other domain module.

Invariants enforced:
    - Money is ``Decimal`` quantized to 2 places with ROUND_HALF_UP.
      Binary floats are rejected at this boundary.
    - Weekdays are numbered 0..6 with 0 = Sunday.
    - A TimeInterval never ends before it starts and is timezone-aware.

Failure modes:
    - ValidationError on floats, non-numeric strings, out-of-range
      weekdays, naive datetimes, reversed intervals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import IntEnum
from typing import Iterable, Iterator
from zoneinfo import ZoneInfo

from parking_kernel.exceptions import ValidationError

MONEY_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Calendar dates (day splitting, discount validity) are local to this zone
DEFAULT_TIMEZONE = ZoneInfo("America/Santiago")


def to_money(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """
    Coerce ``value`` to a 2-place Decimal.

    Accepts Decimal, int and numeric strings.  Floats (and bools) are
    refused so binary rounding never enters a monetary path.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(field, "floats are not accepted for money", value)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value)
        except InvalidOperation:
            raise ValidationError(field, "not a number", value) from None
    else:
        raise ValidationError(field, f"unsupported type {type(value).__name__}", value)
    if not amount.is_finite():
        raise ValidationError(field, "must be finite", value)
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def optional_money(value: Decimal | int | str | None, field: str) -> Decimal | None:
    return None if value is None else to_money(value, field)


def require_non_negative(amount: Decimal, field: str) -> Decimal:
    if amount < 0:
        raise ValidationError(field, "must not be negative", amount)
    return amount


class DayOfWeek(IntEnum):
    """Weekday numbering used by tariff rules (0 = Sunday)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, day: date) -> "DayOfWeek":
        return cls(day.isoweekday() % 7)


@dataclass(frozen=True, slots=True)
class DaySet:
    """
    Set of weekdays stored as a 7-bit mask (bit n = DayOfWeek n).

    Guarantees:
        - Immutable and hashable.
        - ``mask`` is within 0..127.
    """

    mask: int

    def __post_init__(self) -> None:
        if isinstance(self.mask, bool) or not isinstance(self.mask, int):
            raise ValidationError("days_of_week", "mask must be an int", self.mask)
        if not 0 <= self.mask <= 0b1111111:
            raise ValidationError("days_of_week", "mask out of range", self.mask)

    @classmethod
    def of(cls, days: Iterable[int]) -> "DaySet":
        mask = 0
        for d in days:
            if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6:
                raise ValidationError("days_of_week", "weekday must be 0..6", d)
            mask |= 1 << d
        return cls(mask)

    @classmethod
    def all_days(cls) -> "DaySet":
        return cls(0b1111111)

    def __contains__(self, day: object) -> bool:
        if isinstance(day, date):
            day = DayOfWeek.of(day)
        if not isinstance(day, int) or not 0 <= day <= 6:
            return False
        return bool(self.mask & (1 << day))

    def __iter__(self) -> Iterator[DayOfWeek]:
        for d in range(7):
            if self.mask & (1 << d):
                yield DayOfWeek(d)

    def __len__(self) -> int:
        return bin(self.mask).count("1")

    def to_list(self) -> list[int]:
        return [int(d) for d in self]


@dataclass(frozen=True, slots=True)
class TimeInterval:
    """
    Half-open instant range ``[start, end)`` with aware endpoints.

    ``duration_minutes`` rounds partial minutes up.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("interval", "datetimes must be timezone-aware")
        if self.end < self.start:
            raise ValidationError(
                "ended_at", "must not be before started_at", self.end
            )

    @property
    def seconds(self) -> int:
        return int((self.end - self.start).total_seconds())

    @property
    def duration_minutes(self) -> int:
        return math.ceil((self.end - self.start).total_seconds() / 60)


@dataclass(frozen=True, slots=True)
class DaySlice:
    """Portion of an interval falling on one local calendar day."""

    day: date
    weekday: DayOfWeek
    start_time: time
    end_time: time
    minutes: int


def split_by_local_day(interval: TimeInterval, tz: tzinfo) -> list[DaySlice]:
    """
    Partition ``interval`` at local midnights.

    Per-slice minutes are assigned so that they always add up to
    ``interval.duration_minutes``: each boundary sits at the floor of its
    offset in minutes, the last slice absorbs the rounding.  Slices that
    end up with zero minutes are dropped.
    """
    total = interval.duration_minutes
    if total == 0:
        return []
    start_utc = interval.start.astimezone(timezone.utc)
    end_utc = interval.end.astimezone(timezone.utc)
    local_start = start_utc.astimezone(tz)

    # Same-tzinfo aware arithmetic ignores DST; compare in UTC.
    boundaries: list[datetime] = [start_utc]
    day = local_start.date()
    while True:
        day = day + timedelta(days=1)
        midnight = datetime.combine(day, time.min, tzinfo=tz).astimezone(
            timezone.utc
        )
        if midnight >= end_utc:
            break
        boundaries.append(midnight)
    boundaries.append(end_utc)

    offsets = [
        math.floor((b - start_utc).total_seconds() / 60) for b in boundaries[:-1]
    ]
    offsets.append(total)

    slices: list[DaySlice] = []
    for i in range(len(boundaries) - 1):
        begin = boundaries[i].astimezone(tz)
        finish = boundaries[i + 1].astimezone(tz)
        minutes = offsets[i + 1] - offsets[i]
        if minutes <= 0:
            continue
        if finish.date() != begin.date():
            end_t = time.max
        else:
            end_t = finish.time()
        slices.append(
            DaySlice(
                day=begin.date(),
                weekday=DayOfWeek.of(begin.date()),
                start_time=begin.time(),
                end_time=end_t,
                minutes=minutes,
            )
        )
    return slices
