"""
Pricing -- tariff rules and the rule-set evaluation engine.

Responsibility:
    Turn an elapsed ``TimeInterval`` into a gross amount using a pricing
    profile's rules.  The interval is split at local midnights and every
    calendar day is priced on its own, then summed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``evaluate`` takes
    no locks and is safe to call from many threads at once.

Algorithm (per local calendar day):
    1. Keep active rules whose weekday set contains the day and whose
       time-of-day window (inclusive) overlaps the day's slice.
    2. Stable-sort by (priority, min_duration_minutes).
    3. FIXED rules contribute ``fixed_price`` once when the day's minutes
       fall inside [min_duration, max_duration].
    4. HOURLY rules contribute ``price_per_minute`` times the minutes inside
       [min_duration, max_duration).  With ``min_amount_is_base`` the base
       window is charged ``min_amount`` flat and only minutes past it accrue
       the rate.  Otherwise ``min_amount`` is a floor on the contribution.
    5. The day's subtotal is capped at the lowest ``daily_max_amount`` among
       the contributing rules.

Failure modes:
    - ValidationError when a rule is malformed (at construction).
    - A day with minutes but no matching rule contributes zero and adds a
      ``NO_MATCHING_RULE`` warning.  It is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Sequence

from parking_kernel.domain.values import (
    DEFAULT_TIMEZONE,
    ZERO,
    DaySet,
    DaySlice,
    TimeInterval,
    optional_money,
    require_non_negative,
    split_by_local_day,
    to_money,
)
from parking_kernel.exceptions import ValidationError
from parking_kernel.logging_config import get_logger

logger = get_logger("domain.pricing")


class RuleType(str, Enum):
    FIXED = "FIXED"
    HOURLY = "HOURLY"


def _parse_time(value: Any, field_name: str) -> time | None:
    if value is None or isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value)
        except ValueError:
            raise ValidationError(field_name, "not an HH:MM[:SS] time", value) from None
    raise ValidationError(field_name, "not a time", value)


def _parse_datetime(value: Any, field_name: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(field_name, "not an ISO datetime", value) from None
    if not isinstance(value, datetime):
        raise ValidationError(field_name, "not a datetime", value)
    if value.tzinfo is None:
        raise ValidationError(field_name, "must be timezone-aware", value)
    return value


@dataclass(frozen=True)
class PricingRule:
    """
    One tariff line of a pricing profile.

    Contract:
        Immutable; validated and normalized on construction.  Money fields
        are 2-place Decimals, ``days_of_week`` is a ``DaySet``, time fields
        are ``datetime.time`` (strings and lists are accepted and converted).

    Guarantees:
        - FIXED rules carry ``fixed_price``; HOURLY rules carry
          ``price_per_minute``.
        - ``max_duration_minutes`` is never below ``min_duration_minutes``.
        - ``min_amount_is_base`` implies ``min_amount`` is set.
    """

    id: str
    name: str
    rule_type: RuleType
    min_duration_minutes: int = 0
    max_duration_minutes: int | None = None
    price_per_minute: Decimal | None = None
    fixed_price: Decimal | None = None
    daily_max_amount: Decimal | None = None
    min_amount: Decimal | None = None
    min_amount_is_base: bool = False
    days_of_week: DaySet = field(default_factory=DaySet.all_days)
    start_time: time | None = None
    end_time: time | None = None
    priority: int = 0
    is_active: bool = True

    def __post_init__(self) -> None:
        try:
            rule_type = RuleType(self.rule_type)
        except ValueError:
            raise ValidationError("rule_type", "unknown rule type", self.rule_type) from None
        object.__setattr__(self, "rule_type", rule_type)

        if not isinstance(self.min_duration_minutes, int) or self.min_duration_minutes < 0:
            raise ValidationError(
                "min_duration_minutes", "must be a non-negative int",
                self.min_duration_minutes,
            )
        if self.max_duration_minutes is not None:
            if not isinstance(self.max_duration_minutes, int):
                raise ValidationError(
                    "max_duration_minutes", "must be an int", self.max_duration_minutes
                )
            if self.max_duration_minutes < self.min_duration_minutes:
                raise ValidationError(
                    "max_duration_minutes",
                    "must not be below min_duration_minutes",
                    self.max_duration_minutes,
                )

        for name in ("price_per_minute", "fixed_price", "daily_max_amount", "min_amount"):
            amount = optional_money(getattr(self, name), name)
            if amount is not None:
                require_non_negative(amount, name)
            object.__setattr__(self, name, amount)

        if rule_type is RuleType.FIXED:
            if self.fixed_price is None:
                raise ValidationError("fixed_price", "required for FIXED rules")
            if self.price_per_minute is not None:
                raise ValidationError(
                    "price_per_minute", "not allowed on FIXED rules", self.price_per_minute
                )
            if self.min_amount_is_base:
                raise ValidationError(
                    "min_amount_is_base", "only meaningful on HOURLY rules"
                )
        else:
            if self.price_per_minute is None:
                raise ValidationError("price_per_minute", "required for HOURLY rules")
            if self.fixed_price is not None:
                raise ValidationError(
                    "fixed_price", "not allowed on HOURLY rules", self.fixed_price
                )
            if self.min_amount_is_base and self.min_amount is None:
                raise ValidationError(
                    "min_amount", "required when min_amount_is_base is set"
                )

        days = self.days_of_week
        if not isinstance(days, DaySet):
            days = DaySet.of(days)
        object.__setattr__(self, "days_of_week", days)
        object.__setattr__(self, "start_time", _parse_time(self.start_time, "start_time"))
        object.__setattr__(self, "end_time", _parse_time(self.end_time, "end_time"))

    # -- matching ---------------------------------------------------------

    def window_overlaps(self, begin: time, end: time) -> bool:
        """True when the rule's inclusive window overlaps ``[begin, end]``."""
        w_start = self.start_time or time.min
        w_end = self.end_time or time.max
        if w_start <= w_end:
            return w_start <= end and w_end >= begin
        # Window wraps past midnight, e.g. 22:00-06:00.
        return w_start <= end or w_end >= begin

    def applies_to(self, day: DaySlice) -> bool:
        return (
            self.is_active
            and day.weekday in self.days_of_week
            and self.window_overlaps(day.start_time, day.end_time)
        )

    # -- charging ---------------------------------------------------------

    def charge(self, minutes: int) -> "RuleApplication | None":
        """Price ``minutes`` elapsed on one day, or None if the rule does not contribute."""
        lo = self.min_duration_minutes
        hi = self.max_duration_minutes

        if self.rule_type is RuleType.FIXED:
            if minutes < lo or (hi is not None and minutes > hi):
                return None
            return RuleApplication(
                rule_id=self.id,
                rule_name=self.name,
                day=None,
                minutes_charged=minutes,
                rate_or_fixed=self.fixed_price,
                amount=self.fixed_price,
            )

        if self.min_amount_is_base:
            if minutes <= 0 or minutes < lo:
                return None
            base_end = hi if hi is not None else lo
            extra = max(0, minutes - base_end)
            amount = to_money(self.min_amount + self.price_per_minute * extra)
            return RuleApplication(
                rule_id=self.id,
                rule_name=self.name,
                day=None,
                minutes_charged=minutes - lo,
                rate_or_fixed=self.price_per_minute,
                amount=amount,
                min_amount_applied=True,
            )

        upper = minutes if hi is None else min(minutes, hi)
        in_range = max(0, upper - lo)
        if in_range == 0:
            return None
        amount = to_money(self.price_per_minute * in_range)
        floored = False
        if self.min_amount is not None and amount < self.min_amount:
            amount = self.min_amount
            floored = True
        return RuleApplication(
            rule_id=self.id,
            rule_name=self.name,
            day=None,
            minutes_charged=in_range,
            rate_or_fixed=self.price_per_minute,
            amount=amount,
            min_amount_applied=floored,
        )

    # -- persisted shape --------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        def _money(v: Decimal | None) -> str | None:
            return None if v is None else str(v)

        def _time(v: time | None) -> str | None:
            return None if v is None else v.isoformat()

        return {
            "id": self.id,
            "name": self.name,
            "rule_type": self.rule_type.value,
            "min_duration_minutes": self.min_duration_minutes,
            "max_duration_minutes": self.max_duration_minutes,
            "price_per_minute": _money(self.price_per_minute),
            "fixed_price": _money(self.fixed_price),
            "daily_max_amount": _money(self.daily_max_amount),
            "min_amount": _money(self.min_amount),
            "min_amount_is_base": self.min_amount_is_base,
            "days_of_week": self.days_of_week.to_list(),
            "start_time": _time(self.start_time),
            "end_time": _time(self.end_time),
            "priority": self.priority,
            "is_active": self.is_active,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "PricingRule":
        try:
            return cls(
                id=str(record["id"]),
                name=record.get("name") or str(record["id"]),
                rule_type=record["rule_type"],
                min_duration_minutes=record.get("min_duration_minutes") or 0,
                max_duration_minutes=record.get("max_duration_minutes"),
                price_per_minute=record.get("price_per_minute"),
                fixed_price=record.get("fixed_price"),
                daily_max_amount=record.get("daily_max_amount"),
                min_amount=record.get("min_amount"),
                min_amount_is_base=bool(record.get("min_amount_is_base", False)),
                days_of_week=DaySet.of(record.get("days_of_week", range(7))),
                start_time=record.get("start_time"),
                end_time=record.get("end_time"),
                priority=int(record.get("priority", 0)),
                is_active=bool(record.get("is_active", True)),
            )
        except KeyError as exc:
            raise ValidationError(exc.args[0], "missing from rule record") from None


@dataclass(frozen=True)
class PricingProfile:
    """A sector's ordered rule set with its activity window."""

    id: str
    name: str
    sector_id: str
    rules: tuple[PricingRule, ...]
    active_from: datetime
    active_to: datetime | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "active_from", _parse_datetime(self.active_from, "active_from"))
        object.__setattr__(self, "active_to", _parse_datetime(self.active_to, "active_to"))
        if self.active_to is not None and self.active_to < self.active_from:
            raise ValidationError("active_to", "must not be before active_from", self.active_to)

    def is_active_at(self, at: datetime) -> bool:
        if not self.is_active or at < self.active_from:
            return False
        return self.active_to is None or at <= self.active_to

    @property
    def max_daily_amount(self) -> Decimal | None:
        """Highest daily cap among active rules; the full-day flat charge."""
        caps = [
            r.daily_max_amount
            for r in self.rules
            if r.is_active and r.daily_max_amount is not None
        ]
        return max(caps) if caps else None


def select_active_profile(
    profiles: Iterable[PricingProfile], sector_id: str, at: datetime
) -> PricingProfile | None:
    """Return the sector's profile active at ``at``; the latest ``active_from`` wins."""
    candidates = [
        p for p in profiles if p.sector_id == sector_id and p.is_active_at(at)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.active_from)


# ---------------------------------------------------------------------------
# Evaluation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleApplication:
    """One contributing rule on one day, before the daily cap."""

    rule_id: str
    rule_name: str
    day: date | None
    minutes_charged: int
    rate_or_fixed: Decimal
    amount: Decimal
    min_amount_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "day": self.day.isoformat() if self.day else None,
            "minutes": self.minutes_charged,
            "rate_or_fixed": str(self.rate_or_fixed),
            "amount": str(self.amount),
            "min_amount_applied": self.min_amount_applied,
        }


@dataclass(frozen=True)
class DayCharge:
    """Per-calendar-day subtotal and the cap applied to it."""

    day: date
    minutes: int
    subtotal: Decimal
    cap: Decimal | None
    total: Decimal

    @property
    def capped(self) -> bool:
        return self.total < self.subtotal

    def to_dict(self) -> dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "minutes": self.minutes,
            "subtotal": str(self.subtotal),
            "cap": None if self.cap is None else str(self.cap),
            "total": str(self.total),
        }


@dataclass(frozen=True)
class PricingWarning:
    code: str
    day: date
    minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "day": self.day.isoformat(), "minutes": self.minutes}


NO_MATCHING_RULE = "NO_MATCHING_RULE"


@dataclass(frozen=True)
class PricingEvaluation:
    gross_amount: Decimal
    breakdown: tuple[RuleApplication, ...] = ()
    days: tuple[DayCharge, ...] = ()
    warnings: tuple[PricingWarning, ...] = ()


def order_rules(rules: Iterable[PricingRule]) -> list[PricingRule]:
    """Priority then min duration; ties keep input order."""
    return sorted(rules, key=lambda r: (r.priority, r.min_duration_minutes))


def _evaluate_day(
    rules: Sequence[PricingRule], day: DaySlice
) -> tuple[DayCharge, list[RuleApplication], PricingWarning | None]:
    applicable = order_rules(r for r in rules if r.applies_to(day))

    applications: list[RuleApplication] = []
    caps: list[Decimal] = []
    for rule in applicable:
        application = rule.charge(day.minutes)
        if application is None:
            continue
        applications.append(replace(application, day=day.day))
        if rule.daily_max_amount is not None:
            caps.append(rule.daily_max_amount)

    subtotal = sum((a.amount for a in applications), ZERO)
    cap = min(caps) if caps else None
    total = subtotal if cap is None or subtotal <= cap else cap

    warning = None
    if not applications:
        warning = PricingWarning(code=NO_MATCHING_RULE, day=day.day, minutes=day.minutes)
        logger.warning(
            "pricing_no_matching_rule",
            extra={"day": day.day, "minutes": day.minutes},
        )

    charge = DayCharge(
        day=day.day, minutes=day.minutes, subtotal=subtotal, cap=cap, total=total
    )
    return charge, applications, warning


def evaluate(
    rules: Iterable[PricingRule] | PricingProfile,
    interval: TimeInterval,
    tz: tzinfo = DEFAULT_TIMEZONE,
) -> PricingEvaluation:
    """
    Price ``interval`` with ``rules``.

    Accepts a rule iterable or a ``PricingProfile``.  Rules are never
    mutated; the same inputs always yield an equal result.
    """
    if isinstance(rules, PricingProfile):
        rules = rules.rules
    rules = tuple(rules)

    slices = split_by_local_day(interval, tz)
    if not slices:
        return PricingEvaluation(gross_amount=ZERO)

    breakdown: list[RuleApplication] = []
    days: list[DayCharge] = []
    warnings: list[PricingWarning] = []
    for day in slices:
        charge, applications, warning = _evaluate_day(rules, day)
        days.append(charge)
        breakdown.extend(applications)
        if warning is not None:
            warnings.append(warning)

    gross = sum((d.total for d in days), ZERO)
    logger.debug(
        "pricing_evaluated",
        extra={
            "minutes": interval.duration_minutes,
            "days": len(days),
            "gross_amount": gross,
        },
    )
    return PricingEvaluation(
        gross_amount=gross,
        breakdown=tuple(breakdown),
        days=tuple(days),
        warnings=tuple(warnings),
    )
