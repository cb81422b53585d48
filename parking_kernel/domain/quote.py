"""
QuoteCalculator -- prices a session for a given end instant.

Responsibility:
    Orchestrate ``evaluate`` and ``apply_discount`` into a ``Quote``: the
    gross, discount and net amounts plus the per-rule breakdown that
    receipts print.

Architecture position:
    Kernel > Domain -- pure.  Takes no locks and writes nothing, so the same
    inputs always produce an equal quote and quotes can be computed on a
    thread pool (``quote_many``).

Failure modes:
    - ValidationError when ``ended_at`` precedes ``started_at``.
    - DailyMaxNotConfiguredError for a full-day session whose rules carry
      no daily maximum.
    - DiscountInactiveError / DiscountExpiredError from the discount.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Any, Iterable, Sequence

from parking_kernel.domain.discounts import (
    DiscountDefinition,
    PreDiscountQuote,
    apply_discount,
)
from parking_kernel.domain.pricing import (
    DEFAULT_TIMEZONE,
    DayCharge,
    PricingProfile,
    PricingRule,
    PricingWarning,
    RuleApplication,
    evaluate,
)
from parking_kernel.domain.session import ParkingSession
from parking_kernel.domain.values import ZERO, TimeInterval
from parking_kernel.exceptions import DailyMaxNotConfiguredError
from parking_kernel.logging_config import get_logger

logger = get_logger("domain.quote")

FULL_DAY_RULE_ID = "FULL_DAY"

RuleSet = PricingProfile | Sequence[PricingRule]


@dataclass(frozen=True)
class Quote:
    """A priced session.  Computed on demand, never stored as a row."""

    session_id: str
    started_at: datetime
    ended_at: datetime
    duration_minutes: int
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    breakdown: tuple[RuleApplication, ...] = ()
    days: tuple[DayCharge, ...] = ()
    warnings: tuple[PricingWarning, ...] = ()
    discount_id: str | None = None
    pricing_profile: str | None = None
    is_full_day: bool = False

    @property
    def seconds_total(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        """Shape consumed by receipt printing; amounts are strings."""
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "gross_amount": str(self.gross_amount),
            "discount_amount": str(self.discount_amount),
            "net_amount": str(self.net_amount),
            "breakdown": [a.to_dict() for a in self.breakdown],
            "days": [d.to_dict() for d in self.days],
            "warnings": [w.to_dict() for w in self.warnings],
            "discount_id": self.discount_id,
            "pricing_profile": self.pricing_profile,
            "is_full_day": self.is_full_day,
        }


@dataclass(frozen=True)
class QuoteRequest:
    session: ParkingSession
    rule_set: RuleSet
    ended_at: datetime
    discount: DiscountDefinition | None = None


class QuoteCalculator:
    """
    Pure quote orchestration.

    Contract:
        ``quote`` reads its arguments only.  The calculator holds nothing
        but the local timezone used to split days and match rule windows.
    """

    def __init__(self, tz: tzinfo = DEFAULT_TIMEZONE):
        self._tz = tz

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    def quote(
        self,
        session: ParkingSession,
        rule_set: RuleSet,
        discount: DiscountDefinition | None = None,
        *,
        ended_at: datetime,
    ) -> Quote:
        interval = TimeInterval(session.started_at, ended_at)
        profile_name = rule_set.name if isinstance(rule_set, PricingProfile) else None
        rules = rule_set.rules if isinstance(rule_set, PricingProfile) else tuple(rule_set)

        if session.is_full_day:
            gross, breakdown, days, warnings = self._full_day(rules, profile_name, interval)
        else:
            evaluation = evaluate(rules, interval, self._tz)
            gross = evaluation.gross_amount
            breakdown = evaluation.breakdown
            days = evaluation.days
            warnings = evaluation.warnings

        discount_amount = ZERO
        net = gross
        if discount is not None:
            result = apply_discount(
                discount,
                PreDiscountQuote(
                    gross_amount=gross, duration_minutes=interval.duration_minutes
                ),
                ended_at,
                self._tz,
            )
            discount_amount = result.discount_amount
            net = result.net_amount

        return Quote(
            session_id=session.id,
            started_at=session.started_at,
            ended_at=ended_at,
            duration_minutes=interval.duration_minutes,
            gross_amount=gross,
            discount_amount=discount_amount,
            net_amount=net,
            breakdown=breakdown,
            days=days,
            warnings=warnings,
            discount_id=discount.id if discount is not None else None,
            pricing_profile=profile_name,
            is_full_day=session.is_full_day,
        )

    def _full_day(
        self,
        rules: Sequence[PricingRule],
        profile_name: str | None,
        interval: TimeInterval,
    ) -> tuple[Decimal, tuple[RuleApplication, ...], tuple[DayCharge, ...], tuple]:
        caps = [r.daily_max_amount for r in rules if r.is_active and r.daily_max_amount is not None]
        if not caps:
            raise DailyMaxNotConfiguredError(profile_name)
        amount = max(caps)
        day = interval.start.astimezone(self._tz).date()
        application = RuleApplication(
            rule_id=FULL_DAY_RULE_ID,
            rule_name="Full day",
            day=day,
            minutes_charged=interval.duration_minutes,
            rate_or_fixed=amount,
            amount=amount,
        )
        charge = DayCharge(
            day=day,
            minutes=interval.duration_minutes,
            subtotal=amount,
            cap=amount,
            total=amount,
        )
        return amount, (application,), (charge,), ()

    def quote_many(
        self, requests: Iterable[QuoteRequest], max_workers: int = 4
    ) -> list[Quote]:
        """Quote a batch in parallel; results keep the request order."""
        requests = list(requests)
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(
                    self.quote,
                    r.session,
                    r.rule_set,
                    r.discount,
                    ended_at=r.ended_at,
                )
                for r in requests
            ]
            quotes = [f.result() for f in futures]
        logger.debug("quotes_batch_computed", extra={"count": len(quotes)})
        return quotes
