"""
Discounts -- discount definitions and ``apply_discount``.

Responsibility:
    Reduce a quote's gross amount by one discount.  Three kinds exist:

    AMOUNT           flat reduction, never more than the gross
    PERCENTAGE       percentage of the gross, optionally capped
    PRICING_PROFILE  the session is re-priced with a substitute flat model
                     and the difference becomes the discount

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - ``0 <= discount_amount <= gross_amount``
    - ``net_amount = gross_amount - discount_amount`` and is never negative

Failure modes:
    - DiscountInactiveError when the definition is switched off (checked
      first).
    - DiscountExpiredError when the quoting date is outside the inclusive
      ``[valid_from, valid_until]`` window.
    - ValidationError on malformed definitions (at construction).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any

from parking_kernel.domain.values import (
    DEFAULT_TIMEZONE,
    ZERO,
    optional_money,
    require_non_negative,
    to_money,
)
from parking_kernel.exceptions import (
    DiscountExpiredError,
    DiscountInactiveError,
    ValidationError,
)

HUNDRED = Decimal("100")


class DiscountType(str, Enum):
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"
    PRICING_PROFILE = "PRICING_PROFILE"


def _parse_date(value: Any, field_name: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValidationError(field_name, "not an ISO date", value) from None
    raise ValidationError(field_name, "not a date", value)


@dataclass(frozen=True)
class DiscountDefinition:
    """
    A discount that can be attached to a checkout.

    Contract:
        AMOUNT and PERCENTAGE use ``value`` (and ``max_amount`` as a cap for
        PERCENTAGE).  PRICING_PROFILE uses ``minute_value``, ``min_amount``
        and ``minimum_duration``.

    Guarantees:
        - Money fields are non-negative 2-place Decimals.
        - PERCENTAGE ``value`` is within 0..100.
        - ``valid_from`` is not after ``valid_until``.
    """

    id: str
    name: str
    discount_type: DiscountType
    value: Decimal | None = None
    max_amount: Decimal | None = None
    minute_value: Decimal | None = None
    min_amount: Decimal | None = None
    minimum_duration: int | None = None
    priority: int = 0
    valid_from: date | None = None
    valid_until: date | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        try:
            discount_type = DiscountType(self.discount_type)
        except ValueError:
            raise ValidationError(
                "discount_type", "unknown discount type", self.discount_type
            ) from None
        object.__setattr__(self, "discount_type", discount_type)

        for name in ("value", "max_amount", "minute_value", "min_amount"):
            amount = optional_money(getattr(self, name), name)
            if amount is not None:
                require_non_negative(amount, name)
            object.__setattr__(self, name, amount)

        if discount_type is DiscountType.PRICING_PROFILE:
            if self.minute_value is None:
                raise ValidationError("minute_value", "required for PRICING_PROFILE")
            if self.min_amount is None:
                raise ValidationError("min_amount", "required for PRICING_PROFILE")
            if self.minimum_duration is not None and (
                not isinstance(self.minimum_duration, int) or self.minimum_duration < 0
            ):
                raise ValidationError(
                    "minimum_duration", "must be a non-negative int", self.minimum_duration
                )
        else:
            if self.value is None:
                raise ValidationError("value", f"required for {discount_type.value}")
            if discount_type is DiscountType.PERCENTAGE and self.value > HUNDRED:
                raise ValidationError("value", "percentage above 100", self.value)

        valid_from = _parse_date(self.valid_from, "valid_from")
        valid_until = _parse_date(self.valid_until, "valid_until")
        if valid_from and valid_until and valid_from > valid_until:
            raise ValidationError("valid_until", "before valid_from", valid_until)
        object.__setattr__(self, "valid_from", valid_from)
        object.__setattr__(self, "valid_until", valid_until)

    def is_valid_on(self, day: date) -> bool:
        if self.valid_from is not None and day < self.valid_from:
            return False
        return self.valid_until is None or day <= self.valid_until

    def to_record(self) -> dict[str, Any]:
        def _s(v: Any) -> str | None:
            return None if v is None else str(v)

        return {
            "id": self.id,
            "name": self.name,
            "discount_type": self.discount_type.value,
            "value": _s(self.value),
            "max_amount": _s(self.max_amount),
            "minute_value": _s(self.minute_value),
            "min_amount": _s(self.min_amount),
            "minimum_duration": self.minimum_duration,
            "priority": self.priority,
            "valid_from": self.valid_from.isoformat() if self.valid_from else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "is_active": self.is_active,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "DiscountDefinition":
        try:
            return cls(
                id=str(record["id"]),
                name=record.get("name") or str(record["id"]),
                discount_type=record["discount_type"],
                value=record.get("value"),
                max_amount=record.get("max_amount"),
                minute_value=record.get("minute_value"),
                min_amount=record.get("min_amount"),
                minimum_duration=record.get("minimum_duration"),
                priority=int(record.get("priority", 0)),
                valid_from=record.get("valid_from"),
                valid_until=record.get("valid_until"),
                is_active=bool(record.get("is_active", True)),
            )
        except KeyError as exc:
            raise ValidationError(exc.args[0], "missing from discount record") from None


@dataclass(frozen=True)
class PreDiscountQuote:
    """What the discount engine needs to know about a priced session."""

    gross_amount: Decimal
    duration_minutes: int


@dataclass(frozen=True)
class DiscountResult:
    discount_id: str
    discount_amount: Decimal
    net_amount: Decimal


def pricing_profile_amount(discount: DiscountDefinition, duration_minutes: int) -> Decimal:
    """Price ``duration_minutes`` with the discount's substitute flat model."""
    billable = max(0, duration_minutes - (discount.minimum_duration or 0))
    return to_money(discount.min_amount + discount.minute_value * billable)


def apply_discount(
    discount: DiscountDefinition,
    quote: PreDiscountQuote,
    at: datetime,
    tz: tzinfo = DEFAULT_TIMEZONE,
) -> DiscountResult:
    """
    Apply ``discount`` to ``quote`` as of ``at``.

    Validity dates are calendar days in ``tz``; ``at`` is converted
    before the comparison.

    Raises:
        DiscountInactiveError: the definition is not active.
        DiscountExpiredError: ``at`` falls outside the validity dates.
    """
    if not discount.is_active:
        raise DiscountInactiveError(discount.id)
    if not discount.is_valid_on(at.astimezone(tz).date()):
        raise DiscountExpiredError(
            discount.id, at, discount.valid_from, discount.valid_until
        )

    gross = to_money(quote.gross_amount, "gross_amount")
    kind = discount.discount_type
    if kind is DiscountType.AMOUNT:
        amount = min(discount.value, gross)
    elif kind is DiscountType.PERCENTAGE:
        amount = to_money(gross * discount.value / HUNDRED)
        if discount.max_amount is not None:
            amount = min(amount, discount.max_amount)
    elif kind is DiscountType.PRICING_PROFILE:
        substitute = pricing_profile_amount(discount, quote.duration_minutes)
        amount = max(ZERO, gross - substitute)
    else:
        raise ValidationError("discount_type", "unhandled discount type", kind)

    amount = min(max(ZERO, amount), gross)
    return DiscountResult(
        discount_id=discount.id,
        discount_amount=amount,
        net_amount=max(ZERO, gross - amount),
    )
