"""
Tariff configuration schema.

Defines the human-authored, reviewable source artifact for billing
configuration.  YAML files are parsed into these types by the loader; the
pricing and discount objects inside are the kernel's own frozen domain
types, so a loaded configuration can be handed straight to the quote
calculator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.payments import PaymentMethod
from parking_kernel.domain.pricing import PricingProfile
from parking_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class BillingSettings:
    """Tenant-wide billing knobs."""

    timezone: str = "America/Santiago"
    currency: str = "CLP"
    cash_methods: tuple[PaymentMethod, ...] = (PaymentMethod.CASH,)
    require_shift_for_check_in: bool = True

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError("timezone", "unknown IANA timezone", self.timezone) from None
        if not self.currency or len(self.currency) != 3:
            raise ValidationError("currency", "must be a 3-letter code", self.currency)
        try:
            methods = tuple(PaymentMethod(m) for m in self.cash_methods)
        except ValueError:
            raise ValidationError(
                "cash_methods", "unknown payment method", self.cash_methods
            ) from None
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "cash_methods", methods)

    @property
    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class TariffConfiguration:
    """
    A complete, versioned tariff set.

    ``checksum`` is the SHA-256 of the canonical JSON form of the source
    document; identical YAML content always yields the same checksum.
    """

    name: str
    version: int
    settings: BillingSettings
    profiles: tuple[PricingProfile, ...] = ()
    discounts: tuple[DiscountDefinition, ...] = ()
    checksum: str = ""
    description: str | None = None
    _discounts_by_id: dict[str, DiscountDefinition] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for profile in self.profiles:
            if profile.id in seen:
                raise ValidationError("profiles", "duplicate profile id", profile.id)
            seen.add(profile.id)
        index: dict[str, DiscountDefinition] = {}
        for discount in self.discounts:
            if discount.id in index:
                raise ValidationError("discounts", "duplicate discount id", discount.id)
            index[discount.id] = discount
        object.__setattr__(self, "_discounts_by_id", index)

    def profiles_for_sector(self, sector_id: str) -> tuple[PricingProfile, ...]:
        return tuple(p for p in self.profiles if p.sector_id == sector_id)

    def discount(self, discount_id: str) -> DiscountDefinition | None:
        return self._discounts_by_id.get(discount_id)
