"""ORM models for pricing profiles, their rules, and discount definitions."""

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from parking_kernel.db.base import Base
from parking_kernel.db.types import Code, DayMask, Identifier, Money
from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.pricing import PricingProfile, PricingRule
from parking_kernel.domain.values import DaySet


class PricingProfileModel(Base):
    __tablename__ = "pricing_profiles"

    __table_args__ = (Index("ix_pricing_profiles_sector", "sector_id", "active_from"),)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    sector_id: Mapped[Identifier] = mapped_column(nullable=False)
    active_from: Mapped[datetime] = mapped_column(nullable=False)
    active_to: Mapped[datetime | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    rules: Mapped[list[PricingRuleModel]] = relationship(
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="PricingRuleModel.position",
    )

    def to_dto(self) -> PricingProfile:
        return PricingProfile(
            id=self.id,
            name=self.name,
            sector_id=self.sector_id,
            rules=tuple(r.to_dto() for r in self.rules),
            active_from=self.active_from,
            active_to=self.active_to,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: PricingProfile) -> PricingProfileModel:
        return cls(
            id=dto.id,
            name=dto.name,
            sector_id=dto.sector_id,
            active_from=dto.active_from,
            active_to=dto.active_to,
            is_active=dto.is_active,
            rules=[
                PricingRuleModel.from_dto(rule, position)
                for position, rule in enumerate(dto.rules)
            ],
        )


class PricingRuleModel(Base):
    """One rule row; ``position`` keeps the profile's input order."""

    __tablename__ = "pricing_rules"

    profile_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pricing_profiles.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    rule_type: Mapped[Code] = mapped_column(nullable=False)
    min_duration_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_per_minute: Mapped[Money | None] = mapped_column(nullable=True)
    fixed_price: Mapped[Money | None] = mapped_column(nullable=True)
    daily_max_amount: Mapped[Money | None] = mapped_column(nullable=True)
    min_amount: Mapped[Money | None] = mapped_column(nullable=True)
    min_amount_is_base: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    days_of_week: Mapped[DayMask] = mapped_column(nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    profile: Mapped[PricingProfileModel] = relationship(back_populates="rules")

    def to_dto(self) -> PricingRule:
        return PricingRule(
            id=self.id,
            name=self.name,
            rule_type=self.rule_type,
            min_duration_minutes=self.min_duration_minutes,
            max_duration_minutes=self.max_duration_minutes,
            price_per_minute=self.price_per_minute,
            fixed_price=self.fixed_price,
            daily_max_amount=self.daily_max_amount,
            min_amount=self.min_amount,
            min_amount_is_base=self.min_amount_is_base,
            days_of_week=DaySet(self.days_of_week),
            start_time=self.start_time,
            end_time=self.end_time,
            priority=self.priority,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: PricingRule, position: int) -> PricingRuleModel:
        return cls(
            id=dto.id,
            position=position,
            name=dto.name,
            rule_type=dto.rule_type.value,
            min_duration_minutes=dto.min_duration_minutes,
            max_duration_minutes=dto.max_duration_minutes,
            price_per_minute=dto.price_per_minute,
            fixed_price=dto.fixed_price,
            daily_max_amount=dto.daily_max_amount,
            min_amount=dto.min_amount,
            min_amount_is_base=dto.min_amount_is_base,
            days_of_week=dto.days_of_week.mask,
            start_time=dto.start_time,
            end_time=dto.end_time,
            priority=dto.priority,
            is_active=dto.is_active,
        )


class DiscountModel(Base):
    __tablename__ = "discounts"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    discount_type: Mapped[Code] = mapped_column(nullable=False)
    value: Mapped[Money | None] = mapped_column(nullable=True)
    max_amount: Mapped[Money | None] = mapped_column(nullable=True)
    minute_value: Mapped[Money | None] = mapped_column(nullable=True)
    min_amount: Mapped[Money | None] = mapped_column(nullable=True)
    minimum_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> DiscountDefinition:
        return DiscountDefinition(
            id=self.id,
            name=self.name,
            discount_type=self.discount_type,
            value=self.value,
            max_amount=self.max_amount,
            minute_value=self.minute_value,
            min_amount=self.min_amount,
            minimum_duration=self.minimum_duration,
            priority=self.priority,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: DiscountDefinition) -> DiscountModel:
        return cls(
            id=dto.id,
            name=dto.name,
            discount_type=dto.discount_type.value,
            value=dto.value,
            max_amount=dto.max_amount,
            minute_value=dto.minute_value,
            min_amount=dto.min_amount,
            minimum_duration=dto.minimum_duration,
            priority=dto.priority,
            valid_from=dto.valid_from,
            valid_until=dto.valid_until,
            is_active=dto.is_active,
        )
