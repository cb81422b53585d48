"""ORM model for parking sessions.  Rows are never deleted."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from parking_kernel.db.base import Base
from parking_kernel.db.types import Code, Identifier, Money, Plate
from parking_kernel.domain.session import ParkingSession


class ParkingSessionModel(Base):
    __tablename__ = "parking_sessions"

    __table_args__ = (
        Index("ix_parking_sessions_plate_sector_status", "plate", "sector_id", "status"),
    )

    plate: Mapped[Plate] = mapped_column(nullable=False)
    sector_id: Mapped[Identifier] = mapped_column(nullable=False)
    street_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    operator_in_id: Mapped[Identifier] = mapped_column(nullable=False)
    operator_out_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    seconds_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gross_amount: Mapped[Money | None] = mapped_column(nullable=True)
    discount_amount: Mapped[Money | None] = mapped_column(nullable=True)
    net_amount: Mapped[Money | None] = mapped_column(nullable=True)
    status: Mapped[Code] = mapped_column(nullable=False)
    discount_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    is_full_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    _MUTABLE = (
        "operator_out_id",
        "ended_at",
        "seconds_total",
        "gross_amount",
        "discount_amount",
        "net_amount",
        "status",
        "discount_id",
    )

    def to_dto(self) -> ParkingSession:
        return ParkingSession(
            id=self.id,
            plate=self.plate,
            sector_id=self.sector_id,
            street_id=self.street_id,
            operator_in_id=self.operator_in_id,
            operator_out_id=self.operator_out_id,
            started_at=self.started_at,
            ended_at=self.ended_at,
            seconds_total=self.seconds_total,
            gross_amount=self.gross_amount,
            discount_amount=self.discount_amount,
            net_amount=self.net_amount,
            status=self.status,
            discount_id=self.discount_id,
            is_full_day=self.is_full_day,
        )

    @classmethod
    def from_dto(cls, dto: ParkingSession) -> ParkingSessionModel:
        return cls(
            id=dto.id,
            plate=dto.plate,
            sector_id=dto.sector_id,
            street_id=dto.street_id,
            operator_in_id=dto.operator_in_id,
            operator_out_id=dto.operator_out_id,
            started_at=dto.started_at,
            ended_at=dto.ended_at,
            seconds_total=dto.seconds_total,
            gross_amount=dto.gross_amount,
            discount_amount=dto.discount_amount,
            net_amount=dto.net_amount,
            status=dto.status.value,
            discount_id=dto.discount_id,
            is_full_day=dto.is_full_day,
        )

    def apply_dto(self, dto: ParkingSession) -> None:
        """Copy the checkout-time fields of ``dto`` onto this row."""
        for name in self._MUTABLE:
            value = getattr(dto, name)
            if name == "status":
                value = value.value
            setattr(self, name, value)
