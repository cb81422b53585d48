"""ORM model for plate debts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from parking_kernel.db.base import Base
from parking_kernel.db.types import Code, Identifier, Money, Notes, Plate
from parking_kernel.domain.debt import Debt


class DebtModel(Base):
    __tablename__ = "debts"

    __table_args__ = (Index("ix_debts_plate_status", "plate", "status"),)

    plate: Mapped[Plate] = mapped_column(nullable=False)
    origin: Mapped[Code] = mapped_column(nullable=False)
    principal_amount: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[Code] = mapped_column(nullable=False)
    session_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[Notes | None] = mapped_column(nullable=True)

    def to_dto(self) -> Debt:
        return Debt(
            id=self.id,
            plate=self.plate,
            origin=self.origin,
            principal_amount=self.principal_amount,
            created_at=self.created_at,
            status=self.status,
            session_id=self.session_id,
            settled_at=self.settled_at,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: Debt) -> DebtModel:
        return cls(
            id=dto.id,
            plate=dto.plate,
            origin=dto.origin.value,
            principal_amount=dto.principal_amount,
            status=dto.status.value,
            session_id=dto.session_id,
            created_at=dto.created_at,
            settled_at=dto.settled_at,
            notes=dto.notes,
        )

    def apply_dto(self, dto: Debt) -> None:
        self.status = dto.status.value
        self.settled_at = dto.settled_at
        self.notes = dto.notes
