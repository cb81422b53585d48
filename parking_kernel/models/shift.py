"""ORM models for shifts, their append-only ledger and cash adjustments."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from parking_kernel.db.base import Base
from parking_kernel.db.types import Code, Identifier, Money, Notes
from parking_kernel.domain.shift import CashAdjustment, Shift, ShiftOperation


class ShiftModel(Base):
    __tablename__ = "shifts"

    __table_args__ = (Index("ix_shifts_operator_status", "operator_id", "status"),)

    operator_id: Mapped[Identifier] = mapped_column(nullable=False)
    sector_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    device_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    opening_float: Mapped[Money] = mapped_column(nullable=False)
    closing_declared_cash: Mapped[Money | None] = mapped_column(nullable=True)
    cash_over_short: Mapped[Money | None] = mapped_column(nullable=True)
    status: Mapped[Code] = mapped_column(nullable=False)
    created_by: Mapped[Identifier | None] = mapped_column(nullable=True)
    closed_by: Mapped[Identifier | None] = mapped_column(nullable=True)
    notes: Mapped[Notes | None] = mapped_column(nullable=True)

    def to_dto(self) -> Shift:
        return Shift(
            id=self.id,
            operator_id=self.operator_id,
            opened_at=self.opened_at,
            opening_float=self.opening_float,
            status=self.status,
            sector_id=self.sector_id,
            device_id=self.device_id,
            closed_at=self.closed_at,
            closing_declared_cash=self.closing_declared_cash,
            cash_over_short=self.cash_over_short,
            created_by=self.created_by,
            closed_by=self.closed_by,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: Shift) -> ShiftModel:
        return cls(
            id=dto.id,
            operator_id=dto.operator_id,
            sector_id=dto.sector_id,
            device_id=dto.device_id,
            opened_at=dto.opened_at,
            closed_at=dto.closed_at,
            opening_float=dto.opening_float,
            closing_declared_cash=dto.closing_declared_cash,
            cash_over_short=dto.cash_over_short,
            status=dto.status.value,
            created_by=dto.created_by,
            closed_by=dto.closed_by,
            notes=dto.notes,
        )

    def apply_dto(self, dto: Shift) -> None:
        self.status = dto.status.value
        self.closed_at = dto.closed_at
        self.closing_declared_cash = dto.closing_declared_cash
        self.cash_over_short = dto.cash_over_short
        self.closed_by = dto.closed_by
        self.notes = dto.notes


class ShiftOperationModel(Base):
    """Ledger row.  UPDATE and DELETE are refused by db.immutability."""

    __tablename__ = "shift_operations"

    __table_args__ = (Index("ix_shift_operations_shift_seq", "shift_id", "seq"),)

    shift_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shifts.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[Code] = mapped_column(nullable=False)
    amount: Mapped[Money | None] = mapped_column(nullable=True)
    at: Mapped[datetime] = mapped_column(nullable=False)
    ref_type: Mapped[Code | None] = mapped_column(nullable=True)
    ref_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    payment_method: Mapped[Code | None] = mapped_column(nullable=True)
    notes: Mapped[Notes | None] = mapped_column(nullable=True)

    def to_dto(self) -> ShiftOperation:
        return ShiftOperation(
            id=self.id,
            shift_id=self.shift_id,
            kind=self.kind,
            at=self.at,
            amount=self.amount,
            ref_type=self.ref_type,
            ref_id=self.ref_id,
            payment_method=self.payment_method,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: ShiftOperation, seq: int) -> ShiftOperationModel:
        return cls(
            id=dto.id,
            shift_id=dto.shift_id,
            seq=seq,
            kind=dto.kind.value,
            amount=dto.amount,
            at=dto.at,
            ref_type=dto.ref_type.value if dto.ref_type else None,
            ref_id=dto.ref_id,
            payment_method=dto.payment_method.value if dto.payment_method else None,
            notes=dto.notes,
        )


class CashAdjustmentModel(Base):
    __tablename__ = "cash_adjustments"

    shift_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shifts.id"), nullable=False
    )
    type: Mapped[Code] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    at: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[Notes] = mapped_column(nullable=False)
    receipt_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    approved_by: Mapped[Identifier | None] = mapped_column(nullable=True)

    def to_dto(self) -> CashAdjustment:
        return CashAdjustment(
            id=self.id,
            shift_id=self.shift_id,
            type=self.type,
            amount=self.amount,
            at=self.at,
            reason=self.reason,
            receipt_number=self.receipt_number,
            actor_id=self.actor_id,
            approved_by=self.approved_by,
        )

    @classmethod
    def from_dto(cls, dto: CashAdjustment) -> CashAdjustmentModel:
        return cls(
            id=dto.id,
            shift_id=dto.shift_id,
            type=dto.type.value,
            amount=dto.amount,
            at=dto.at,
            reason=dto.reason,
            receipt_number=dto.receipt_number,
            actor_id=dto.actor_id,
            approved_by=dto.approved_by,
        )
