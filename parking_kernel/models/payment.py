"""ORM models for sales and payments."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from parking_kernel.db.base import Base
from parking_kernel.db.types import Code, Identifier, Money
from parking_kernel.domain.payments import Payment, Sale


class SaleModel(Base):
    __tablename__ = "sales"

    session_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    debt_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    cashier_operator_id: Mapped[Identifier] = mapped_column(nullable=False)
    subtotal: Mapped[Money] = mapped_column(nullable=False)
    discount_amount: Mapped[Money] = mapped_column(nullable=False)
    total: Mapped[Money] = mapped_column(nullable=False)
    status: Mapped[Code] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> Sale:
        return Sale(
            id=self.id,
            cashier_operator_id=self.cashier_operator_id,
            subtotal=self.subtotal,
            discount_amount=self.discount_amount,
            total=self.total,
            created_at=self.created_at,
            session_id=self.session_id,
            debt_id=self.debt_id,
            status=self.status,
        )

    @classmethod
    def from_dto(cls, dto: Sale) -> SaleModel:
        return cls(
            id=dto.id,
            session_id=dto.session_id,
            debt_id=dto.debt_id,
            cashier_operator_id=dto.cashier_operator_id,
            subtotal=dto.subtotal,
            discount_amount=dto.discount_amount,
            total=dto.total,
            status=dto.status.value,
            created_at=dto.created_at,
        )


class PaymentModel(Base):
    __tablename__ = "payments"

    __table_args__ = (Index("ix_payments_session", "session_id"),)

    sale_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sales.id"), nullable=False
    )
    shift_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shifts.id"), nullable=False
    )
    session_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    debt_id: Mapped[Identifier | None] = mapped_column(nullable=True)
    method: Mapped[Code] = mapped_column(nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    amount_received: Mapped[Money | None] = mapped_column(nullable=True)
    change: Mapped[Money] = mapped_column(nullable=False)
    approval_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[Code] = mapped_column(nullable=False)

    def to_dto(self) -> Payment:
        return Payment(
            id=self.id,
            sale_id=self.sale_id,
            shift_id=self.shift_id,
            method=self.method,
            amount=self.amount,
            paid_at=self.paid_at,
            amount_received=self.amount_received,
            change=self.change,
            session_id=self.session_id,
            debt_id=self.debt_id,
            approval_code=self.approval_code,
            status=self.status,
        )

    @classmethod
    def from_dto(cls, dto: Payment) -> PaymentModel:
        return cls(
            id=dto.id,
            sale_id=dto.sale_id,
            shift_id=dto.shift_id,
            session_id=dto.session_id,
            debt_id=dto.debt_id,
            method=dto.method.value,
            amount=dto.amount,
            amount_received=dto.amount_received,
            change=dto.change,
            approval_code=dto.approval_code,
            paid_at=dto.paid_at,
            status=dto.status.value,
        )
