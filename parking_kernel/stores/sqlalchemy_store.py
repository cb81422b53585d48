"""
SQLAlchemy-backed ParkingStore.

Responsibility:
    Maps domain objects to the ORM models and back.  Aggregates requested
    ``for_update`` are loaded with SELECT ... FOR UPDATE so that concurrent
    processes serialize on the row (a no-op on SQLite, where the
    in-process aggregate locks still apply).

Architecture position:
    Stores layer.  Works on any SQLAlchemy dialect.  One ORM session per
    thread (``scoped_session``); ``transaction()`` commits or rolls back the
    calling thread's session, and nested calls join the outermost one.

Failure modes:
    - ImmutabilityViolationError from the ORM listeners when a flush tries
      to rewrite a ledger row or a sealed shift.
    - IntegrityError on duplicate primary keys.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import func, select
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from parking_kernel.db.immutability import register_immutability_listeners
from parking_kernel.domain.debt import DebtStatus
from parking_kernel.domain.shift import ShiftStatus
from parking_kernel.domain.session import SessionStatus
from parking_kernel.logging_config import get_logger
from parking_kernel.models.debt import DebtModel
from parking_kernel.models.payment import PaymentModel, SaleModel
from parking_kernel.models.pricing import DiscountModel, PricingProfileModel
from parking_kernel.models.session import ParkingSessionModel
from parking_kernel.models.shift import (
    CashAdjustmentModel,
    ShiftModel,
    ShiftOperationModel,
)
from parking_kernel.stores.interfaces import ParkingStore

logger = get_logger("stores.sqlalchemy")


class SqlAlchemyParkingStore(ParkingStore):
    """ParkingStore over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = scoped_session(session_factory)
        self._local = threading.local()
        register_immutability_listeners()

    @property
    def session(self) -> Session:
        """The calling thread's ORM session."""
        return self._sessions()

    def close(self) -> None:
        self._sessions.remove()

    # -- unit of work -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        try:
            if depth:
                yield
                return
            session = self.session
            try:
                yield
                session.commit()
            except Exception:
                session.rollback()
                logger.warning("store_transaction_rolled_back", exc_info=True)
                raise
        finally:
            self._local.depth = depth

    def _one(self, model, row_id: str, for_update: bool = False):
        stmt = select(model).where(model.id == row_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).one_or_none()

    def _require(self, model, row_id: str):
        row = self.session.get(model, row_id)
        if row is None:
            raise KeyError(f"{model.__tablename__} row {row_id} not found")
        return row

    # -- sessions ---------------------------------------------------------

    def get_session(self, session_id, for_update=False):
        row = self._one(ParkingSessionModel, session_id, for_update)
        return row.to_dto() if row is not None else None

    def add_session(self, session):
        self.session.add(ParkingSessionModel.from_dto(session))
        self.session.flush()

    def update_session(self, session):
        self._require(ParkingSessionModel, session.id).apply_dto(session)
        self.session.flush()

    def find_active_session(self, plate, sector_id):
        stmt = (
            select(ParkingSessionModel)
            .where(
                ParkingSessionModel.plate == plate,
                ParkingSessionModel.sector_id == sector_id,
                ParkingSessionModel.status == SessionStatus.ACTIVE.value,
            )
            .order_by(ParkingSessionModel.started_at.desc())
        )
        row = self.session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    # -- shifts -----------------------------------------------------------

    def get_shift(self, shift_id, for_update=False):
        row = self._one(ShiftModel, shift_id, for_update)
        return row.to_dto() if row is not None else None

    def add_shift(self, shift):
        self.session.add(ShiftModel.from_dto(shift))
        self.session.flush()

    def update_shift(self, shift):
        self._require(ShiftModel, shift.id).apply_dto(shift)
        self.session.flush()

    def find_open_shift(self, operator_id, device_id, any_device=False):
        stmt = select(ShiftModel).where(
            ShiftModel.operator_id == operator_id,
            ShiftModel.status == ShiftStatus.OPEN.value,
        )
        if not any_device:
            if device_id is None:
                stmt = stmt.where(ShiftModel.device_id.is_(None))
            else:
                stmt = stmt.where(ShiftModel.device_id == device_id)
        row = self.session.scalars(stmt.order_by(ShiftModel.opened_at.desc())).first()
        return row.to_dto() if row is not None else None

    def append_operation(self, operation):
        last = self.session.scalar(
            select(func.max(ShiftOperationModel.seq)).where(
                ShiftOperationModel.shift_id == operation.shift_id
            )
        )
        self.session.add(ShiftOperationModel.from_dto(operation, seq=(last or 0) + 1))
        self.session.flush()

    def operations_for_shift(self, shift_id):
        stmt = (
            select(ShiftOperationModel)
            .where(ShiftOperationModel.shift_id == shift_id)
            .order_by(ShiftOperationModel.seq)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def add_cash_adjustment(self, adjustment):
        self.session.add(CashAdjustmentModel.from_dto(adjustment))
        self.session.flush()

    def adjustments_for_shift(self, shift_id):
        stmt = (
            select(CashAdjustmentModel)
            .where(CashAdjustmentModel.shift_id == shift_id)
            .order_by(CashAdjustmentModel.at)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    # -- sales and payments -----------------------------------------------

    def add_sale(self, sale):
        self.session.add(SaleModel.from_dto(sale))
        self.session.flush()

    def add_payment(self, payment):
        self.session.add(PaymentModel.from_dto(payment))
        self.session.flush()

    def get_sale(self, sale_id):
        row = self.session.get(SaleModel, sale_id)
        return row.to_dto() if row is not None else None

    def payment_for_session(self, session_id):
        stmt = (
            select(PaymentModel)
            .where(PaymentModel.session_id == session_id)
            .order_by(PaymentModel.paid_at)
        )
        row = self.session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    # -- debts ------------------------------------------------------------

    def get_debt(self, debt_id, for_update=False):
        row = self._one(DebtModel, debt_id, for_update)
        return row.to_dto() if row is not None else None

    def add_debt(self, debt):
        self.session.add(DebtModel.from_dto(debt))
        self.session.flush()

    def update_debt(self, debt):
        self._require(DebtModel, debt.id).apply_dto(debt)
        self.session.flush()

    def find_debts(self, plate=None, status=None):
        stmt = select(DebtModel)
        if plate is not None:
            stmt = stmt.where(DebtModel.plate == plate)
        if status is not None:
            stmt = stmt.where(DebtModel.status == DebtStatus(status).value)
        stmt = stmt.order_by(DebtModel.created_at)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    # -- tariffs ----------------------------------------------------------

    def save_profile(self, profile):
        existing = self.session.get(PricingProfileModel, profile.id)
        if existing is not None:
            self.session.delete(existing)
            self.session.flush()
        self.session.add(PricingProfileModel.from_dto(profile))
        self.session.flush()

    def get_profile(self, profile_id):
        row = self.session.get(PricingProfileModel, profile_id)
        return row.to_dto() if row is not None else None

    def profiles_for_sector(self, sector_id):
        stmt = (
            select(PricingProfileModel)
            .where(PricingProfileModel.sector_id == sector_id)
            .order_by(PricingProfileModel.active_from)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def save_discount(self, discount):
        existing = self.session.get(DiscountModel, discount.id)
        if existing is not None:
            self.session.delete(existing)
            self.session.flush()
        self.session.add(DiscountModel.from_dto(discount))
        self.session.flush()

    def get_discount(self, discount_id):
        row = self.session.get(DiscountModel, discount_id)
        return row.to_dto() if row is not None else None
