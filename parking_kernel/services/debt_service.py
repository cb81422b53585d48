"""
parking_kernel.services.debt_service
====================================

Responsibility:
    Manual debt creation, settlement at the cashier, and the pending-debt
    views used at check-in and by back-office reports.  Debts from forced
    checkouts are created by ``SessionStateMachine``; settlement is the
    only mutation a debt ever sees.

Architecture:
    Services layer.  Settlement holds the debt lock, then (via the ledger)
    the shift lock, inside one store transaction: the sale, the payment,
    the ledger row and the SETTLED status land together or not at all.

Failure modes:
    - DebtNotFoundError, DebtNotPendingError.
    - ValidationError when the amount is negative or exceeds the principal.
    - NoOpenShiftError when the cashier has no open shift.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import uuid4

from parking_kernel.domain.clock import Clock, SystemClock
from parking_kernel.domain.debt import (
    Debt,
    DebtOrigin,
    DebtStatus,
    PendingDebtSummary,
    PlateDebts,
    summarize_pending,
)
from parking_kernel.domain.payments import Payment, PaymentMethod, Sale
from parking_kernel.domain.session import normalize_plate
from parking_kernel.domain.values import ZERO, require_non_negative, to_money
from parking_kernel.exceptions import (
    DebtNotFoundError,
    DebtNotPendingError,
    ValidationError,
)
from parking_kernel.logging_config import get_logger
from parking_kernel.services.shift_ledger import ShiftLedger
from parking_kernel.stores.interfaces import ParkingStore

logger = get_logger("services.debt")


@dataclass(frozen=True)
class SettlementResult:
    debt: Debt
    sale: Sale
    payment: Payment


class DebtService:
    """Creates, settles and summarizes plate debts."""

    def __init__(
        self,
        store: ParkingStore,
        ledger: ShiftLedger,
        clock: Clock | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._locks = ledger.locks

    def get_debt(self, debt_id: str) -> Debt:
        debt = self._store.get_debt(debt_id)
        if debt is None:
            raise DebtNotFoundError(debt_id)
        return debt

    def create_manual(
        self,
        plate: str,
        amount: Decimal,
        origin: DebtOrigin = DebtOrigin.MANUAL,
        notes: str | None = None,
    ) -> Debt:
        principal = to_money(amount, "principal_amount")
        if principal <= 0:
            raise ValidationError("principal_amount", "must be positive", principal)
        debt = Debt(
            id=str(uuid4()),
            plate=plate,
            origin=origin,
            principal_amount=principal,
            created_at=self._clock.now(),
            notes=notes,
        )
        with self._store.transaction():
            self._store.add_debt(debt)
        logger.info(
            "debt_created",
            extra={
                "debt_id": debt.id,
                "plate": debt.plate,
                "origin": debt.origin,
                "principal_amount": principal,
            },
        )
        return debt

    def settle(
        self,
        debt_id: str,
        method: PaymentMethod,
        cashier_operator_id: str,
        amount: Decimal | None = None,
        device_id: str | None = None,
    ) -> SettlementResult:
        """Collect a PENDING debt; the amount defaults to the principal."""
        method = PaymentMethod(method)
        with self._locks.debt(debt_id), self._store.transaction():
            debt = self._store.get_debt(debt_id, for_update=True)
            if debt is None:
                raise DebtNotFoundError(debt_id)
            if not debt.is_pending:
                raise DebtNotPendingError(debt_id, debt.status.value)

            paid = debt.principal_amount if amount is None else require_non_negative(
                to_money(amount), "amount"
            )
            if paid > debt.principal_amount:
                raise ValidationError("amount", "exceeds pending principal", paid)

            shift = self._ledger.require_current_shift(cashier_operator_id, device_id)
            now = self._clock.now()
            sale = Sale(
                id=str(uuid4()),
                cashier_operator_id=cashier_operator_id,
                subtotal=paid,
                discount_amount=ZERO,
                total=paid,
                created_at=now,
                session_id=debt.session_id,
                debt_id=debt.id,
            )
            payment = Payment(
                id=str(uuid4()),
                sale_id=sale.id,
                shift_id=shift.id,
                method=method,
                amount=paid,
                paid_at=now,
                amount_received=paid,
                debt_id=debt.id,
            )
            self._store.add_sale(sale)
            self._store.add_payment(payment)
            self._ledger.record_payment(payment)

            settled = replace(debt, status=DebtStatus.SETTLED, settled_at=now)
            self._store.update_debt(settled)

        logger.info(
            "debt_settled",
            extra={
                "debt_id": debt_id,
                "amount": paid,
                "payment_method": method,
                "shift_id": shift.id,
            },
        )
        return SettlementResult(debt=settled, sale=sale, payment=payment)

    def pending_summary(self) -> PendingDebtSummary:
        return summarize_pending(self._store.find_debts(status=DebtStatus.PENDING))

    def debts_by_plate(self, plate: str) -> PlateDebts:
        plate = normalize_plate(plate)
        debts = sorted(
            self._store.find_debts(plate=plate),
            key=lambda d: d.created_at,
            reverse=True,
        )
        return PlateDebts(plate=plate, debts=tuple(debts))
