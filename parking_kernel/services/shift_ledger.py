"""
parking_kernel.services.shift_ledger
====================================

Responsibility:
    Operator shifts and their cash-drawer ledger.  Opening, recording
    payments and cash adjustments, previewing the reconciliation and
    closing all go through here.  Totals are never stored incrementally;
    they are recomputed by replaying the shift's ledger rows.

Architecture:
    Services layer.  Owns the unit of work for every public mutating
    method (``store.transaction()``) and holds the shift's aggregate lock
    while mutating it.  When called from inside another service's unit of
    work (checkout, debt settlement) it joins that unit.

Invariants enforced:
    - At most one OPEN shift per (operator_id, device_id).
    - Ledger rows are appended only to OPEN shifts and never rewritten.
    - expected = opening_float + cash collections + deposits - withdrawals,
      where cash collections are payments in one of the ledger's cash
      methods (CASH unless configured otherwise).
    - A closing variance is recorded, never rejected.

Failure modes:
    - ShiftAlreadyOpenError on a second open for the same operator/device.
    - ShiftNotFoundError for unknown ids.
    - NoOpenShiftError when recording against a shift that is not open.
    - ShiftNotOpenError when closing or canceling a shift that is not open.
    - ValidationError on non-positive adjustment amounts or missing reason.

Usage::

    ledger = ShiftLedger(store, clock)
    shift = ledger.open("op-1", Decimal("50000"), device_id="pos-7")
    ledger.withdraw(shift.id, Decimal("20000"), reason="safe drop")
    result = ledger.close(shift.id, declared_cash=Decimal("145000"))
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import uuid4

from parking_kernel.domain.clock import Clock, SystemClock
from parking_kernel.domain.payments import Payment, PaymentMethod
from parking_kernel.domain.shift import (
    AdjustmentType,
    CashAdjustment,
    OperationKind,
    ReconciliationTotals,
    RefType,
    Shift,
    ShiftOperation,
    ShiftStatus,
    ShiftTotals,
    replay,
)
from parking_kernel.domain.values import require_non_negative, to_money
from parking_kernel.exceptions import (
    NoOpenShiftError,
    ShiftAlreadyOpenError,
    ShiftNotFoundError,
    ShiftNotOpenError,
    ValidationError,
)
from parking_kernel.logging_config import LogContext, get_logger
from parking_kernel.services.locks import AggregateLocks
from parking_kernel.stores.interfaces import ParkingStore

logger = get_logger("services.shift_ledger")

_RECORDABLE_KINDS = frozenset(
    {OperationKind.ADJUSTMENT, OperationKind.WITHDRAWAL, OperationKind.DEPOSIT}
)


@dataclass(frozen=True)
class ShiftCloseResult:
    shift: Shift
    totals: ShiftTotals


class ShiftLedger:
    """
    Append-only cash ledger per operator shift.

    Contract:
        Every mutating method runs under the shift's aggregate lock inside
        one store transaction.  Read methods take no lock.

    Non-goals:
        - No approval threshold on withdrawals; ``approved_by`` is recorded
          for an external approval workflow.
        - No report rendering.
    """

    def __init__(
        self,
        store: ParkingStore,
        clock: Clock | None = None,
        locks: AggregateLocks | None = None,
        cash_methods: Iterable[PaymentMethod] = (PaymentMethod.CASH,),
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._locks = locks or AggregateLocks()
        self._cash_methods = frozenset(PaymentMethod(m) for m in cash_methods)

    @property
    def locks(self) -> AggregateLocks:
        return self._locks

    @property
    def cash_methods(self) -> frozenset[PaymentMethod]:
        return self._cash_methods

    def is_cash(self, method: PaymentMethod) -> bool:
        """True when payments in ``method`` go into the drawer."""
        return method in self._cash_methods

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_shift(self, shift_id: str) -> Shift:
        shift = self._store.get_shift(shift_id)
        if shift is None:
            raise ShiftNotFoundError(shift_id)
        return shift

    def current_shift(
        self, operator_id: str, device_id: str | None = None
    ) -> Shift | None:
        """Open shift of the operator; without a device id any device matches."""
        return self._store.find_open_shift(
            operator_id, device_id, any_device=device_id is None
        )

    def require_current_shift(
        self, operator_id: str, device_id: str | None = None
    ) -> Shift:
        shift = self.current_shift(operator_id, device_id)
        if shift is None:
            raise NoOpenShiftError(operator_id=operator_id, device_id=device_id)
        return shift

    # =========================================================================
    # Open
    # =========================================================================

    def open(
        self,
        operator_id: str,
        opening_float: Decimal,
        sector_id: str | None = None,
        device_id: str | None = None,
        created_by: str | None = None,
        notes: str | None = None,
    ) -> Shift:
        opening_float = require_non_negative(
            to_money(opening_float, "opening_float"), "opening_float"
        )
        with self._locks.operator(operator_id), self._store.transaction():
            existing = self._store.find_open_shift(operator_id, device_id)
            if existing is not None:
                logger.warning(
                    "shift_open_rejected",
                    extra={
                        "operator_id": operator_id,
                        "device_id": device_id,
                        "existing_shift_id": existing.id,
                    },
                )
                raise ShiftAlreadyOpenError(operator_id, device_id, existing.id)

            now = self._clock.now()
            shift = Shift(
                id=str(uuid4()),
                operator_id=operator_id,
                opened_at=now,
                opening_float=opening_float,
                sector_id=sector_id,
                device_id=device_id,
                created_by=created_by or operator_id,
                notes=notes,
            )
            self._store.add_shift(shift)
            self._store.append_operation(
                ShiftOperation(
                    id=str(uuid4()),
                    shift_id=shift.id,
                    kind=OperationKind.OPEN,
                    at=now,
                    amount=opening_float,
                    notes=notes,
                )
            )

        logger.info(
            "shift_opened",
            extra={
                "shift_id": shift.id,
                "operator_id": operator_id,
                "device_id": device_id,
                "opening_float": opening_float,
            },
        )
        return shift

    # =========================================================================
    # Ledger rows
    # =========================================================================

    def record(
        self,
        shift_id: str,
        kind: OperationKind,
        amount: Decimal | None,
        at: datetime | None = None,
        ref_type: RefType | None = None,
        ref_id: str | None = None,
        payment_method: PaymentMethod | None = None,
        notes: str | None = None,
    ) -> ShiftOperation:
        """Append one ledger row to an OPEN shift."""
        kind = OperationKind(kind)
        if kind not in _RECORDABLE_KINDS:
            raise ValidationError("kind", "OPEN/CLOSE rows are written by open/close", kind)
        if amount is not None:
            amount = require_non_negative(to_money(amount), "amount")

        with self._locks.shift(shift_id), self._store.transaction():
            shift = self._store.get_shift(shift_id, for_update=True)
            if shift is None:
                raise ShiftNotFoundError(shift_id)
            if not shift.is_open:
                raise NoOpenShiftError(
                    operator_id=shift.operator_id, shift_id=shift_id
                )
            operation = ShiftOperation(
                id=str(uuid4()),
                shift_id=shift_id,
                kind=kind,
                at=at or self._clock.now(),
                amount=amount,
                ref_type=ref_type,
                ref_id=ref_id,
                payment_method=payment_method,
                notes=notes,
            )
            self._store.append_operation(operation)

        logger.debug(
            "shift_operation_recorded",
            extra={
                "shift_id": shift_id,
                "kind": kind,
                "amount": amount,
                "ref_type": ref_type,
                "ref_id": ref_id,
            },
        )
        return operation

    def record_payment(self, payment: Payment) -> ShiftOperation:
        return self.record(
            payment.shift_id,
            OperationKind.ADJUSTMENT,
            payment.amount,
            at=payment.paid_at,
            ref_type=RefType.PAYMENT,
            ref_id=payment.id,
            payment_method=payment.method,
        )

    def withdraw(
        self,
        shift_id: str,
        amount: Decimal,
        reason: str,
        actor_id: str | None = None,
        approved_by: str | None = None,
        receipt_number: str | None = None,
    ) -> CashAdjustment:
        return self._adjust(
            AdjustmentType.WITHDRAWAL,
            shift_id,
            amount,
            reason,
            actor_id,
            approved_by,
            receipt_number,
        )

    def deposit(
        self,
        shift_id: str,
        amount: Decimal,
        reason: str,
        actor_id: str | None = None,
        approved_by: str | None = None,
        receipt_number: str | None = None,
    ) -> CashAdjustment:
        return self._adjust(
            AdjustmentType.DEPOSIT,
            shift_id,
            amount,
            reason,
            actor_id,
            approved_by,
            receipt_number,
        )

    def _adjust(
        self,
        adjustment_type: AdjustmentType,
        shift_id: str,
        amount: Decimal,
        reason: str,
        actor_id: str | None,
        approved_by: str | None,
        receipt_number: str | None,
    ) -> CashAdjustment:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount", "must be positive", amount)
        if not reason or not reason.strip():
            raise ValidationError("reason", "required for cash adjustments")

        with self._locks.shift(shift_id), self._store.transaction():
            adjustment = CashAdjustment(
                id=str(uuid4()),
                shift_id=shift_id,
                type=adjustment_type,
                amount=amount,
                at=self._clock.now(),
                reason=reason.strip(),
                receipt_number=receipt_number,
                actor_id=actor_id,
                approved_by=approved_by,
            )
            self.record(
                shift_id,
                OperationKind(adjustment_type.value),
                amount,
                at=adjustment.at,
                ref_type=RefType.CASH_ADJUSTMENT,
                ref_id=adjustment.id,
                notes=adjustment.reason,
            )
            self._store.add_cash_adjustment(adjustment)

        logger.info(
            "cash_adjustment_recorded",
            extra={
                "shift_id": shift_id,
                "adjustment_type": adjustment_type,
                "amount": amount,
                "approved_by": approved_by,
            },
        )
        return adjustment

    # =========================================================================
    # Totals
    # =========================================================================

    def totals(self, shift_id: str) -> ShiftTotals:
        shift = self.get_shift(shift_id)
        return replay(
            shift, self._store.operations_for_shift(shift_id), self._cash_methods
        )

    def reconcile(self, shift_id: str, declared_cash: Decimal) -> ReconciliationTotals:
        """Preview of the close variance.  Writes nothing."""
        declared = to_money(declared_cash, "declared_cash")
        expected = self.totals(shift_id).cash_expected
        return ReconciliationTotals(
            expected=expected, declared=declared, over_short=declared - expected
        )

    # =========================================================================
    # Close / cancel
    # =========================================================================

    def close(
        self,
        shift_id: str,
        declared_cash: Decimal,
        closed_by: str | None = None,
        notes: str | None = None,
    ) -> ShiftCloseResult:
        declared = require_non_negative(
            to_money(declared_cash, "declared_cash"), "declared_cash"
        )
        with LogContext.bind(shift_id=shift_id):
            with self._locks.shift(shift_id), self._store.transaction():
                shift = self._load_open(shift_id)
                totals = replay(
                    shift,
                    self._store.operations_for_shift(shift_id),
                    self._cash_methods,
                )
                over_short = declared - totals.cash_expected
                now = self._clock.now()
                self._store.append_operation(
                    ShiftOperation(
                        id=str(uuid4()),
                        shift_id=shift_id,
                        kind=OperationKind.CLOSE,
                        at=now,
                        amount=declared,
                        notes=notes,
                    )
                )
                closed = replace(
                    shift,
                    status=ShiftStatus.CLOSED,
                    closed_at=now,
                    closing_declared_cash=declared,
                    cash_over_short=over_short,
                    closed_by=closed_by or shift.operator_id,
                    notes=notes if notes is not None else shift.notes,
                )
                self._store.update_shift(closed)

            totals = replace(totals, cash_declared=declared, cash_over_short=over_short)
            logger.info(
                "shift_closed",
                extra={
                    "operator_id": shift.operator_id,
                    "cash_expected": totals.cash_expected,
                    "cash_declared": declared,
                    "cash_over_short": over_short,
                },
            )
            if over_short != 0:
                logger.warning(
                    "shift_cash_variance",
                    extra={"cash_over_short": over_short},
                )
        return ShiftCloseResult(shift=closed, totals=totals)

    def cancel(
        self,
        shift_id: str,
        canceled_by: str | None = None,
        notes: str | None = None,
    ) -> Shift:
        with self._locks.shift(shift_id), self._store.transaction():
            shift = self._load_open(shift_id)
            now = self._clock.now()
            self._store.append_operation(
                ShiftOperation(
                    id=str(uuid4()),
                    shift_id=shift_id,
                    kind=OperationKind.ADJUSTMENT,
                    at=now,
                    notes=notes or "shift canceled",
                )
            )
            canceled = replace(
                shift,
                status=ShiftStatus.CANCELED,
                closed_at=now,
                closed_by=canceled_by or shift.operator_id,
                notes=notes if notes is not None else shift.notes,
            )
            self._store.update_shift(canceled)

        logger.info(
            "shift_canceled",
            extra={"shift_id": shift_id, "canceled_by": canceled.closed_by},
        )
        return canceled

    def _load_open(self, shift_id: str) -> Shift:
        shift = self._store.get_shift(shift_id, for_update=True)
        if shift is None:
            raise ShiftNotFoundError(shift_id)
        if not shift.is_open:
            raise ShiftNotOpenError(shift_id, shift.status.value)
        return shift
