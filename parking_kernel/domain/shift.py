"""
Shift -- operator cash drawer and its append-only ledger.

Responsibility:
    Value types for shifts, ledger rows (``ShiftOperation``) and cash
    adjustments, plus ``replay`` which derives every drawer total from the
    ledger rows alone.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``ShiftLedger`` (services layer)
    appends rows; this module only reads them.

Invariants enforced:
    - expected = opening_float + cash collections + deposits - withdrawals
    - Only CASH payments reach the drawer; other methods are tallied in
      ``payments_by_method`` only.
    - Totals are a pure function of the ledger rows (replay).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Collection, Iterable

from parking_kernel.domain.payments import PaymentMethod
from parking_kernel.domain.values import ZERO


class ShiftStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    CANCELED = "CANCELED"


class OperationKind(str, Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    ADJUSTMENT = "ADJUSTMENT"
    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"


class RefType(str, Enum):
    PAYMENT = "PAYMENT"
    CASH_ADJUSTMENT = "CASH_ADJUSTMENT"


class AdjustmentType(str, Enum):
    WITHDRAWAL = "WITHDRAWAL"
    DEPOSIT = "DEPOSIT"


@dataclass(frozen=True)
class Shift:
    """
    An operator's work shift and cash drawer.

    At most one OPEN shift exists per (operator_id, device_id).
    """

    id: str
    operator_id: str
    opened_at: datetime
    opening_float: Decimal
    status: ShiftStatus = ShiftStatus.OPEN
    sector_id: str | None = None
    device_id: str | None = None
    closed_at: datetime | None = None
    closing_declared_cash: Decimal | None = None
    cash_over_short: Decimal | None = None
    created_by: str | None = None
    closed_by: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ShiftStatus(self.status))

    @property
    def is_open(self) -> bool:
        return self.status is ShiftStatus.OPEN


@dataclass(frozen=True)
class ShiftOperation:
    """One append-only ledger row.  Never updated, never deleted."""

    id: str
    shift_id: str
    kind: OperationKind
    at: datetime
    amount: Decimal | None = None
    ref_type: RefType | None = None
    ref_id: str | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", OperationKind(self.kind))
        if self.ref_type is not None:
            object.__setattr__(self, "ref_type", RefType(self.ref_type))
        if self.payment_method is not None:
            object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))

    @property
    def is_payment(self) -> bool:
        return self.kind is OperationKind.ADJUSTMENT and self.ref_type is RefType.PAYMENT


@dataclass(frozen=True)
class CashAdjustment:
    id: str
    shift_id: str
    type: AdjustmentType
    amount: Decimal
    at: datetime
    reason: str
    receipt_number: str | None = None
    actor_id: str | None = None
    approved_by: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", AdjustmentType(self.type))


@dataclass(frozen=True)
class ReconciliationTotals:
    expected: Decimal
    declared: Decimal
    over_short: Decimal


@dataclass(frozen=True)
class ShiftTotals:
    """Drawer totals derived by replaying a shift's ledger."""

    opening_float: Decimal
    cash_collected: Decimal
    cash_withdrawals: Decimal
    cash_deposits: Decimal
    cash_expected: Decimal
    cash_declared: Decimal | None = None
    cash_over_short: Decimal | None = None
    tickets_count: int = 0
    sales_total: Decimal = ZERO
    payments_by_method: dict[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        def _s(v: Decimal | None) -> str | None:
            return None if v is None else str(v)

        return {
            "opening_float": str(self.opening_float),
            "cash_collected": str(self.cash_collected),
            "cash_withdrawals": str(self.cash_withdrawals),
            "cash_deposits": str(self.cash_deposits),
            "cash_expected": str(self.cash_expected),
            "cash_declared": _s(self.cash_declared),
            "cash_over_short": _s(self.cash_over_short),
            "tickets_count": self.tickets_count,
            "sales_total": str(self.sales_total),
            "payments_by_method": {
                k: str(v) for k, v in sorted(self.payments_by_method.items())
            },
        }


def replay(
    shift: Shift,
    operations: Iterable[ShiftOperation],
    cash_methods: Collection[PaymentMethod] = (PaymentMethod.CASH,),
) -> ShiftTotals:
    """
    Fold a shift's ledger rows into its totals.

    Payments whose method is in ``cash_methods`` go into the drawer; a row
    without a method counts as CASH.
    """
    opening_float: Decimal | None = None
    collected = ZERO
    withdrawals = ZERO
    deposits = ZERO
    tickets = 0
    sales_total = ZERO
    by_method: dict[str, Decimal] = {}

    for op in operations:
        amount = op.amount or ZERO
        if op.kind is OperationKind.OPEN:
            opening_float = amount
        elif op.kind is OperationKind.WITHDRAWAL:
            withdrawals += amount
        elif op.kind is OperationKind.DEPOSIT:
            deposits += amount
        elif op.is_payment:
            tickets += 1
            sales_total += amount
            method = op.payment_method or PaymentMethod.CASH
            by_method[method.value] = by_method.get(method.value, ZERO) + amount
            if method in cash_methods:
                collected += amount

    if opening_float is None:
        opening_float = shift.opening_float
    expected = opening_float + collected + deposits - withdrawals

    return ShiftTotals(
        opening_float=opening_float,
        cash_collected=collected,
        cash_withdrawals=withdrawals,
        cash_deposits=deposits,
        cash_expected=expected,
        cash_declared=shift.closing_declared_cash,
        cash_over_short=shift.cash_over_short,
        tickets_count=tickets,
        sales_total=sales_total,
        payments_by_method=by_method,
    )
