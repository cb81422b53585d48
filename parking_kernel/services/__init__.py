"""Stateful services: session lifecycle, shift ledger, debts."""

from parking_kernel.services.assignments import (
    AssignmentDirectory,
    StaticAssignmentDirectory,
)
from parking_kernel.services.debt_service import DebtService, SettlementResult
from parking_kernel.services.locks import AggregateLocks
from parking_kernel.services.session_service import (
    CheckInResult,
    CheckoutResult,
    ForcedCheckoutResult,
    SessionStateMachine,
)
from parking_kernel.services.shift_ledger import ShiftCloseResult, ShiftLedger

__all__ = [
    "AssignmentDirectory",
    "StaticAssignmentDirectory",
    "DebtService",
    "SettlementResult",
    "AggregateLocks",
    "CheckInResult",
    "CheckoutResult",
    "ForcedCheckoutResult",
    "SessionStateMachine",
    "ShiftCloseResult",
    "ShiftLedger",
]
