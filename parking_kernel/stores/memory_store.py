"""
In-memory ParkingStore.

Used by tests and by callers that keep state elsewhere.  Every write made
inside ``transaction()`` is logged in a per-thread undo journal; if the
unit of work raises, the journal is replayed backwards so that only this
thread's writes are undone.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from parking_kernel.domain.debt import Debt, DebtStatus
from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.payments import Payment, Sale
from parking_kernel.domain.pricing import PricingProfile
from parking_kernel.domain.session import ParkingSession, SessionStatus
from parking_kernel.domain.shift import (
    CashAdjustment,
    Shift,
    ShiftOperation,
    ShiftStatus,
)
from parking_kernel.exceptions import ImmutabilityViolationError, ValidationError
from parking_kernel.stores.interfaces import ParkingStore


class InMemoryParkingStore(ParkingStore):
    """Dict-backed store with per-thread rollback."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._local = threading.local()
        self._sessions: dict[str, ParkingSession] = {}
        self._shifts: dict[str, Shift] = {}
        self._operations: dict[str, list[ShiftOperation]] = {}
        self._operation_ids: set[str] = set()
        self._adjustments: dict[str, list[CashAdjustment]] = {}
        self._sales: dict[str, Sale] = {}
        self._payments: dict[str, Payment] = {}
        self._debts: dict[str, Debt] = {}
        self._profiles: dict[str, PricingProfile] = {}
        self._discounts: dict[str, DiscountDefinition] = {}

    # -- unit of work -----------------------------------------------------

    def _journal(self) -> list[Callable[[], None]] | None:
        return getattr(self._local, "journal", None)

    def _record_undo(self, undo: Callable[[], None]) -> None:
        journal = self._journal()
        if journal is not None:
            journal.append(undo)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._journal() is not None:
            yield
            return
        self._local.journal = []
        try:
            yield
        except Exception:
            with self._lock:
                for undo in reversed(self._local.journal):
                    undo()
            raise
        finally:
            self._local.journal = None

    def _put(self, table: dict, key: str, value: object) -> None:
        with self._lock:
            missing = object()
            previous = table.get(key, missing)
            table[key] = value

        def undo() -> None:
            if previous is missing:
                table.pop(key, None)
            else:
                table[key] = previous

        self._record_undo(undo)

    def _insert(self, table: dict, key: str, value: object, kind: str) -> None:
        with self._lock:
            if key in table:
                raise ValidationError("id", f"duplicate {kind} id", key)
        self._put(table, key, value)

    def _update(self, table: dict, key: str, value: object, kind: str) -> None:
        with self._lock:
            if key not in table:
                raise ValidationError("id", f"unknown {kind} id", key)
        self._put(table, key, value)

    # -- sessions ---------------------------------------------------------

    def get_session(self, session_id, for_update=False):
        with self._lock:
            return self._sessions.get(session_id)

    def add_session(self, session):
        self._insert(self._sessions, session.id, session, "session")

    def update_session(self, session):
        self._update(self._sessions, session.id, session, "session")

    def find_active_session(self, plate, sector_id):
        with self._lock:
            for s in self._sessions.values():
                if (
                    s.plate == plate
                    and s.sector_id == sector_id
                    and s.status is SessionStatus.ACTIVE
                ):
                    return s
        return None

    # -- shifts -----------------------------------------------------------

    def get_shift(self, shift_id, for_update=False):
        with self._lock:
            return self._shifts.get(shift_id)

    def add_shift(self, shift):
        self._insert(self._shifts, shift.id, shift, "shift")

    def update_shift(self, shift):
        with self._lock:
            current = self._shifts.get(shift.id)
        if current is not None and not current.is_open:
            raise ImmutabilityViolationError(
                "Shift", shift.id, f"shift is {current.status.value}"
            )
        self._update(self._shifts, shift.id, shift, "shift")

    def find_open_shift(self, operator_id, device_id, any_device=False):
        with self._lock:
            candidates = [
                s
                for s in self._shifts.values()
                if s.operator_id == operator_id
                and s.status is ShiftStatus.OPEN
                and (any_device or s.device_id == device_id)
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.opened_at)

    def append_operation(self, operation):
        with self._lock:
            if operation.id in self._operation_ids:
                raise ImmutabilityViolationError(
                    "ShiftOperation", operation.id, "ledger rows cannot be rewritten"
                )
            rows = self._operations.setdefault(operation.shift_id, [])
            rows.append(operation)
            self._operation_ids.add(operation.id)

        def undo() -> None:
            rows.remove(operation)
            self._operation_ids.discard(operation.id)

        self._record_undo(undo)

    def operations_for_shift(self, shift_id):
        with self._lock:
            return list(self._operations.get(shift_id, ()))

    def add_cash_adjustment(self, adjustment):
        with self._lock:
            rows = self._adjustments.setdefault(adjustment.shift_id, [])
            rows.append(adjustment)
        self._record_undo(lambda: rows.remove(adjustment))

    def adjustments_for_shift(self, shift_id):
        with self._lock:
            return list(self._adjustments.get(shift_id, ()))

    # -- sales and payments -----------------------------------------------

    def add_sale(self, sale):
        self._insert(self._sales, sale.id, sale, "sale")

    def add_payment(self, payment):
        self._insert(self._payments, payment.id, payment, "payment")

    def get_sale(self, sale_id):
        with self._lock:
            return self._sales.get(sale_id)

    def payment_for_session(self, session_id):
        with self._lock:
            for p in self._payments.values():
                if p.session_id == session_id:
                    return p
        return None

    # -- debts ------------------------------------------------------------

    def get_debt(self, debt_id, for_update=False):
        with self._lock:
            return self._debts.get(debt_id)

    def add_debt(self, debt):
        self._insert(self._debts, debt.id, debt, "debt")

    def update_debt(self, debt):
        self._update(self._debts, debt.id, debt, "debt")

    def find_debts(self, plate=None, status=None):
        with self._lock:
            debts = [
                d
                for d in self._debts.values()
                if (plate is None or d.plate == plate)
                and (status is None or d.status is DebtStatus(status))
            ]
        return sorted(debts, key=lambda d: d.created_at)

    # -- tariffs ----------------------------------------------------------

    def save_profile(self, profile):
        self._put(self._profiles, profile.id, profile)

    def get_profile(self, profile_id):
        with self._lock:
            return self._profiles.get(profile_id)

    def profiles_for_sector(self, sector_id):
        with self._lock:
            return [p for p in self._profiles.values() if p.sector_id == sector_id]

    def save_discount(self, discount):
        self._put(self._discounts, discount.id, discount)

    def get_discount(self, discount_id):
        with self._lock:
            return self._discounts.get(discount_id)
