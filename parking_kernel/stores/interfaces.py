"""Store interface (repository pattern).

Stores are swappable and speak domain objects only.  Services open a unit
of work with ``transaction()``; nested calls join the outer unit and only
the outermost one commits or rolls back.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from parking_kernel.domain.debt import Debt, DebtStatus
from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.payments import Payment, Sale
from parking_kernel.domain.pricing import PricingProfile
from parking_kernel.domain.session import ParkingSession
from parking_kernel.domain.shift import CashAdjustment, Shift, ShiftOperation


class ParkingStore(ABC):
    """Persistence operations for sessions, shifts, ledger rows and debts."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Unit of work: commit on success, roll back and re-raise on error."""
        ...

    # -- sessions ---------------------------------------------------------

    @abstractmethod
    def get_session(
        self, session_id: str, for_update: bool = False
    ) -> ParkingSession | None:
        ...

    @abstractmethod
    def add_session(self, session: ParkingSession) -> None:
        ...

    @abstractmethod
    def update_session(self, session: ParkingSession) -> None:
        ...

    @abstractmethod
    def find_active_session(
        self, plate: str, sector_id: str
    ) -> ParkingSession | None:
        """Return the ACTIVE session for the plate in the sector, if any."""
        ...

    # -- shifts -----------------------------------------------------------

    @abstractmethod
    def get_shift(self, shift_id: str, for_update: bool = False) -> Shift | None:
        ...

    @abstractmethod
    def add_shift(self, shift: Shift) -> None:
        ...

    @abstractmethod
    def update_shift(self, shift: Shift) -> None:
        """Persist a status change.  Closed or canceled shifts are frozen."""
        ...

    @abstractmethod
    def find_open_shift(
        self, operator_id: str, device_id: str | None, any_device: bool = False
    ) -> Shift | None:
        """
        Return the operator's OPEN shift.

        With ``any_device`` the device is ignored; otherwise it must match
        exactly (None matches only shifts opened without a device).
        """
        ...

    @abstractmethod
    def append_operation(self, operation: ShiftOperation) -> None:
        """Append a ledger row.  There is no update or delete counterpart."""
        ...

    @abstractmethod
    def operations_for_shift(self, shift_id: str) -> list[ShiftOperation]:
        """Ledger rows of a shift in append order."""
        ...

    @abstractmethod
    def add_cash_adjustment(self, adjustment: CashAdjustment) -> None:
        ...

    @abstractmethod
    def adjustments_for_shift(self, shift_id: str) -> list[CashAdjustment]:
        ...

    # -- sales and payments -----------------------------------------------

    @abstractmethod
    def add_sale(self, sale: Sale) -> None:
        ...

    @abstractmethod
    def add_payment(self, payment: Payment) -> None:
        ...

    @abstractmethod
    def get_sale(self, sale_id: str) -> Sale | None:
        ...

    @abstractmethod
    def payment_for_session(self, session_id: str) -> Payment | None:
        ...

    # -- debts ------------------------------------------------------------

    @abstractmethod
    def get_debt(self, debt_id: str, for_update: bool = False) -> Debt | None:
        ...

    @abstractmethod
    def add_debt(self, debt: Debt) -> None:
        ...

    @abstractmethod
    def update_debt(self, debt: Debt) -> None:
        ...

    @abstractmethod
    def find_debts(
        self, plate: str | None = None, status: DebtStatus | None = None
    ) -> list[Debt]:
        """Debts filtered by plate and/or status, oldest first."""
        ...

    # -- tariffs ----------------------------------------------------------

    @abstractmethod
    def save_profile(self, profile: PricingProfile) -> None:
        """Insert a pricing profile with its rules (replaces a same-id profile)."""
        ...

    @abstractmethod
    def get_profile(self, profile_id: str) -> PricingProfile | None:
        ...

    @abstractmethod
    def profiles_for_sector(self, sector_id: str) -> list[PricingProfile]:
        ...

    @abstractmethod
    def save_discount(self, discount: DiscountDefinition) -> None:
        ...

    @abstractmethod
    def get_discount(self, discount_id: str) -> DiscountDefinition | None:
        ...
