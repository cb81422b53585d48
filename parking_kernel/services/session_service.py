"""
parking_kernel.services.session_service
=======================================

Responsibility:
    Drives a parking session through its declared lifecycle: check-in,
    quoting, checkout with payment, archive, forced checkout into a debt,
    and cancellation.  Every status change goes through
    ``SESSION_WORKFLOW``; anything it does not declare is refused with
    ``InvalidTransitionError``.

Architecture:
    Services layer.  Pricing is delegated to the pure ``QuoteCalculator``;
    cash is delegated to ``ShiftLedger``.  Each mutating method holds the
    session's aggregate lock and runs inside one store transaction, so a
    checkout either persists the priced session, the sale, the payment and
    the ledger row together or persists nothing.

Invariants enforced:
    - One ACTIVE session per (plate, sector).
    - Concurrent checkouts of one session serialize; the loser observes
      PAID and gets the stored result back flagged ``replayed``.
    - Payment amount is the net amount; cash change is reported, not
      recorded as revenue.
    - A forced checkout leaves a PENDING debt of the quoted net amount.

Failure modes:
    - SessionNotFoundError, InvalidTransitionError.
    - AssignmentNotActiveError, DuplicateActiveSessionError,
      NoOpenShiftError on check-in.
    - InsufficientPaymentError, NoOpenShiftError on checkout.
    - Discount and pricing errors propagate from QuoteCalculator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from parking_kernel.domain.clock import Clock, SystemClock
from parking_kernel.domain.debt import Debt, DebtOrigin, DebtStatus
from parking_kernel.domain.discounts import DiscountDefinition
from parking_kernel.domain.payments import Payment, PaymentMethod, Sale
from parking_kernel.domain.quote import Quote, QuoteCalculator, RuleSet
from parking_kernel.domain.session import (
    ParkingSession,
    SessionStatus,
    advance,
    normalize_plate,
)
from parking_kernel.domain.values import ZERO, to_money
from parking_kernel.exceptions import (
    AssignmentNotActiveError,
    DuplicateActiveSessionError,
    InsufficientPaymentError,
    InvalidTransitionError,
    SessionNotFoundError,
)
from parking_kernel.logging_config import LogContext, get_logger
from parking_kernel.services.assignments import AssignmentDirectory
from parking_kernel.services.shift_ledger import ShiftLedger
from parking_kernel.stores.interfaces import ParkingStore

logger = get_logger("services.session")


@dataclass(frozen=True)
class CheckInResult:
    session: ParkingSession
    pending_debts: tuple[Debt, ...] = ()

    @property
    def pending_total(self) -> Decimal:
        return sum((d.principal_amount for d in self.pending_debts), ZERO)


@dataclass(frozen=True)
class CheckoutResult:
    """
    Outcome of a checkout.

    ``quote`` is None on a replayed result; the stored session carries the
    amounts that were charged.
    """

    session: ParkingSession
    sale: Sale | None
    payment: Payment | None
    change: Decimal
    quote: Quote | None = None
    replayed: bool = False


@dataclass(frozen=True)
class ForcedCheckoutResult:
    session: ParkingSession
    quote: Quote
    debt: Debt


class SessionStateMachine:
    """
    Parking session lifecycle service.

    Contract:
        Mutating methods run under the session lock inside a single store
        transaction and either complete or leave the store untouched.
        ``quote`` and ``pending_debts`` are read-only.
    """

    def __init__(
        self,
        store: ParkingStore,
        ledger: ShiftLedger,
        assignments: AssignmentDirectory,
        calculator: QuoteCalculator | None = None,
        clock: Clock | None = None,
        require_shift_for_check_in: bool = True,
    ):
        self._store = store
        self._ledger = ledger
        self._assignments = assignments
        self._calculator = calculator or QuoteCalculator()
        self._clock = clock or SystemClock()
        self._locks = ledger.locks
        self._require_shift = require_shift_for_check_in

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_session(self, session_id: str) -> ParkingSession:
        session = self._store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _load(self, session_id: str) -> ParkingSession:
        session = self._store.get_session(session_id, for_update=True)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def pending_debts(self, plate: str) -> list[Debt]:
        return self._store.find_debts(normalize_plate(plate), DebtStatus.PENDING)

    # =========================================================================
    # Check-in
    # =========================================================================

    def check_in(
        self,
        plate: str,
        sector_id: str,
        street_id: str | None,
        operator_id: str,
        is_full_day: bool = False,
    ) -> CheckInResult:
        plate = normalize_plate(plate)
        if not self._assignments.is_active(operator_id, sector_id, street_id):
            logger.warning(
                "check_in_rejected_assignment",
                extra={"operator_id": operator_id, "sector_id": sector_id},
            )
            raise AssignmentNotActiveError(operator_id, sector_id, street_id)
        if self._require_shift:
            self._ledger.require_current_shift(operator_id)

        with self._locks.hold("plate", f"{sector_id}:{plate}"), self._store.transaction():
            existing = self._store.find_active_session(plate, sector_id)
            if existing is not None:
                raise DuplicateActiveSessionError(plate, sector_id, existing.id)
            created = ParkingSession(
                id=str(uuid4()),
                plate=plate,
                sector_id=sector_id,
                street_id=street_id,
                operator_in_id=operator_id,
                started_at=self._clock.now(),
                is_full_day=is_full_day,
            )
            session = advance(created, "check_in")
            self._store.add_session(session)

        debts = tuple(self.pending_debts(plate))
        logger.info(
            "session_checked_in",
            extra={
                "session_id": session.id,
                "plate": plate,
                "sector_id": sector_id,
                "operator_id": operator_id,
                "pending_debts": len(debts),
            },
        )
        return CheckInResult(session=session, pending_debts=debts)

    # =========================================================================
    # Quote
    # =========================================================================

    def quote(
        self,
        session_id: str,
        rule_set: RuleSet,
        discount: DiscountDefinition | None = None,
        ended_at: datetime | None = None,
    ) -> Quote:
        session = self.get_session(session_id)
        if session.status is not SessionStatus.ACTIVE:
            raise InvalidTransitionError(session_id, session.status.value, "quote")
        return self._calculator.quote(
            session, rule_set, discount, ended_at=ended_at or self._clock.now()
        )

    # =========================================================================
    # Checkout
    # =========================================================================

    def checkout(
        self,
        session_id: str,
        rule_set: RuleSet,
        payment_method: PaymentMethod,
        amount: Decimal,
        operator_out_id: str,
        discount: DiscountDefinition | None = None,
        ended_at: datetime | None = None,
        approval_code: str | None = None,
        device_id: str | None = None,
    ) -> CheckoutResult:
        method = PaymentMethod(payment_method)
        received = to_money(amount, "amount")

        with LogContext.bind(session_id=session_id, operator_id=operator_out_id):
            with self._locks.session(session_id), self._store.transaction():
                session = self._load(session_id)
                if session.status is SessionStatus.PAID:
                    return self._replay(session)
                if session.status is not SessionStatus.ACTIVE:
                    raise InvalidTransitionError(
                        session_id, session.status.value, "checkout"
                    )

                ended = ended_at or self._clock.now()
                quote = self._calculator.quote(session, rule_set, discount, ended_at=ended)
                net = quote.net_amount
                is_cash = self._ledger.is_cash(method)
                if is_cash and received < net:
                    raise InsufficientPaymentError(net, received)

                to_pay = advance(
                    session,
                    "checkout",
                    operator_out_id=operator_out_id,
                    ended_at=ended,
                    seconds_total=quote.seconds_total,
                    gross_amount=quote.gross_amount,
                    discount_amount=quote.discount_amount,
                    net_amount=net,
                    discount_id=quote.discount_id,
                )

                sale = payment = None
                change = ZERO
                if net > 0:
                    shift = self._ledger.require_current_shift(operator_out_id, device_id)
                    now = self._clock.now()
                    change = received - net if is_cash else ZERO
                    sale = Sale(
                        id=str(uuid4()),
                        cashier_operator_id=operator_out_id,
                        subtotal=quote.gross_amount,
                        discount_amount=quote.discount_amount,
                        total=net,
                        created_at=now,
                        session_id=session_id,
                    )
                    payment = Payment(
                        id=str(uuid4()),
                        sale_id=sale.id,
                        shift_id=shift.id,
                        method=method,
                        amount=net,
                        paid_at=now,
                        amount_received=received if is_cash else net,
                        change=change,
                        session_id=session_id,
                        approval_code=approval_code,
                    )
                    self._store.add_sale(sale)
                    self._store.add_payment(payment)
                    self._ledger.record_payment(payment)

                paid = advance(to_pay, "pay")
                self._store.update_session(paid)

            logger.info(
                "checkout_completed",
                extra={
                    "gross_amount": quote.gross_amount,
                    "discount_amount": quote.discount_amount,
                    "net_amount": net,
                    "payment_method": method,
                    "change": change,
                    "warnings": len(quote.warnings),
                },
            )
        return CheckoutResult(
            session=paid, sale=sale, payment=payment, change=change, quote=quote
        )

    def _replay(self, session: ParkingSession) -> CheckoutResult:
        payment = self._store.payment_for_session(session.id)
        sale = self._store.get_sale(payment.sale_id) if payment is not None else None
        logger.info("checkout_replayed", extra={"net_amount": session.net_amount})
        return CheckoutResult(
            session=session,
            sale=sale,
            payment=payment,
            change=payment.change if payment is not None else ZERO,
            replayed=True,
        )

    # =========================================================================
    # Close / force / cancel
    # =========================================================================

    def close(self, session_id: str) -> ParkingSession:
        """Archive a paid session."""
        with self._locks.session(session_id), self._store.transaction():
            closed = advance(self._load(session_id), "close")
            self._store.update_session(closed)
        logger.info("session_closed", extra={"session_id": session_id})
        return closed

    def force_checkout(
        self,
        session_id: str,
        rule_set: RuleSet,
        ended_at: datetime | None = None,
        operator_out_id: str | None = None,
        notes: str | None = None,
    ) -> ForcedCheckoutResult:
        """Close an ACTIVE session without payment; the amount becomes a debt."""
        with self._locks.session(session_id), self._store.transaction():
            session = self._load(session_id)
            if session.status is not SessionStatus.ACTIVE:
                raise InvalidTransitionError(
                    session_id, session.status.value, "force_checkout"
                )
            ended = ended_at or self._clock.now()
            quote = self._calculator.quote(session, rule_set, ended_at=ended)
            closed = advance(
                session,
                "force_checkout",
                operator_out_id=operator_out_id,
                ended_at=ended,
                seconds_total=quote.seconds_total,
                gross_amount=quote.gross_amount,
                discount_amount=quote.discount_amount,
                net_amount=quote.net_amount,
            )
            debt = Debt(
                id=str(uuid4()),
                plate=session.plate,
                origin=DebtOrigin.SESSION,
                principal_amount=quote.net_amount,
                created_at=self._clock.now(),
                session_id=session_id,
                notes=notes,
            )
            self._store.update_session(closed)
            self._store.add_debt(debt)

        logger.info(
            "session_force_checked_out",
            extra={
                "session_id": session_id,
                "debt_id": debt.id,
                "principal_amount": debt.principal_amount,
            },
        )
        return ForcedCheckoutResult(session=closed, quote=quote, debt=debt)

    def cancel(self, session_id: str) -> ParkingSession:
        with self._locks.session(session_id), self._store.transaction():
            canceled = advance(self._load(session_id), "cancel")
            self._store.update_session(canceled)
        logger.info("session_canceled", extra={"session_id": session_id})
        return canceled
