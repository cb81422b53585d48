"""
SessionStateMachine end to end over the in-memory store.

Check-in rules, quoting, checkout with each payment path, idempotent
replays, forced checkout into a debt, and rollback on failure.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from parking_kernel.domain.debt import DebtOrigin, DebtStatus
from parking_kernel.domain.discounts import DiscountDefinition, DiscountType
from parking_kernel.domain.payments import PaymentMethod
from parking_kernel.domain.session import SessionStatus
from parking_kernel.domain.shift import OperationKind
from parking_kernel.exceptions import (
    AssignmentNotActiveError,
    DuplicateActiveSessionError,
    InsufficientPaymentError,
    InvalidTransitionError,
    NoOpenShiftError,
    SessionNotFoundError,
)
from parking_kernel.services.session_service import SessionStateMachine
from parking_kernel.services.shift_ledger import ShiftLedger


@pytest.fixture
def active(state_machine, open_shift):
    """An ACTIVE session checked in by op-1 at the clock's start time."""
    return state_machine.check_in("ab 12 cd", "centro", None, "op-1").session


class TestCheckIn:
    def test_creates_active_session(self, state_machine, open_shift, deterministic_clock, captured_logs):
        result = state_machine.check_in("ab 12 cd", "centro", "street-4", "op-1")

        session = result.session
        assert session.status is SessionStatus.ACTIVE
        assert session.plate == "AB12CD"
        assert session.started_at == deterministic_clock.now()
        assert session.street_id == "street-4"
        assert result.pending_debts == ()
        assert state_machine.get_session(session.id) == session
        assert any(r["message"] == "session_checked_in" for r in captured_logs())

    def test_requires_assignment(self, state_machine, open_shift):
        with pytest.raises(AssignmentNotActiveError) as exc_info:
            state_machine.check_in("AB12CD", "norte", None, "op-1")
        assert exc_info.value.sector_id == "norte"

    def test_street_level_assignment(self, state_machine, assignments, ledger):
        assignments.assign("op-2", "norte", "street-1")
        ledger.open("op-2", Decimal("0"))

        state_machine.check_in("AB12CD", "norte", "street-1", "op-2")
        with pytest.raises(AssignmentNotActiveError):
            state_machine.check_in("ZZ99ZZ", "norte", "street-2", "op-2")

    def test_requires_open_shift(self, state_machine):
        with pytest.raises(NoOpenShiftError):
            state_machine.check_in("AB12CD", "centro", None, "op-1")

    def test_shift_requirement_can_be_disabled(
        self, memory_store, ledger, assignments, deterministic_clock
    ):
        machine = SessionStateMachine(
            memory_store, ledger, assignments,
            clock=deterministic_clock, require_shift_for_check_in=False,
        )
        assert machine.check_in("AB12CD", "centro", None, "op-1").session.is_active

    def test_duplicate_active_plate_rejected(self, state_machine, active):
        with pytest.raises(DuplicateActiveSessionError) as exc_info:
            state_machine.check_in("AB12CD", "centro", None, "op-1")
        assert exc_info.value.existing_session_id == active.id

    def test_same_plate_other_sector_allowed(self, state_machine, assignments, active):
        assignments.assign("op-1", "norte")
        assert state_machine.check_in("AB12CD", "norte", None, "op-1").session.is_active

    def test_reports_pending_debts(self, state_machine, debt_service, open_shift):
        debt_service.create_manual("AB12CD", Decimal("1200"))
        debt_service.create_manual("AB12CD", Decimal("800"), origin=DebtOrigin.FINE)

        result = state_machine.check_in("ab12cd", "centro", None, "op-1")
        assert len(result.pending_debts) == 2
        assert result.pending_total == Decimal("2000")

    def test_revoked_assignment(self, state_machine, assignments, open_shift):
        assignments.revoke("op-1", "centro")
        with pytest.raises(AssignmentNotActiveError):
            state_machine.check_in("AB12CD", "centro", None, "op-1")


class TestQuote:
    def test_quote_is_read_only(self, state_machine, active, profile, deterministic_clock):
        deterministic_clock.advance(minutes=90)
        quote = state_machine.quote(active.id, profile)

        assert quote.gross_amount == Decimal("2500")
        assert state_machine.get_session(active.id).status is SessionStatus.ACTIVE

    def test_quote_requires_active(self, state_machine, active, profile):
        state_machine.cancel(active.id)
        with pytest.raises(InvalidTransitionError):
            state_machine.quote(active.id, profile)

    def test_unknown_session(self, state_machine, profile):
        with pytest.raises(SessionNotFoundError):
            state_machine.quote("missing", profile)


class TestCheckout:
    def test_cash_with_change(self, state_machine, active, profile, deterministic_clock, ledger, open_shift):
        deterministic_clock.advance(minutes=90)
        result = state_machine.checkout(
            active.id, profile, PaymentMethod.CASH, Decimal("3000"), "op-1"
        )

        session = result.session
        assert session.status is SessionStatus.PAID
        assert session.gross_amount == Decimal("2500")
        assert session.net_amount == Decimal("2500")
        assert session.seconds_total == 5400
        assert session.ended_at == deterministic_clock.now()
        assert session.operator_out_id == "op-1"
        assert result.change == Decimal("500")
        assert result.payment.amount == Decimal("2500")
        assert result.payment.amount_received == Decimal("3000")
        assert result.payment.shift_id == open_shift.id
        assert result.sale.total == Decimal("2500")
        assert result.quote.gross_amount == Decimal("2500")
        assert not result.replayed

        totals = ledger.totals(open_shift.id)
        assert totals.cash_collected == Decimal("2500")
        assert totals.tickets_count == 1

    def test_card_payment(self, state_machine, active, profile, deterministic_clock, ledger, open_shift):
        deterministic_clock.advance(minutes=90)
        result = state_machine.checkout(
            active.id, profile, PaymentMethod.CARD, Decimal("0"), "op-1",
            approval_code="A-77",
        )

        assert result.change == Decimal("0")
        assert result.payment.amount_received == Decimal("2500")
        assert result.payment.approval_code == "A-77"
        totals = ledger.totals(open_shift.id)
        assert totals.cash_collected == Decimal("0")
        assert totals.payments_by_method == {"CARD": Decimal("2500")}

    def test_discount_persisted(self, state_machine, active, profile, percentage_discount, deterministic_clock):
        deterministic_clock.advance(minutes=90)
        result = state_machine.checkout(
            active.id, profile, "CASH", Decimal("2000"), "op-1",
            discount=percentage_discount,
        )
        assert result.session.discount_amount == Decimal("500")
        assert result.session.net_amount == Decimal("2000")
        assert result.session.discount_id == "residents"
        assert result.sale.subtotal == Decimal("2500")
        assert result.sale.discount_amount == Decimal("500")

    def test_insufficient_cash(self, state_machine, active, profile, deterministic_clock, memory_store, open_shift):
        deterministic_clock.advance(minutes=90)
        with pytest.raises(InsufficientPaymentError) as exc_info:
            state_machine.checkout(active.id, profile, PaymentMethod.CASH, Decimal("2000"), "op-1")

        assert exc_info.value.amount_due == Decimal("2500")
        assert state_machine.get_session(active.id).status is SessionStatus.ACTIVE
        assert memory_store.payment_for_session(active.id) is None
        assert len(memory_store.operations_for_shift(open_shift.id)) == 1

    def test_cash_methods_are_configurable(
        self, memory_store, locks, assignments, deterministic_clock, profile
    ):
        ledger = ShiftLedger(
            memory_store, clock=deterministic_clock, locks=locks,
            cash_methods=("CASH", "TRANSFER"),
        )
        ledger.open("op-1", Decimal("50000"), sector_id="centro")
        machine = SessionStateMachine(memory_store, ledger, assignments, clock=deterministic_clock)
        session = machine.check_in("AB12CD", "centro", None, "op-1").session
        deterministic_clock.advance(minutes=90)
        with pytest.raises(InsufficientPaymentError):
            machine.checkout(session.id, profile, PaymentMethod.TRANSFER, Decimal("100"), "op-1")

    def test_configured_cash_method_reaches_drawer(
        self, memory_store, locks, assignments, deterministic_clock, profile
    ):
        """A method that gives change is also counted as cash in the shift."""
        ledger = ShiftLedger(
            memory_store, clock=deterministic_clock, locks=locks,
            cash_methods=("CASH", "TRANSFER"),
        )
        shift = ledger.open("op-1", Decimal("50000"), sector_id="centro")
        machine = SessionStateMachine(memory_store, ledger, assignments, clock=deterministic_clock)
        session = machine.check_in("AB12CD", "centro", None, "op-1").session
        deterministic_clock.advance(minutes=90)

        result = machine.checkout(session.id, profile, PaymentMethod.TRANSFER, Decimal("5000"), "op-1")

        assert result.change == Decimal("2500")
        assert result.payment.amount_received == Decimal("5000")
        totals = ledger.totals(shift.id)
        assert totals.cash_collected == Decimal("2500")
        assert totals.cash_expected == Decimal("52500")
        assert totals.payments_by_method == {"TRANSFER": Decimal("2500")}

        closed = ledger.close(shift.id, declared_cash=Decimal("52500"))
        assert closed.totals.cash_over_short == Decimal("0")

    def test_checkout_operator_needs_shift(self, state_machine, active, profile, deterministic_clock, memory_store):
        deterministic_clock.advance(minutes=90)
        with pytest.raises(NoOpenShiftError):
            state_machine.checkout(active.id, profile, PaymentMethod.CASH, Decimal("2500"), "op-2")
        assert state_machine.get_session(active.id).is_active
        assert memory_store.payment_for_session(active.id) is None

    def test_zero_net_creates_no_payment(self, state_machine, active, profile, deterministic_clock):
        waiver = DiscountDefinition(
            id="waiver", name="waiver", discount_type=DiscountType.AMOUNT,
            value=Decimal("100000"),
        )
        deterministic_clock.advance(minutes=90)
        # op-2 has no shift; nothing needs recording
        result = state_machine.checkout(
            active.id, profile, PaymentMethod.CASH, Decimal("0"), "op-2", discount=waiver
        )
        assert result.session.status is SessionStatus.PAID
        assert result.session.net_amount == Decimal("0")
        assert result.sale is None
        assert result.payment is None

    def test_repeat_checkout_is_replayed(self, state_machine, active, profile, deterministic_clock, memory_store, open_shift):
        deterministic_clock.advance(minutes=90)
        first = state_machine.checkout(active.id, profile, "CASH", Decimal("3000"), "op-1")
        deterministic_clock.advance(minutes=30)
        second = state_machine.checkout(active.id, profile, "CASH", Decimal("9000"), "op-1")

        assert second.replayed
        assert second.quote is None
        assert second.payment == first.payment
        assert second.sale == first.sale
        assert second.change == Decimal("500")
        assert second.session.net_amount == Decimal("2500")
        payments = [
            op for op in memory_store.operations_for_shift(open_shift.id) if op.is_payment
        ]
        assert len(payments) == 1

    def test_rolls_back_when_ledger_write_fails(
        self, state_machine, active, profile, deterministic_clock, memory_store, monkeypatch
    ):
        deterministic_clock.advance(minutes=90)

        def _fail(operation):
            raise RuntimeError("disk full")

        monkeypatch.setattr(memory_store, "append_operation", _fail)
        with pytest.raises(RuntimeError):
            state_machine.checkout(active.id, profile, "CASH", Decimal("2500"), "op-1")

        assert state_machine.get_session(active.id).is_active
        assert memory_store.payment_for_session(active.id) is None

    def test_checkout_after_cancel_rejected(self, state_machine, active, profile):
        state_machine.cancel(active.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.checkout(active.id, profile, "CASH", Decimal("0"), "op-1")
        assert exc_info.value.from_state == "CANCELED"


class TestClose:
    def test_paid_session_archived(self, state_machine, active, profile, deterministic_clock):
        deterministic_clock.advance(minutes=90)
        state_machine.checkout(active.id, profile, "CASH", Decimal("2500"), "op-1")

        closed = state_machine.close(active.id)
        assert closed.status is SessionStatus.CLOSED
        assert closed.net_amount == Decimal("2500")

    def test_active_session_cannot_be_closed(self, state_machine, active):
        with pytest.raises(InvalidTransitionError):
            state_machine.close(active.id)


class TestForceCheckout:
    def test_creates_pending_session_debt(
        self, state_machine, active, capped_profile, deterministic_clock, memory_store
    ):
        """150 minutes at 20 per minute leaves a debt of 3000."""
        deterministic_clock.advance(minutes=150)
        result = state_machine.force_checkout(active.id, capped_profile, notes="drove off")

        assert result.quote.net_amount == Decimal("3000")
        assert result.session.status is SessionStatus.CLOSED
        assert result.session.net_amount == Decimal("3000")
        debt = result.debt
        assert debt.principal_amount == Decimal("3000")
        assert debt.origin is DebtOrigin.SESSION
        assert debt.status is DebtStatus.PENDING
        assert debt.session_id == active.id
        assert debt.plate == "AB12CD"
        assert memory_store.get_debt(debt.id) == debt
        assert memory_store.payment_for_session(active.id) is None

    def test_debt_shows_on_next_check_in(self, state_machine, active, capped_profile, deterministic_clock):
        deterministic_clock.advance(minutes=150)
        state_machine.force_checkout(active.id, capped_profile)

        again = state_machine.check_in("AB12CD", "centro", None, "op-1")
        assert again.pending_total == Decimal("3000")

    def test_only_from_active(self, state_machine, active, capped_profile):
        state_machine.cancel(active.id)
        with pytest.raises(InvalidTransitionError):
            state_machine.force_checkout(active.id, capped_profile)


class TestCancel:
    def test_cancel_active(self, state_machine, active, memory_store, open_shift):
        canceled = state_machine.cancel(active.id)
        assert canceled.status is SessionStatus.CANCELED
        assert canceled.net_amount is None
        assert [op.kind for op in memory_store.operations_for_shift(open_shift.id)] == [
            OperationKind.OPEN
        ]

    def test_cancel_twice_rejected(self, state_machine, active):
        state_machine.cancel(active.id)
        with pytest.raises(InvalidTransitionError):
            state_machine.cancel(active.id)

    def test_plate_free_after_cancel(self, state_machine, active, deterministic_clock):
        state_machine.cancel(active.id)
        deterministic_clock.advance(minutes=1)
        assert state_machine.check_in("AB12CD", "centro", None, "op-1").session.id != active.id
