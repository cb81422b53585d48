"""DebtService: manual debts, settlement through the shift ledger, summaries."""

from decimal import Decimal

import pytest

from parking_kernel.domain.debt import DebtOrigin, DebtStatus
from parking_kernel.domain.payments import PaymentMethod
from parking_kernel.exceptions import (
    DebtNotFoundError,
    DebtNotPendingError,
    NoOpenShiftError,
    ValidationError,
)


class TestCreateManual:
    def test_creates_pending_debt(self, debt_service, deterministic_clock, captured_logs):
        debt = debt_service.create_manual(" ab12cd ", Decimal("1500"), notes="meter fine")

        assert debt.plate == "AB12CD"
        assert debt.status is DebtStatus.PENDING
        assert debt.origin is DebtOrigin.MANUAL
        assert debt.principal_amount == Decimal("1500")
        assert debt.created_at == deterministic_clock.now()
        assert debt_service.get_debt(debt.id) == debt
        assert any(r["message"] == "debt_created" for r in captured_logs())

    def test_amount_must_be_positive(self, debt_service):
        with pytest.raises(ValidationError):
            debt_service.create_manual("AB12CD", Decimal("0"))

    def test_unknown_debt(self, debt_service):
        with pytest.raises(DebtNotFoundError):
            debt_service.get_debt("missing")


class TestSettle:
    def test_full_settlement(self, debt_service, ledger, open_shift, deterministic_clock):
        debt = debt_service.create_manual("AB12CD", Decimal("3000"))
        deterministic_clock.advance(hours=1)

        result = debt_service.settle(debt.id, PaymentMethod.CASH, "op-1")

        assert result.debt.status is DebtStatus.SETTLED
        assert result.debt.settled_at == deterministic_clock.now()
        assert result.payment.amount == Decimal("3000")
        assert result.payment.debt_id == debt.id
        assert result.payment.session_id is None
        assert result.payment.shift_id == open_shift.id
        assert result.sale.debt_id == debt.id
        totals = ledger.totals(open_shift.id)
        assert totals.cash_collected == Decimal("3000")
        assert totals.tickets_count == 1

    def test_partial_amount_still_settles(self, debt_service, open_shift):
        debt = debt_service.create_manual("AB12CD", Decimal("3000"))
        result = debt_service.settle(debt.id, "CARD", "op-1", amount=Decimal("1000"))

        assert result.payment.amount == Decimal("1000")
        assert result.debt.status is DebtStatus.SETTLED

    def test_amount_above_principal_rejected(self, debt_service, open_shift):
        debt = debt_service.create_manual("AB12CD", Decimal("3000"))
        with pytest.raises(ValidationError):
            debt_service.settle(debt.id, "CASH", "op-1", amount=Decimal("3001"))
        assert debt_service.get_debt(debt.id).is_pending

    def test_settle_twice_rejected(self, debt_service, open_shift):
        debt = debt_service.create_manual("AB12CD", Decimal("3000"))
        debt_service.settle(debt.id, "CASH", "op-1")
        with pytest.raises(DebtNotPendingError) as exc_info:
            debt_service.settle(debt.id, "CASH", "op-1")
        assert exc_info.value.status == "SETTLED"

    def test_requires_cashier_shift(self, debt_service, memory_store):
        debt = debt_service.create_manual("AB12CD", Decimal("3000"))
        with pytest.raises(NoOpenShiftError):
            debt_service.settle(debt.id, "CASH", "op-1")
        assert debt_service.get_debt(debt.id).is_pending

    def test_unknown_debt(self, debt_service, open_shift):
        with pytest.raises(DebtNotFoundError):
            debt_service.settle("missing", "CASH", "op-1")


class TestSummaries:
    def test_pending_summary(self, debt_service, deterministic_clock, open_shift):
        first = debt_service.create_manual("AB12CD", Decimal("1000"))
        deterministic_clock.advance(minutes=5)
        debt_service.create_manual("AB12CD", Decimal("500"), origin=DebtOrigin.FINE)
        deterministic_clock.advance(minutes=5)
        last = debt_service.create_manual("ZZ99ZZ", Decimal("700"))
        settled = debt_service.create_manual("ZZ99ZZ", Decimal("999"))
        debt_service.settle(settled.id, "CASH", "op-1")

        summary = debt_service.pending_summary()

        assert summary.total_count == 3
        assert summary.total_amount == Decimal("2200")
        assert summary.by_origin["MANUAL"].count == 2
        assert summary.by_origin["FINE"].total == Decimal("500")
        assert summary.by_plate["AB12CD"].total == Decimal("1500")
        assert summary.oldest_at == first.created_at
        assert summary.newest_at == last.created_at

    def test_empty_summary(self, debt_service):
        summary = debt_service.pending_summary()
        assert summary.total_count == 0
        assert summary.total_amount == Decimal("0")
        assert summary.oldest_at is None

    def test_debts_by_plate_newest_first(self, debt_service, deterministic_clock, open_shift):
        older = debt_service.create_manual("AB12CD", Decimal("1000"))
        deterministic_clock.advance(minutes=1)
        newer = debt_service.create_manual("AB12CD", Decimal("2000"))
        debt_service.create_manual("OTHER1", Decimal("50"))
        debt_service.settle(older.id, "CASH", "op-1")

        plate = debt_service.debts_by_plate("ab12cd")

        assert [d.id for d in plate.debts] == [newer.id, older.id]
        assert plate.settled_count == 1
        assert plate.total_pending_amount == Decimal("2000")
        assert [d.id for d in plate.pending] == [newer.id]
