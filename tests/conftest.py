"""
Pytest fixtures for the parking kernel test suite.

Provides:
- Structured logging configured once per run, with a log capture fixture
- A deterministic clock (2024-01-01 12:00 UTC, a Monday, 09:00 in Santiago)
- In-memory and SQLite-backed SQLAlchemy stores
- Wired ledger, state machine and debt services over the in-memory store
- Tariff rule builders for the common pricing scenarios
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from parking_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from parking_kernel.domain.clock import DeterministicClock
from parking_kernel.domain.discounts import DiscountDefinition, DiscountType
from parking_kernel.domain.pricing import PricingProfile, PricingRule, RuleType
from parking_kernel.domain.quote import QuoteCalculator
from parking_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from parking_kernel.services.assignments import StaticAssignmentDirectory
from parking_kernel.services.debt_service import DebtService
from parking_kernel.services.locks import AggregateLocks
from parking_kernel.services.session_service import SessionStateMachine
from parking_kernel.services.shift_ledger import ShiftLedger
from parking_kernel.stores.memory_store import InMemoryParkingStore
from parking_kernel.stores.sqlalchemy_store import SqlAlchemyParkingStore

OPERATOR_ID = "op-1"
SECTOR_ID = "centro"
START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture parking_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, state_machine):
            state_machine.checkout(...)
            logs = captured_logs()
            assert any(r["message"] == "checkout_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("parking_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(START)


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def memory_store():
    return InMemoryParkingStore()


@pytest.fixture
def sqlalchemy_store():
    """SqlAlchemyParkingStore over a fresh in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    store = SqlAlchemyParkingStore(get_session_factory())
    yield store
    store.close()
    drop_tables()
    reset_engine()


@pytest.fixture(params=["memory", "sqlalchemy"])
def any_store(request):
    """Runs the test once per store implementation."""
    return request.getfixturevalue(f"{request.param}_store")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def locks():
    return AggregateLocks()


@pytest.fixture
def assignments():
    return StaticAssignmentDirectory([(OPERATOR_ID, SECTOR_ID, None)])


@pytest.fixture
def ledger(memory_store, deterministic_clock, locks):
    return ShiftLedger(memory_store, clock=deterministic_clock, locks=locks)


@pytest.fixture
def state_machine(memory_store, ledger, assignments, deterministic_clock):
    return SessionStateMachine(
        memory_store,
        ledger,
        assignments,
        calculator=QuoteCalculator(),
        clock=deterministic_clock,
    )


@pytest.fixture
def debt_service(memory_store, ledger, deterministic_clock):
    return DebtService(memory_store, ledger, clock=deterministic_clock)


@pytest.fixture
def open_shift(ledger):
    """An OPEN shift for OPERATOR_ID with a 50000 opening float."""
    return ledger.open(OPERATOR_ID, Decimal("50000"), sector_id=SECTOR_ID)


# =============================================================================
# Tariffs
# =============================================================================


@pytest.fixture
def base_rule():
    """First 60 minutes for a flat 1000, then 50 per minute."""
    return PricingRule(
        id="base",
        name="Base hour",
        rule_type=RuleType.HOURLY,
        min_duration_minutes=0,
        max_duration_minutes=60,
        min_amount=Decimal("1000"),
        min_amount_is_base=True,
        price_per_minute=Decimal("50"),
    )


@pytest.fixture
def per_minute_rule():
    """Plain 20 per minute, capped at 5000 a day."""
    return PricingRule(
        id="per-minute",
        name="Per minute",
        rule_type=RuleType.HOURLY,
        price_per_minute=Decimal("20"),
        daily_max_amount=Decimal("5000"),
    )


@pytest.fixture
def profile(base_rule):
    return PricingProfile(
        id="centro-2024",
        name="Centro 2024",
        sector_id=SECTOR_ID,
        rules=(base_rule,),
        active_from=datetime(2023, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def capped_profile(per_minute_rule):
    return PricingProfile(
        id="centro-capped",
        name="Centro capped",
        sector_id=SECTOR_ID,
        rules=(per_minute_rule,),
        active_from=datetime(2023, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def percentage_discount():
    return DiscountDefinition(
        id="residents",
        name="Residents",
        discount_type=DiscountType.PERCENTAGE,
        value=Decimal("20"),
        max_amount=Decimal("1500"),
    )
