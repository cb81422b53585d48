"""
Pure domain layer.

Value objects and pricing logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (a Clock is injected)

All domain objects are immutable and deterministic.
"""

from parking_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from parking_kernel.domain.debt import Debt, DebtOrigin, DebtStatus
from parking_kernel.domain.discounts import (
    DiscountDefinition,
    DiscountResult,
    DiscountType,
    PreDiscountQuote,
    apply_discount,
)
from parking_kernel.domain.payments import Payment, PaymentMethod, Sale
from parking_kernel.domain.pricing import (
    DayCharge,
    PricingEvaluation,
    PricingProfile,
    PricingRule,
    PricingWarning,
    RuleApplication,
    RuleType,
    evaluate,
    select_active_profile,
)
from parking_kernel.domain.quote import Quote, QuoteCalculator, QuoteRequest
from parking_kernel.domain.session import (
    SESSION_WORKFLOW,
    ParkingSession,
    SessionStatus,
)
from parking_kernel.domain.shift import (
    CashAdjustment,
    OperationKind,
    ReconciliationTotals,
    Shift,
    ShiftOperation,
    ShiftStatus,
    ShiftTotals,
)
from parking_kernel.domain.values import DayOfWeek, DaySet, TimeInterval, to_money

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Debt",
    "DebtOrigin",
    "DebtStatus",
    "DiscountDefinition",
    "DiscountResult",
    "DiscountType",
    "PreDiscountQuote",
    "apply_discount",
    "Payment",
    "PaymentMethod",
    "Sale",
    "DayCharge",
    "PricingEvaluation",
    "PricingProfile",
    "PricingRule",
    "PricingWarning",
    "RuleApplication",
    "RuleType",
    "evaluate",
    "select_active_profile",
    "Quote",
    "QuoteCalculator",
    "QuoteRequest",
    "SESSION_WORKFLOW",
    "ParkingSession",
    "SessionStatus",
    "CashAdjustment",
    "OperationKind",
    "ReconciliationTotals",
    "Shift",
    "ShiftOperation",
    "ShiftStatus",
    "ShiftTotals",
    "DayOfWeek",
    "DaySet",
    "TimeInterval",
    "to_money",
]
