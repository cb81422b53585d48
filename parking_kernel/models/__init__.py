"""SQLAlchemy ORM models.  Importing this package registers every table."""

from parking_kernel.models.debt import DebtModel
from parking_kernel.models.payment import PaymentModel, SaleModel
from parking_kernel.models.pricing import (
    DiscountModel,
    PricingProfileModel,
    PricingRuleModel,
)
from parking_kernel.models.session import ParkingSessionModel
from parking_kernel.models.shift import (
    CashAdjustmentModel,
    ShiftModel,
    ShiftOperationModel,
)

__all__ = [
    "CashAdjustmentModel",
    "DebtModel",
    "DiscountModel",
    "ParkingSessionModel",
    "PaymentModel",
    "PricingProfileModel",
    "PricingRuleModel",
    "SaleModel",
    "ShiftModel",
    "ShiftOperationModel",
]
