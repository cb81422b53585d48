"""Sale and payment records produced by checkout and debt settlement."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from parking_kernel.domain.values import ZERO


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    WEBPAY = "WEBPAY"
    TRANSFER = "TRANSFER"


class SaleStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class Sale:
    id: str
    cashier_operator_id: str
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    created_at: datetime
    session_id: str | None = None
    debt_id: str | None = None
    status: SaleStatus = SaleStatus.COMPLETED


@dataclass(frozen=True)
class Payment:
    """
    Money received for a sale.

    ``amount`` is what was charged (the net), never the cash tendered;
    ``amount_received`` and ``change`` describe the drawer movement.
    """

    id: str
    sale_id: str
    shift_id: str
    method: PaymentMethod
    amount: Decimal
    paid_at: datetime
    amount_received: Decimal | None = None
    change: Decimal = ZERO
    session_id: str | None = None
    debt_id: str | None = None
    approval_code: str | None = None
    status: PaymentStatus = PaymentStatus.COMPLETED

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", PaymentMethod(self.method))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "shift_id": self.shift_id,
            "method": self.method.value,
            "amount": str(self.amount),
            "amount_received": None if self.amount_received is None else str(self.amount_received),
            "change": str(self.change),
            "session_id": self.session_id,
            "debt_id": self.debt_id,
            "approval_code": self.approval_code,
            "paid_at": self.paid_at.isoformat(),
            "status": self.status.value,
        }
