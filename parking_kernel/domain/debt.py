"""Debts owed by a plate: forced checkouts, fines and manual charges."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from parking_kernel.domain.session import normalize_plate


class DebtOrigin(str, Enum):
    SESSION = "SESSION"
    FINE = "FINE"
    MANUAL = "MANUAL"


class DebtStatus(str, Enum):
    PENDING = "PENDING"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Debt:
    id: str
    plate: str
    origin: DebtOrigin
    principal_amount: Decimal
    created_at: datetime
    status: DebtStatus = DebtStatus.PENDING
    session_id: str | None = None
    settled_at: datetime | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "plate", normalize_plate(self.plate))
        object.__setattr__(self, "origin", DebtOrigin(self.origin))
        object.__setattr__(self, "status", DebtStatus(self.status))

    @property
    def is_pending(self) -> bool:
        return self.status is DebtStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "plate": self.plate,
            "origin": self.origin.value,
            "principal_amount": str(self.principal_amount),
            "status": self.status.value,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class DebtGroup:
    count: int
    total: Decimal


@dataclass(frozen=True)
class PendingDebtSummary:
    """Totals of PENDING debts, overall and grouped by origin and plate."""

    total_count: int
    total_amount: Decimal
    by_origin: dict[str, DebtGroup]
    by_plate: dict[str, DebtGroup]
    oldest_at: datetime | None = None
    newest_at: datetime | None = None


@dataclass(frozen=True)
class PlateDebts:
    plate: str
    debts: tuple[Debt, ...]

    @property
    def pending(self) -> tuple[Debt, ...]:
        return tuple(d for d in self.debts if d.is_pending)

    @property
    def settled_count(self) -> int:
        return sum(1 for d in self.debts if d.status is DebtStatus.SETTLED)

    @property
    def total_pending_amount(self) -> Decimal:
        return sum((d.principal_amount for d in self.pending), Decimal("0.00"))


def summarize_pending(debts: Iterable[Debt]) -> PendingDebtSummary:
    pending = [d for d in debts if d.is_pending]

    def _group(key) -> dict[str, DebtGroup]:
        groups: dict[str, DebtGroup] = {}
        for d in pending:
            k = key(d)
            g = groups.get(k, DebtGroup(0, Decimal("0.00")))
            groups[k] = DebtGroup(g.count + 1, g.total + d.principal_amount)
        return groups

    return PendingDebtSummary(
        total_count=len(pending),
        total_amount=sum((d.principal_amount for d in pending), Decimal("0.00")),
        by_origin=_group(lambda d: d.origin.value),
        by_plate=_group(lambda d: d.plate),
        oldest_at=min((d.created_at for d in pending), default=None),
        newest_at=max((d.created_at for d in pending), default=None),
    )
