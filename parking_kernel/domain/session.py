"""
Parking session aggregate and its declared lifecycle.

The lifecycle is data (``SESSION_WORKFLOW``); ``advance`` is the only way a
session changes status and it refuses anything the workflow does not
declare.

    CREATED -> ACTIVE -> TO_PAY -> PAID -> CLOSED
                      -> CLOSED            (forced checkout, debt created)
                      -> CANCELED
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from parking_kernel.domain.workflow import Guard, Transition, Workflow
from parking_kernel.exceptions import InvalidTransitionError, ValidationError


class SessionStatus(str, Enum):
    CREATED = "CREATED"
    ACTIVE = "ACTIVE"
    TO_PAY = "TO_PAY"
    PAID = "PAID"
    CLOSED = "CLOSED"
    CANCELED = "CANCELED"


_ASSIGNMENT_GUARD = Guard(
    name="operator_assigned",
    description="Operator holds an active assignment to the sector/street",
)
_OPEN_SHIFT_GUARD = Guard(
    name="checkout_shift_open",
    description="Checkout operator has an open shift to record the payment",
)
_PAYMENT_GUARD = Guard(
    name="payment_covers_net",
    description="Cash tendered is at least the net amount",
)

SESSION_WORKFLOW = Workflow(
    name="parking_session",
    description="Lifecycle of a parking session from check-in to archive",
    initial_state=SessionStatus.CREATED.value,
    states=tuple(s.value for s in SessionStatus),
    transitions=(
        Transition("CREATED", "ACTIVE", action="check_in", guard=_ASSIGNMENT_GUARD),
        Transition("ACTIVE", "TO_PAY", action="checkout", moves_money=True),
        Transition(
            "TO_PAY", "PAID", action="pay", guard=_PAYMENT_GUARD, moves_money=True
        ),
        Transition("PAID", "CLOSED", action="close"),
        Transition("ACTIVE", "CLOSED", action="force_checkout", moves_money=True),
        Transition("ACTIVE", "CANCELED", action="cancel"),
    ),
    terminal_states=("CLOSED", "CANCELED"),
)


def normalize_plate(plate: str) -> str:
    if not isinstance(plate, str) or not plate.strip():
        raise ValidationError("plate", "must be a non-empty string", plate)
    return "".join(plate.split()).upper()


@dataclass(frozen=True)
class ParkingSession:
    """
    A vehicle's stay in a sector.

    Never deleted.  Pricing columns stay None until checkout.
    """

    id: str
    plate: str
    sector_id: str
    operator_in_id: str
    started_at: datetime
    status: SessionStatus = SessionStatus.CREATED
    street_id: str | None = None
    operator_out_id: str | None = None
    ended_at: datetime | None = None
    seconds_total: int | None = None
    gross_amount: Decimal | None = None
    discount_amount: Decimal | None = None
    net_amount: Decimal | None = None
    discount_id: str | None = None
    is_full_day: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "plate", normalize_plate(self.plate))
        object.__setattr__(self, "status", SessionStatus(self.status))
        if self.started_at.tzinfo is None:
            raise ValidationError("started_at", "must be timezone-aware", self.started_at)

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        def _s(v: Any) -> str | None:
            return None if v is None else str(v)

        return {
            "id": self.id,
            "plate": self.plate,
            "sector_id": self.sector_id,
            "street_id": self.street_id,
            "operator_in_id": self.operator_in_id,
            "operator_out_id": self.operator_out_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "seconds_total": self.seconds_total,
            "gross_amount": _s(self.gross_amount),
            "discount_amount": _s(self.discount_amount),
            "net_amount": _s(self.net_amount),
            "status": self.status.value,
            "discount_id": self.discount_id,
            "is_full_day": self.is_full_day,
        }


def advance(session: ParkingSession, action: str, **changes: Any) -> ParkingSession:
    """Apply the workflow transition named ``action`` and return the new session."""
    transition = SESSION_WORKFLOW.find(session.status.value, action)
    if transition is None:
        raise InvalidTransitionError(session.id, session.status.value, action)
    return replace(session, status=SessionStatus(transition.to_state), **changes)
