"""
Exceptions -- typed error hierarchy for the parking kernel.

Responsibility:
    Every failure the kernel can report is a subclass of
    ``ParkingKernelError`` with a machine-readable ``code`` class attribute
    and structured attributes describing the offending aggregate.  Messages
    are for operators and logs only; callers dispatch on type or ``code``.

Hierarchy:
    ParkingKernelError
      ValidationError
      SessionError
        SessionNotFoundError, InvalidTransitionError,
        DuplicateActiveSessionError, AssignmentNotActiveError,
        DailyMaxNotConfiguredError
      PaymentError
        InsufficientPaymentError
      DiscountError
        DiscountExpiredError, DiscountInactiveError
      ShiftError
        ShiftNotFoundError, ShiftAlreadyOpenError, ShiftNotOpenError,
        NoOpenShiftError
      DebtError
        DebtNotFoundError, DebtNotPendingError
      ImmutabilityViolationError

Retry policy:
    Nothing is retried inside the kernel.  A "no matching rule" pricing
    outcome is a warning on the quote, never an exception.
"""

from datetime import date, datetime
from decimal import Decimal


class ParkingKernelError(Exception):
    """
    Base exception for all parking kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PARKING_KERNEL_ERROR"


class ValidationError(ParkingKernelError):
    """A value or aggregate failed validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: object = None):
        self.field = field
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid {field}: {reason}")


# Session-related exceptions


class SessionError(ParkingKernelError):
    """Base exception for parking session errors."""

    code: str = "SESSION_ERROR"


class SessionNotFoundError(SessionError):
    """Session with given ID was not found."""

    code: str = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Parking session not found: {session_id}")


class InvalidTransitionError(SessionError):
    """Requested lifecycle transition is not declared for the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, session_id: str, from_state: str, action: str):
        self.session_id = session_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Cannot {action} session {session_id} in state {from_state}"
        )


class DuplicateActiveSessionError(SessionError):
    """The plate already has an ACTIVE session in the sector."""

    code: str = "DUPLICATE_ACTIVE_SESSION"

    def __init__(self, plate: str, sector_id: str, existing_session_id: str):
        self.plate = plate
        self.sector_id = sector_id
        self.existing_session_id = existing_session_id
        super().__init__(
            f"Plate {plate} already has active session "
            f"{existing_session_id} in sector {sector_id}"
        )


class AssignmentNotActiveError(SessionError):
    """Operator is not actively assigned to the sector/street."""

    code: str = "ASSIGNMENT_NOT_ACTIVE"

    def __init__(self, operator_id: str, sector_id: str, street_id: str | None):
        self.operator_id = operator_id
        self.sector_id = sector_id
        self.street_id = street_id
        super().__init__(
            f"Operator {operator_id} has no active assignment to sector "
            f"{sector_id}" + (f" street {street_id}" if street_id else "")
        )


class DailyMaxNotConfiguredError(SessionError):
    """A full-day session was priced against rules with no daily maximum."""

    code: str = "DAILY_MAX_NOT_CONFIGURED"

    def __init__(self, profile_name: str | None):
        self.profile_name = profile_name
        super().__init__(
            f"No daily maximum configured for full-day pricing "
            f"(profile {profile_name or '<rules>'})"
        )


# Payment-related exceptions


class PaymentError(ParkingKernelError):
    """Base exception for payment errors."""

    code: str = "PAYMENT_ERROR"


class InsufficientPaymentError(PaymentError):
    """Cash tendered is below the amount due."""

    code: str = "INSUFFICIENT_PAYMENT"

    def __init__(self, amount_due: Decimal, amount_received: Decimal):
        self.amount_due = amount_due
        self.amount_received = amount_received
        super().__init__(
            f"Insufficient payment: due {amount_due}, received {amount_received}"
        )


# Discount-related exceptions


class DiscountError(ParkingKernelError):
    """Base exception for discount errors."""

    code: str = "DISCOUNT_ERROR"


class DiscountExpiredError(DiscountError):
    """Discount applied outside its validity window."""

    code: str = "DISCOUNT_EXPIRED"

    def __init__(
        self,
        discount_id: str,
        at: datetime,
        valid_from: date | None,
        valid_until: date | None,
    ):
        self.discount_id = discount_id
        self.at = at
        self.valid_from = valid_from
        self.valid_until = valid_until
        super().__init__(
            f"Discount {discount_id} not valid at {at.isoformat()} "
            f"(window {valid_from} .. {valid_until})"
        )


class DiscountInactiveError(DiscountError):
    """Discount is switched off."""

    code: str = "DISCOUNT_INACTIVE"

    def __init__(self, discount_id: str):
        self.discount_id = discount_id
        super().__init__(f"Discount {discount_id} is inactive")


# Shift-related exceptions


class ShiftError(ParkingKernelError):
    """Base exception for operator shift errors."""

    code: str = "SHIFT_ERROR"


class ShiftNotFoundError(ShiftError):
    """Shift with given ID was not found."""

    code: str = "SHIFT_NOT_FOUND"

    def __init__(self, shift_id: str):
        self.shift_id = shift_id
        super().__init__(f"Shift not found: {shift_id}")


class ShiftAlreadyOpenError(ShiftError):
    """An OPEN shift already exists for the operator on the device."""

    code: str = "SHIFT_ALREADY_OPEN"

    def __init__(
        self, operator_id: str, device_id: str | None, existing_shift_id: str
    ):
        self.operator_id = operator_id
        self.device_id = device_id
        self.existing_shift_id = existing_shift_id
        super().__init__(
            f"Operator {operator_id} already has open shift "
            f"{existing_shift_id} on device {device_id}"
        )


class ShiftNotOpenError(ShiftError):
    """Operation requires an OPEN shift."""

    code: str = "SHIFT_NOT_OPEN"

    def __init__(self, shift_id: str, status: str):
        self.shift_id = shift_id
        self.status = status
        super().__init__(f"Shift {shift_id} is {status}, expected OPEN")


class NoOpenShiftError(ShiftError):
    """No open shift is available to record cash against."""

    code: str = "NO_OPEN_SHIFT"

    def __init__(
        self,
        operator_id: str | None = None,
        device_id: str | None = None,
        shift_id: str | None = None,
    ):
        self.operator_id = operator_id
        self.device_id = device_id
        self.shift_id = shift_id
        if shift_id is not None:
            message = f"Shift {shift_id} is not open"
        else:
            message = f"No open shift for operator {operator_id}"
            if device_id is not None:
                message += f" on device {device_id}"
        super().__init__(message)


# Debt-related exceptions


class DebtError(ParkingKernelError):
    """Base exception for debt errors."""

    code: str = "DEBT_ERROR"


class DebtNotFoundError(DebtError):
    """Debt with given ID was not found."""

    code: str = "DEBT_NOT_FOUND"

    def __init__(self, debt_id: str):
        self.debt_id = debt_id
        super().__init__(f"Debt not found: {debt_id}")


class DebtNotPendingError(DebtError):
    """Debt can only be settled while PENDING."""

    code: str = "DEBT_NOT_PENDING"

    def __init__(self, debt_id: str, status: str):
        self.debt_id = debt_id
        self.status = status
        super().__init__(f"Debt {debt_id} is {status}, expected PENDING")


# Immutability-related exceptions


class ImmutabilityViolationError(ParkingKernelError):
    """
    Attempted to modify or delete an append-only record.

    Shift operations are never updated or deleted, sessions are never
    deleted, and closed shifts are frozen.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
