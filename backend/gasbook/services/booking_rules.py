"""
Booking Rules: the pure core of the booking lifecycle.

Nothing in this module touches the database, the Flask app, or the clock.
Every function takes an explicit snapshot (BookingState, a customer
Registration, prices, "today"/"now") and returns a new snapshot plus a list
of commands describing the side effects the caller must apply:

    AddUnits / RemoveUnits   -> inventory_service
    RecordPayment            -> payment_history_service.record_transaction
    RevisePayment            -> payment_history_service.revise_transaction

booking_service owns the ordering and the transactions around them.

State machine (two independent axes):

    delivery: Booked -> InTransit -> Delivered
              Booked | InTransit -> Cancelled
    payment:  Pending -> Partial -> Paid
              Partial -> Partial (amount change)

Delivered, Cancelled and Paid are terminal on their axis. A booking that is
Paid AND Delivered is locked.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Mapping, Optional

from ..money import to_decimal
from ..validation import (
    CapacityExceededError,
    InvalidDateError,
    TypeMismatchError,
    ValidationError,
    require_choice,
    require_date,
    require_dsc_code,
    require_int,
)


DELIVERY_BOOKED = "Booked"
DELIVERY_IN_TRANSIT = "InTransit"
DELIVERY_DELIVERED = "Delivered"
DELIVERY_CANCELLED = "Cancelled"
DELIVERY_STATUSES = (DELIVERY_BOOKED, DELIVERY_IN_TRANSIT, DELIVERY_DELIVERED, DELIVERY_CANCELLED)

PAYMENT_PENDING = "Pending"
PAYMENT_PARTIAL = "Partial"
PAYMENT_PAID = "Paid"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID)
PAID_LIKE = (PAYMENT_PARTIAL, PAYMENT_PAID)

SERVICE_NONE = "No"
SERVICE_PICKUP = "Pickup"
SERVICE_DROP = "Drop"
SERVICE_PICKUP_DROP = "Pickup+Drop"
SERVICE_TYPES = (SERVICE_NONE, SERVICE_PICKUP, SERVICE_DROP, SERVICE_PICKUP_DROP)
SERVICE_ALIASES = {"Pickup + Drop": SERVICE_PICKUP_DROP}

COMBINED_COMPLETED = "Completed"
COMBINED_PAID_PENDING_DELIVERY = "Paid-PendingDelivery"
COMBINED_PARTIAL = "PartialPayment"
COMBINED_PENDING = "Pending"

DELIVERY_MOVES = {
    DELIVERY_BOOKED: {DELIVERY_IN_TRANSIT, DELIVERY_DELIVERED, DELIVERY_CANCELLED},
    DELIVERY_IN_TRANSIT: {DELIVERY_DELIVERED, DELIVERY_CANCELLED},
    DELIVERY_DELIVERED: set(),
    DELIVERY_CANCELLED: set(),
}

PAYMENT_MOVES = {
    PAYMENT_PENDING: {PAYMENT_PARTIAL, PAYMENT_PAID},
    PAYMENT_PARTIAL: {PAYMENT_PARTIAL, PAYMENT_PAID},
    PAYMENT_PAID: set(),
}

ZERO = Decimal("0.00")


# =============================================================================
# SNAPSHOTS & COMMANDS
# =============================================================================

@dataclass(frozen=True)
class Registration:
    """What the customer is registered for; caps every booking."""
    cylinders: int
    cylinder_type: str


@dataclass(frozen=True)
class BookingState:
    cylinders: int
    cylinder_type: str
    dsc_code: str
    service_type: str
    delivery_date: date
    payment_status: str = PAYMENT_PENDING
    payment_amount: Decimal = ZERO
    last_payment_date: Optional[datetime] = None
    status: str = DELIVERY_BOOKED
    empty_cylinder_received: bool = False

    @property
    def is_locked(self) -> bool:
        return self.payment_status == PAYMENT_PAID and self.status == DELIVERY_DELIVERED


@dataclass(frozen=True)
class AddUnits:
    cylinder_type: str
    status: str
    quantity: int


@dataclass(frozen=True)
class RemoveUnits:
    cylinder_type: str
    status: str
    quantity: int


@dataclass(frozen=True)
class RecordPayment:
    payment_status: str
    delivery_status: str
    amount: Decimal
    date: datetime


@dataclass(frozen=True)
class RevisePayment:
    payment_status: str
    delivery_status: str
    amount: Decimal


# =============================================================================
# PRICING
# =============================================================================

def normalize_service_type(value) -> str:
    raw = SERVICE_NONE if value is None else str(value).strip()
    raw = SERVICE_ALIASES.get(raw, raw)
    return require_choice(raw, SERVICE_TYPES, "service_type")


def includes_drop(service_type: str) -> bool:
    return service_type in (SERVICE_DROP, SERVICE_PICKUP_DROP)


def compute_amount(
    cylinders: int,
    cylinder_type: str,
    service_type: str,
    *,
    prices: Mapping[str, object],
    fees: Mapping[str, object],
) -> Decimal:
    """Full price: cylinders * price(type) + fee(service)."""
    if cylinder_type not in prices:
        raise ValidationError(f"No price configured for cylinder_type {cylinder_type}")
    if service_type not in fees:
        raise ValidationError(f"No fee configured for service_type {service_type}")
    return to_decimal(prices[cylinder_type]) * cylinders + to_decimal(fees[service_type])


def resolve_amount(payment_status: str, requested, full_amount: Decimal) -> Decimal:
    """
    Amount stored for a payment status.

    Paid -> full amount (any requested value is ignored)
    Pending -> 0
    Partial -> the requested amount, 0 < amount <= full
    """
    if payment_status == PAYMENT_PAID:
        return full_amount
    if payment_status == PAYMENT_PENDING:
        return ZERO

    if requested is None:
        raise ValidationError("payment_amount is required for Partial payments")
    try:
        amount = to_decimal(requested)
    except ValueError:
        raise ValidationError("payment_amount must be a number")
    if amount <= 0:
        raise ValidationError("payment_amount must be > 0")
    if amount > full_amount:
        raise ValidationError(f"payment_amount cannot exceed the full amount {full_amount}")
    return amount


def combined_status(payment_status: str, delivery_status: str) -> str:
    if payment_status == PAYMENT_PAID:
        if delivery_status == DELIVERY_DELIVERED:
            return COMBINED_COMPLETED
        return COMBINED_PAID_PENDING_DELIVERY
    if payment_status == PAYMENT_PARTIAL:
        return COMBINED_PARTIAL
    return COMBINED_PENDING


# =============================================================================
# TRANSITIONS
# =============================================================================

def validate_delivery_move(current: str, new: str) -> None:
    require_choice(new, DELIVERY_STATUSES, "status")
    if new != current and new not in DELIVERY_MOVES.get(current, set()):
        raise ValidationError(f"Cannot move delivery status from {current} to {new}")


def validate_payment_move(current: str, new: str) -> None:
    require_choice(new, PAYMENT_STATUSES, "payment_status")
    if new != current and new not in PAYMENT_MOVES.get(current, set()):
        raise ValidationError(f"Cannot move payment status from {current} to {new}")


def hours_until_expiry(updated_at: datetime, now: datetime, retention_hours: int) -> float:
    """Hours left before a locked booking is swept; never negative."""
    elapsed = (now - updated_at).total_seconds() / 3600
    return max(0.0, round(retention_hours - elapsed, 2))


# =============================================================================
# PLANS
# =============================================================================

def plan_create(
    registration: Registration,
    *,
    cylinders,
    cylinder_type: Optional[str],
    dsc_code,
    service_type,
    delivery_date,
    today: date,
    now: datetime,
    prices: Mapping[str, object],
    fees: Mapping[str, object],
    payment_status: Optional[str] = None,
    payment_amount=None,
    empty_cylinder_received: bool = False,
) -> tuple[BookingState, list]:
    """
    Validate a new booking against the customer's registration.

    Returns (state, commands). Raises a ValidationError subclass and
    produces nothing when any rule fails.
    """
    dsc_code = require_dsc_code(dsc_code)

    cylinders = require_int(cylinders, "cylinders")
    if cylinders <= 0:
        raise ValidationError("cylinders must be > 0")

    if cylinder_type is None:
        cylinder_type = registration.cylinder_type
    require_choice(cylinder_type, tuple(prices.keys()), "cylinder_type")

    if cylinders > registration.cylinders:
        raise CapacityExceededError(
            f"Customer is registered for {registration.cylinders} cylinder(s); "
            f"update the registration before booking {cylinders}"
        )
    if cylinder_type != registration.cylinder_type:
        raise TypeMismatchError(
            f"Customer is registered for {registration.cylinder_type} cylinders; "
            f"update the registration before booking {cylinder_type}"
        )

    service_type = normalize_service_type(service_type)

    delivery_date = require_date(delivery_date, "delivery_date")
    if delivery_date < today:
        raise InvalidDateError("delivery_date cannot be in the past")

    payment_status = payment_status or PAYMENT_PENDING
    require_choice(payment_status, PAYMENT_STATUSES, "payment_status")

    if not isinstance(empty_cylinder_received, bool):
        raise ValidationError("empty_cylinder_received must be a boolean")
    if empty_cylinder_received and not includes_drop(service_type):
        raise ValidationError("empty_cylinder_received requires a Drop service")

    full = compute_amount(cylinders, cylinder_type, service_type, prices=prices, fees=fees)
    amount = resolve_amount(payment_status, payment_amount, full)

    state = BookingState(
        cylinders=cylinders,
        cylinder_type=cylinder_type,
        dsc_code=dsc_code,
        service_type=service_type,
        delivery_date=delivery_date,
        payment_status=payment_status,
        payment_amount=amount,
        last_payment_date=now if payment_status in PAID_LIKE else None,
        status=DELIVERY_BOOKED,
        empty_cylinder_received=empty_cylinder_received,
    )

    commands: list = []
    if empty_cylinder_received:
        commands.append(AddUnits(cylinder_type, "EMPTY", cylinders))
    if payment_status in PAID_LIKE:
        commands.append(RecordPayment(payment_status, DELIVERY_BOOKED, amount, now))
    return state, commands


def plan_update(
    state: BookingState,
    *,
    now: datetime,
    prices: Mapping[str, object],
    fees: Mapping[str, object],
    payment_status: Optional[str] = None,
    payment_amount=None,
    status: Optional[str] = None,
    empty_cylinder_received: Optional[bool] = None,
) -> tuple[BookingState, list]:
    """
    Apply a partial update to an unlocked booking.

    Omitted arguments keep their current value. Callers must reject locked
    bookings before planning.

    Ledger rule:
    - new payment Paid/Partial and (payment status or amount changed)
      -> RecordPayment
    - payment status and amount unchanged on Paid/Partial, delivery changed
      -> RevisePayment
    """
    new_payment = state.payment_status if payment_status is None else payment_status
    new_delivery = state.status if status is None else status
    validate_payment_move(state.payment_status, new_payment)
    validate_delivery_move(state.status, new_delivery)

    full = compute_amount(state.cylinders, state.cylinder_type, state.service_type, prices=prices, fees=fees)
    if new_payment == PAYMENT_PARTIAL and payment_amount is None and state.payment_status == PAYMENT_PARTIAL:
        amount = state.payment_amount
    else:
        amount = resolve_amount(new_payment, payment_amount, full)

    commands: list = []

    new_empty = state.empty_cylinder_received
    if empty_cylinder_received is not None:
        if not isinstance(empty_cylinder_received, bool):
            raise ValidationError("empty_cylinder_received must be a boolean")
        if state.empty_cylinder_received and not empty_cylinder_received:
            raise ValidationError("empty_cylinder_received cannot be switched back off")
        if empty_cylinder_received and not state.empty_cylinder_received:
            if not includes_drop(state.service_type):
                raise ValidationError("empty_cylinder_received requires a Drop service")
            new_empty = True
            commands.append(AddUnits(state.cylinder_type, "EMPTY", state.cylinders))

    if new_delivery == DELIVERY_DELIVERED and state.status != DELIVERY_DELIVERED:
        commands.append(RemoveUnits(state.cylinder_type, "FULL", state.cylinders))

    payment_changed = new_payment != state.payment_status
    amount_changed = amount != state.payment_amount
    delivery_changed = new_delivery != state.status

    last_payment_date = state.last_payment_date
    if new_payment in PAID_LIKE and (payment_changed or amount_changed):
        last_payment_date = now
        commands.append(RecordPayment(new_payment, new_delivery, amount, now))
    elif new_payment in PAID_LIKE and delivery_changed:
        commands.append(RevisePayment(new_payment, new_delivery, amount))

    new_state = replace(
        state,
        payment_status=new_payment,
        payment_amount=amount,
        last_payment_date=last_payment_date,
        status=new_delivery,
        empty_cylinder_received=new_empty,
    )
    return new_state, commands
