# Overview: Service-layer operations for bookings; encapsulates business logic and database work.

"""
Booking Lifecycle Controller

The rules live in booking_rules (pure). This module loads the snapshot,
asks the rules for a plan, and applies the resulting commands:

    1. inventory commands + booking write    -> ONE transaction
    2. ledger commands                       -> separate, best-effort
    3. change events                         -> after each commit

CRITICAL: Inventory Reconciliation
- Moving a booking to Delivered removes `cylinders` FULL units of its type.
- If fewer exist, the operator decides:
    on_insufficient_stock=None      -> InsufficientStockDecision, nothing changed
    on_insufficient_stock="cancel"  -> InsufficientStockError, nothing changed
    on_insufficient_stock="proceed" -> booking is Delivered, no unit removed,
                                       stock_shortfall records the gap (logged)
- Never auto-retried.

LOCK: Paid + Delivered bookings reject every update, every time.
They are removed only by the retention sweep (or an explicit delete).

Ledger failures after the booking commit are logged and swallowed: the
ledger is derived data and the booking write already succeeded.
"""

import logging
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Booking
from ..time_utils import local_today, utcnow
from ..validation import ValidationError, require_choice, require_date
from . import change_feed
from . import inventory_service
from . import payment_history_service
from .booking_rules import (
    AddUnits,
    BookingState,
    RecordPayment,
    Registration,
    RemoveUnits,
    RevisePayment,
    hours_until_expiry,
    plan_create,
    plan_update,
)
from .concurrency import booking_key, inventory_key, serializer
from .customer_service import get_customer
from .inventory_service import KIND_CYLINDER, InsufficientStockError
from .owner_service import OwnerAccessError, require_owned, scoped_query


logger = logging.getLogger("gasbook.bookings")

DECISION_CANCEL = "cancel"
DECISION_PROCEED = "proceed"
STOCK_DECISIONS = (DECISION_CANCEL, DECISION_PROCEED)


class BookingError(Exception):
    """Base class for booking controller errors."""
    pass


class BookingNotFoundError(BookingError):
    pass


class BookingLockedError(BookingError):
    """Paid + Delivered bookings cannot change."""

    def __init__(self, booking_id: int):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} is Paid and Delivered and can no longer be changed")


class InsufficientStockDecision(BookingError):
    """
    Delivery needs more FULL cylinders than are in stock.

    The caller must re-issue the update with on_insufficient_stock set to
    "cancel" or "proceed". Nothing was changed.
    """

    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(
            f"Only {available} FULL cylinder(s) in stock, {required} required; "
            f"choose '{DECISION_CANCEL}' or '{DECISION_PROCEED}'"
        )


def _pricing() -> dict:
    return {
        "prices": current_app.config["CYLINDER_PRICES"],
        "fees": current_app.config["SERVICE_FEES"],
    }


def _state_of(booking: Booking) -> BookingState:
    return BookingState(
        cylinders=booking.cylinders,
        cylinder_type=booking.cylinder_type,
        dsc_code=booking.dsc_code,
        service_type=booking.service_type,
        delivery_date=booking.delivery_date,
        payment_status=booking.payment_status,
        payment_amount=booking.payment_amount,
        last_payment_date=booking.last_payment_date,
        status=booking.status,
        empty_cylinder_received=booking.empty_cylinder_received,
    )


def _apply_state(booking: Booking, state: BookingState) -> None:
    booking.cylinders = state.cylinders
    booking.cylinder_type = state.cylinder_type
    booking.dsc_code = state.dsc_code
    booking.service_type = state.service_type
    booking.delivery_date = state.delivery_date
    booking.payment_status = state.payment_status
    booking.payment_amount = state.payment_amount
    booking.last_payment_date = state.last_payment_date
    booking.status = state.status
    booking.empty_cylinder_received = state.empty_cylinder_received


def _inventory_keys(owner_key: str, commands: list) -> list:
    return [
        inventory_key(owner_key, KIND_CYLINDER, c.cylinder_type, c.status)
        for c in commands
        if isinstance(c, (AddUnits, RemoveUnits))
    ]


def _apply_ledger(owner_key: str, booking: Booking, commands: list) -> None:
    """
    Apply ledger commands after the booking commit.

    Failures are logged and swallowed (secondary effect).
    """
    booking_id = booking.id
    customer_id = booking.customer_id

    for command in commands:
        try:
            if isinstance(command, RecordPayment):
                payment_history_service.record_customer_transaction(
                    owner_key=owner_key,
                    customer_id=customer_id,
                    booking_id=booking_id,
                    payment_status=command.payment_status,
                    delivery_status=command.delivery_status,
                    amount=command.amount,
                    date=command.date,
                )
            elif isinstance(command, RevisePayment):
                revised = payment_history_service.revise_customer_transaction(
                    owner_key=owner_key,
                    customer_id=customer_id,
                    booking_id=booking_id,
                    delivery_status=command.delivery_status,
                    amount=command.amount,
                )
                if not revised:
                    continue
            else:
                continue
        except Exception:
            db.session.rollback()
            logger.exception("Payment history update failed for booking %s (customer %s)", booking_id, customer_id)
            continue

        change_feed.publish(change_feed.COLLECTION_CUSTOMERS, change_feed.ACTION_UPDATED, owner_key, [customer_id])


# =============================================================================
# QUERIES
# =============================================================================

def get_booking(*, owner_key: str, booking_id: int, lock: bool = False) -> Booking:
    try:
        return require_owned(Booking, booking_id, owner_key, lock=lock)
    except OwnerAccessError as e:
        raise BookingNotFoundError(f"Booking {booking_id} not found") from e


def list_bookings(
    *,
    owner_key: str,
    delivery_status: str | None = None,
    payment_status: str | None = None,
    date_from=None,
    date_to=None,
    customer_id: int | None = None,
    sweep: bool = True,
) -> list[Booking]:
    """
    Owner's bookings, newest delivery date first.

    Reading the collection also triggers the booking retention sweep, so
    expired Paid + Delivered bookings are never returned stale.
    """
    if sweep:
        from .retention_service import sweep_on_read
        sweep_on_read(owner_key, bookings=True, lending_records=False)

    q = scoped_query(Booking, owner_key)
    if delivery_status:
        q = q.filter(Booking.status == delivery_status)
    if payment_status:
        q = q.filter(Booking.payment_status == payment_status)
    if date_from is not None:
        q = q.filter(Booking.delivery_date >= require_date(date_from, "date_from"))
    if date_to is not None:
        q = q.filter(Booking.delivery_date <= require_date(date_to, "date_to"))
    if customer_id is not None:
        q = q.filter(Booking.customer_id == customer_id)

    return q.order_by(Booking.delivery_date.desc(), Booking.id.desc()).all()


def expires_in_hours(booking: Booking, now: datetime | None = None) -> float | None:
    """Hours until the sweep deletes a locked booking; None while unlocked."""
    if not booking.is_locked:
        return None
    return hours_until_expiry(
        booking.updated_at,
        now or utcnow(),
        current_app.config["BOOKING_RETENTION_HOURS"],
    )


def serialize_booking(booking: Booking, now: datetime | None = None) -> dict:
    data = booking.to_dict()
    data["expires_in_hours"] = expires_in_hours(booking, now)
    return data


# =============================================================================
# COMMANDS
# =============================================================================

def create_booking(
    *,
    owner_key: str,
    customer_id: int,
    cylinders,
    dsc_code,
    delivery_date,
    service_type=None,
    cylinder_type: str | None = None,
    payment_status: str | None = None,
    payment_amount=None,
    empty_cylinder_received: bool = False,
    now: datetime | None = None,
) -> Booking:
    """
    Create a booking for a registered customer.

    Raises:
        CustomerNotFoundError: customer missing or foreign
        ValidationError (CapacityExceededError, TypeMismatchError,
            InvalidDateError): nothing was written
    """
    now = now or utcnow()
    customer = get_customer(owner_key=owner_key, customer_id=customer_id)

    state, commands = plan_create(
        Registration(cylinders=customer.cylinders, cylinder_type=customer.cylinder_type),
        cylinders=cylinders,
        cylinder_type=cylinder_type,
        dsc_code=dsc_code,
        service_type=service_type,
        delivery_date=delivery_date,
        today=local_today(current_app.config["BUSINESS_TIMEZONE"], now),
        now=now,
        payment_status=payment_status,
        payment_amount=payment_amount,
        empty_cylinder_received=empty_cylinder_received,
        **_pricing(),
    )

    added_unit_ids: list[int] = []
    with serializer.serialized(*_inventory_keys(owner_key, commands)):
        booking = Booking(owner_key=owner_key, customer_id=customer.id, stock_shortfall=0, created_at=now, updated_at=now)
        _apply_state(booking, state)
        db.session.add(booking)

        for command in commands:
            if isinstance(command, AddUnits):
                added_unit_ids += inventory_service._add_cylinders_inner(
                    owner_key=owner_key,
                    cylinder_type=command.cylinder_type,
                    status=command.status,
                    quantity=command.quantity,
                )
        db.session.commit()

    change_feed.publish(change_feed.COLLECTION_BOOKINGS, change_feed.ACTION_CREATED, owner_key, [booking.id])
    if added_unit_ids:
        change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_CREATED, owner_key, added_unit_ids)

    _apply_ledger(owner_key, booking, commands)
    return booking


def update_booking(
    *,
    owner_key: str,
    booking_id: int,
    payment_status: str | None = None,
    payment_amount=None,
    status: str | None = None,
    empty_cylinder_received: bool | None = None,
    on_insufficient_stock: str | None = None,
    now: datetime | None = None,
) -> Booking:
    """
    Partially update a booking's payment and/or delivery state.

    Raises:
        BookingNotFoundError
        BookingLockedError: booking is Paid + Delivered (repeatable)
        ValidationError: illegal move or amount
        InsufficientStockDecision: delivery short on stock, no decision given
        InsufficientStockError: delivery short on stock, decision was "cancel"
    """
    if on_insufficient_stock is not None:
        require_choice(on_insufficient_stock, STOCK_DECISIONS, "on_insufficient_stock")
    now = now or utcnow()

    with serializer.serialized(booking_key(booking_id)):
        booking = get_booking(owner_key=owner_key, booking_id=booking_id, lock=True)
        try:
            if booking.is_locked:
                raise BookingLockedError(booking.id)

            new_state, commands = plan_update(
                _state_of(booking),
                now=now,
                payment_status=payment_status,
                payment_amount=payment_amount,
                status=status,
                empty_cylinder_received=empty_cylinder_received,
                **_pricing(),
            )
        except (BookingError, ValidationError):
            db.session.rollback()
            raise

        added_unit_ids: list[int] = []
        removed_unit_ids: list[int] = []
        shortfall = 0

        with serializer.serialized(*_inventory_keys(owner_key, commands)):
            try:
                for command in commands:
                    if isinstance(command, AddUnits):
                        added_unit_ids += inventory_service._add_cylinders_inner(
                            owner_key=owner_key,
                            cylinder_type=command.cylinder_type,
                            status=command.status,
                            quantity=command.quantity,
                        )
                    elif isinstance(command, RemoveUnits):
                        try:
                            removed_unit_ids += inventory_service._remove_cylinders_inner(
                                owner_key=owner_key,
                                cylinder_type=command.cylinder_type,
                                status=command.status,
                                quantity=command.quantity,
                            )
                        except InsufficientStockError as e:
                            if on_insufficient_stock is None:
                                raise InsufficientStockDecision(e.available, e.requested) from e
                            if on_insufficient_stock == DECISION_CANCEL:
                                raise
                            shortfall = e.requested
                            logger.warning(
                                "Booking %s delivered without stock adjustment: %s %s FULL required, %s available (owner %r)",
                                booking.id, e.requested, e.item_type, e.available, owner_key,
                            )

                _apply_state(booking, new_state)
                if shortfall:
                    booking.stock_shortfall = shortfall
                booking.updated_at = now
                db.session.commit()
            except (BookingError, InsufficientStockError, ValidationError):
                db.session.rollback()
                raise

    change_feed.publish(change_feed.COLLECTION_BOOKINGS, change_feed.ACTION_UPDATED, owner_key, [booking.id])
    if added_unit_ids:
        change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_CREATED, owner_key, added_unit_ids)
    if removed_unit_ids:
        change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_DELETED, owner_key, removed_unit_ids)

    _apply_ledger(owner_key, booking, commands)
    return booking


def delete_booking(*, owner_key: str, booking_id: int) -> bool:
    """
    Remove a booking by hand. Idempotent: a missing (or foreign) id
    returns False. Inventory and the customer ledger are not touched.
    """
    deleted = db.session.query(Booking).filter(
        Booking.owner_key == owner_key,
        Booking.id == booking_id,
    ).delete(synchronize_session=False)
    db.session.commit()

    if deleted:
        change_feed.publish(change_feed.COLLECTION_BOOKINGS, change_feed.ACTION_DELETED, owner_key, [booking_id])
    return bool(deleted)
