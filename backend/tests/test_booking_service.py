# Overview: Pytest coverage for the booking lifecycle controller.

"""
Booking Lifecycle Tests

Covers creation against the customer's registration, delivery-driven
inventory reconciliation (including the cancel / proceed decision), ledger
side effects, and the Paid + Delivered lock.
"""

from datetime import timedelta
from decimal import Decimal
import logging

import pytest

from conftest import NOW, TODAY
from gasbook.extensions import db
from gasbook.models import Booking, Customer
from gasbook.services import booking_service, inventory_service, payment_history_service
from gasbook.services.booking_service import (
    BookingLockedError,
    BookingNotFoundError,
    InsufficientStockDecision,
)
from gasbook.services.customer_service import CustomerNotFoundError
from gasbook.services.inventory_service import InsufficientStockError
from gasbook.validation import CapacityExceededError, InvalidDateError, TypeMismatchError, ValidationError


def _book(owner_key, customer, **overrides):
    kwargs = dict(
        owner_key=owner_key,
        customer_id=customer.id,
        cylinders=2,
        cylinder_type="14.2kg",
        dsc_code="1234",
        service_type="Drop",
        delivery_date=TODAY,
        now=NOW,
    )
    kwargs.update(overrides)
    return booking_service.create_booking(**kwargs)


def _full(owner_key, cylinder_type="14.2kg"):
    return inventory_service.count_cylinders(owner_key=owner_key, cylinder_type=cylinder_type, status="FULL")


class TestCreateBooking:

    def test_capacity_exceeded(self, db_session, owner_a, customer_a):
        with pytest.raises(CapacityExceededError):
            _book(owner_a, customer_a, cylinders=3)
        assert db_session.query(Booking).count() == 0

    def test_type_mismatch(self, db_session, owner_a, customer_a):
        with pytest.raises(TypeMismatchError):
            _book(owner_a, customer_a, cylinder_type="5kg")

    def test_past_delivery_date(self, db_session, owner_a, customer_a):
        with pytest.raises(InvalidDateError):
            _book(owner_a, customer_a, delivery_date=TODAY - timedelta(days=1))

    def test_invalid_dsc_code(self, db_session, owner_a, customer_a):
        with pytest.raises(ValidationError):
            _book(owner_a, customer_a, dsc_code="12")

    def test_initial_state(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        assert booking.status == "Booked"
        assert booking.payment_status == "Pending"
        assert booking.to_dict()["payment"]["amount"] == "0"

    def test_empty_received_at_creation_adds_empty_units(self, db_session, owner_a, customer_a):
        _book(owner_a, customer_a, empty_cylinder_received=True)
        assert inventory_service.count_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="EMPTY") == 2

    def test_prepaid_booking_records_transaction(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a, payment_status="Paid")

        history = payment_history_service.get_payment_history(owner_key=owner_a, customer_id=customer_a.id)
        assert len(history) == 1
        assert history[0]["bookingId"] == booking.id
        assert history[0]["status"] == "Paid-PendingDelivery"
        assert history[0]["amount"] == "2450"

    def test_foreign_customer_rejected(self, db_session, owner_a, customer_b):
        with pytest.raises(CustomerNotFoundError):
            _book(owner_a, customer_b, cylinder_type="19kg")


class TestDeliveryScenario:

    def test_paid_delivered_full_flow(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _book(owner_a, customer_a)

        booking = booking_service.update_booking(
            owner_key=owner_a,
            booking_id=booking.id,
            payment_status="Paid",
            status="Delivered",
            now=NOW + timedelta(hours=1),
        )

        assert booking.to_dict()["payment"]["amount"] == "2450"
        assert booking.is_locked
        assert _full(owner_a) == 8

        customer = db.session.get(Customer, customer_a.id)
        assert customer.payment_history[0]["status"] == "Completed"
        assert customer.payment_history[0]["amount"] == "2450"
        assert customer.payment_status == "Paid"

    def test_lock_is_repeatable(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _book(owner_a, customer_a)
        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, payment_status="Paid", status="Delivered")

        for _ in range(3):
            with pytest.raises(BookingLockedError):
                booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="Cancelled")
        assert _full(owner_a) == 8

    def test_delivery_change_revises_existing_transaction(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _book(owner_a, customer_a, payment_status="Paid")
        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="Delivered")

        history = payment_history_service.get_payment_history(owner_key=owner_a, customer_id=customer_a.id)
        assert len(history) == 1
        assert history[0]["status"] == "Completed"
        assert history[0]["deliveryStatus"] == "Delivered"

    def test_partial_then_paid_appends(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        booking_service.update_booking(
            owner_key=owner_a, booking_id=booking.id, payment_status="Partial", payment_amount="1000",
            now=NOW + timedelta(minutes=1),
        )
        booking_service.update_booking(
            owner_key=owner_a, booking_id=booking.id, payment_status="Paid",
            now=NOW + timedelta(minutes=2),
        )

        history = payment_history_service.get_payment_history(owner_key=owner_a, customer_id=customer_a.id)
        assert [h["paymentStatus"] for h in history] == ["Paid", "Partial"]
        assert [h["amount"] for h in history] == ["2450", "1000"]

    def test_backward_move_rejected(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="InTransit")
        with pytest.raises(ValidationError):
            booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="Booked")

    def test_rejected_update_ends_transaction(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _book(owner_a, customer_a)
        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="InTransit")

        with pytest.raises(ValidationError):
            booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="Booked")
        assert not db.session.in_transaction()

        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, payment_status="Paid", status="Delivered")
        with pytest.raises(BookingLockedError):
            booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, status="Cancelled")
        assert not db.session.in_transaction()

    def test_updated_at_is_set(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        later = NOW + timedelta(hours=3)
        booking = booking_service.update_booking(
            owner_key=owner_a, booking_id=booking.id, status="InTransit", now=later,
        )
        assert booking.updated_at == later

    def test_empty_received_switch_on_later(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, empty_cylinder_received=True)
        assert inventory_service.count_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="EMPTY") == 2


class TestInsufficientStock:

    def _setup(self, owner_a, customer_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="FULL", quantity=1)
        return _book(owner_a, customer_a)

    def test_undecided_asks_for_decision(self, db_session, owner_a, customer_a):
        booking = self._setup(owner_a, customer_a)

        with pytest.raises(InsufficientStockDecision) as exc:
            booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, payment_status="Paid", status="Delivered")

        assert exc.value.available == 1
        assert exc.value.required == 2
        booking = db.session.get(Booking, booking.id)
        assert booking.status == "Booked"
        assert booking.payment_status == "Pending"
        assert _full(owner_a) == 1
        assert payment_history_service.get_payment_history(owner_key=owner_a, customer_id=customer_a.id) == []

    def test_cancel_aborts_everything(self, db_session, owner_a, customer_a):
        booking = self._setup(owner_a, customer_a)

        with pytest.raises(InsufficientStockError) as exc:
            booking_service.update_booking(
                owner_key=owner_a, booking_id=booking.id, status="Delivered", on_insufficient_stock="cancel",
            )

        assert exc.value.available == 1
        assert db.session.get(Booking, booking.id).status == "Booked"
        assert _full(owner_a) == 1

    def test_proceed_delivers_without_decrement(self, db_session, owner_a, customer_a, caplog):
        booking = self._setup(owner_a, customer_a)

        with caplog.at_level(logging.WARNING, logger="gasbook.bookings"):
            booking = booking_service.update_booking(
                owner_key=owner_a, booking_id=booking.id, status="Delivered", on_insufficient_stock="proceed",
            )

        assert booking.status == "Delivered"
        assert booking.stock_shortfall == 2
        assert _full(owner_a) == 1
        assert "without stock adjustment" in caplog.text

    def test_unknown_decision_rejected(self, db_session, owner_a, customer_a):
        booking = self._setup(owner_a, customer_a)
        with pytest.raises(ValidationError):
            booking_service.update_booking(
                owner_key=owner_a, booking_id=booking.id, status="Delivered", on_insufficient_stock="maybe",
            )


class TestLedgerFailure:

    def test_ledger_failure_does_not_undo_booking(self, db_session, owner_a, customer_a, monkeypatch, caplog):
        booking = _book(owner_a, customer_a)

        def boom(**kwargs):
            raise RuntimeError("ledger down")

        monkeypatch.setattr(payment_history_service, "record_customer_transaction", boom)

        with caplog.at_level(logging.ERROR, logger="gasbook.bookings"):
            booking = booking_service.update_booking(owner_key=owner_a, booking_id=booking.id, payment_status="Paid")

        assert db.session.get(Booking, booking.id).payment_status == "Paid"
        assert "Payment history update failed" in caplog.text


class TestQueries:

    def test_get_foreign_booking_not_found(self, db_session, owner_a, owner_b, customer_a):
        booking = _book(owner_a, customer_a)
        with pytest.raises(BookingNotFoundError):
            booking_service.get_booking(owner_key=owner_b, booking_id=booking.id)

    def test_list_filters(self, db_session, owner_a, customer_a):
        first = _book(owner_a, customer_a)
        second = _book(owner_a, customer_a, delivery_date=TODAY + timedelta(days=3))
        booking_service.update_booking(owner_key=owner_a, booking_id=second.id, status="InTransit")

        in_transit = booking_service.list_bookings(owner_key=owner_a, delivery_status="InTransit")
        assert [b.id for b in in_transit] == [second.id]

        window = booking_service.list_bookings(owner_key=owner_a, date_from=TODAY, date_to=TODAY)
        assert [b.id for b in window] == [first.id]

    def test_delete_is_idempotent(self, db_session, owner_a, customer_a):
        booking = _book(owner_a, customer_a)
        assert booking_service.delete_booking(owner_key=owner_a, booking_id=booking.id) is True
        assert booking_service.delete_booking(owner_key=owner_a, booking_id=booking.id) is False

    def test_expires_in_hours_only_for_locked(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _book(owner_a, customer_a)
        assert booking_service.expires_in_hours(booking, NOW) is None

        booking = booking_service.update_booking(
            owner_key=owner_a, booking_id=booking.id, payment_status="Paid", status="Delivered", now=NOW,
        )
        assert booking_service.expires_in_hours(booking, NOW + timedelta(hours=5)) == 15.0
        assert booking_service.serialize_booking(booking, NOW)["expires_in_hours"] == 20.0
