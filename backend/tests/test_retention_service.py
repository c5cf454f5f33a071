# Overview: Pytest coverage for the retention sweeper.

"""
Retention Sweeper Tests

Boundaries: 20 hours for Paid + Delivered bookings, 28 days for returned
lending records. Sweeps are idempotent and publish deletion events.
"""

from datetime import timedelta

from conftest import NOW, TODAY
from gasbook.models import Booking, Customer, LendingRecord
from gasbook.scheduler import run_booking_sweep, run_lending_sweep
from gasbook.services import booking_service, change_feed, inventory_service, retention_service


def _locked_booking(owner_key, customer, now=NOW):
    booking = booking_service.create_booking(
        owner_key=owner_key,
        customer_id=customer.id,
        cylinders=1,
        dsc_code="4321",
        service_type="No",
        delivery_date=TODAY,
        now=now,
    )
    return booking_service.update_booking(
        owner_key=owner_key,
        booking_id=booking.id,
        payment_status="Paid",
        status="Delivered",
        now=now,
    )


def _returned_record(owner_key, customer, returned_at):
    inventory_service.add_stoves(owner_key=owner_key, model="2-burner", quantity=1)
    stove = inventory_service.lend_stove(
        owner_key=owner_key, model="2-burner", customer_id=customer.id, payment_status="PAID",
    )
    return inventory_service.return_stove(owner_key=owner_key, stove_id=stove.id, now=returned_at)


class TestBookingRetention:

    def test_retained_just_before_twenty_hours(self, db_session, owner_a, customer_a, full_stock_a):
        _locked_booking(owner_a, customer_a)
        deleted = retention_service.sweep_expired_bookings(owner_a, NOW + timedelta(hours=19, minutes=59))
        assert deleted == 0
        assert db_session.query(Booking).count() == 1

    def test_deleted_at_twenty_hours(self, db_session, owner_a, customer_a, full_stock_a):
        _locked_booking(owner_a, customer_a)
        deleted = retention_service.sweep_expired_bookings(owner_a, NOW + timedelta(hours=20))
        assert deleted == 1
        assert db_session.query(Booking).count() == 0

    def test_customer_and_ledger_survive(self, db_session, owner_a, customer_a, full_stock_a):
        _locked_booking(owner_a, customer_a)
        retention_service.sweep_expired_bookings(owner_a, NOW + timedelta(days=2))

        customer = db_session.get(Customer, customer_a.id)
        assert customer is not None
        assert customer.payment_history[0]["status"] == "Completed"

    def test_unlocked_bookings_never_swept(self, db_session, owner_a, customer_a):
        booking_service.create_booking(
            owner_key=owner_a, customer_id=customer_a.id, cylinders=1, dsc_code="1111",
            service_type="No", delivery_date=TODAY, payment_status="Paid", now=NOW,
        )
        assert retention_service.sweep_expired_bookings(owner_a, NOW + timedelta(days=30)) == 0

    def test_second_sweep_deletes_nothing(self, db_session, owner_a, customer_a, full_stock_a):
        _locked_booking(owner_a, customer_a)
        later = NOW + timedelta(hours=21)
        assert retention_service.run_retention_sweep(owner_a, later)["bookings_deleted"] == 1
        assert retention_service.run_retention_sweep(owner_a, later) == {
            "bookings_deleted": 0,
            "lending_records_deleted": 0,
        }

    def test_owner_scope_respected(self, db_session, owner_a, owner_b, customer_a, full_stock_a):
        _locked_booking(owner_a, customer_a)
        assert retention_service.sweep_expired_bookings(owner_b, NOW + timedelta(days=1)) == 0
        assert retention_service.sweep_expired_bookings(None, NOW + timedelta(days=1)) == 1

    def test_sweep_publishes_deleted_event(self, db_session, owner_a, customer_a, full_stock_a):
        booking = _locked_booking(owner_a, customer_a)
        booking_id = booking.id
        events = []
        change_feed.subscribe(change_feed.COLLECTION_BOOKINGS, events.append)

        retention_service.sweep_expired_bookings(owner_a, NOW + timedelta(hours=20))

        assert events == [change_feed.ChangeEvent("bookings", "deleted", owner_a, (booking_id,))]


class TestLendingRetention:

    def test_twenty_eight_day_boundary(self, db_session, owner_a, customer_a):
        _returned_record(owner_a, customer_a, NOW)

        assert retention_service.sweep_expired_lending_records(owner_a, NOW + timedelta(days=27, hours=23)) == 0
        assert retention_service.sweep_expired_lending_records(owner_a, NOW + timedelta(days=28)) == 1
        assert db_session.query(LendingRecord).count() == 0

    def test_reading_records_sweeps_old_ones(self, db_session, owner_a, customer_a):
        _returned_record(owner_a, customer_a, NOW - timedelta(days=400))

        assert inventory_service.list_lending_records(owner_key=owner_a) == []


class TestSweepOnRead:

    def test_failure_is_swallowed(self, db_session, owner_a, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(retention_service, "sweep_expired_bookings", boom)

        assert booking_service.list_bookings(owner_key=owner_a) == []
        assert "On-read retention sweep failed" in caplog.text


class TestScheduledJobs:

    def test_jobs_sweep_all_owners(self, app, db_session, owner_a, customer_a):
        _returned_record(owner_a, customer_a, NOW - timedelta(days=400))

        assert run_lending_sweep(app) == 1
        assert run_booking_sweep(app) == 0
