# Overview: Pytest coverage for the pure booking rules (no database).

"""
Booking Rules Tests

Covers pricing, transitions, and the commands produced by create/update
plans. Everything here runs without an app or database.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from gasbook.services.booking_rules import (
    AddUnits,
    BookingState,
    RecordPayment,
    Registration,
    RemoveUnits,
    RevisePayment,
    combined_status,
    compute_amount,
    hours_until_expiry,
    normalize_service_type,
    plan_create,
    plan_update,
    validate_delivery_move,
    validate_payment_move,
)
from gasbook.validation import (
    CapacityExceededError,
    InvalidDateError,
    TypeMismatchError,
    ValidationError,
)


PRICES = {"14.2kg": 1150, "5kg": 1150, "19kg": 1150}
FEES = {"No": 0, "Pickup": 50, "Drop": 50, "Pickup+Drop": 70}
TODAY = date(2026, 1, 5)
NOW = datetime(2026, 1, 5, 6, 0, 0)
REGISTRATION = Registration(cylinders=2, cylinder_type="14.2kg")


def _create(**overrides):
    kwargs = dict(
        cylinders=2,
        cylinder_type="14.2kg",
        dsc_code="1234",
        service_type="Drop",
        delivery_date=TODAY,
        today=TODAY,
        now=NOW,
        prices=PRICES,
        fees=FEES,
    )
    kwargs.update(overrides)
    return plan_create(REGISTRATION, **kwargs)


def _state(**overrides) -> BookingState:
    fields = dict(
        cylinders=2,
        cylinder_type="14.2kg",
        dsc_code="1234",
        service_type="Drop",
        delivery_date=TODAY,
    )
    fields.update(overrides)
    return BookingState(**fields)


def _update(state, **kwargs):
    return plan_update(state, now=NOW, prices=PRICES, fees=FEES, **kwargs)


class TestPricing:

    @pytest.mark.parametrize(
        "cylinders,service_type,expected",
        [
            (2, "Drop", Decimal("2450")),
            (1, "No", Decimal("1150")),
            (3, "Pickup", Decimal("3500")),
            (2, "Pickup+Drop", Decimal("2370")),
        ],
    )
    def test_full_amount(self, cylinders, service_type, expected):
        assert compute_amount(cylinders, "14.2kg", service_type, prices=PRICES, fees=FEES) == expected

    def test_service_type_alias_with_spaces(self):
        assert normalize_service_type("Pickup + Drop") == "Pickup+Drop"

    def test_missing_service_type_defaults_to_no(self):
        assert normalize_service_type(None) == "No"

    def test_unknown_service_type_rejected(self):
        with pytest.raises(ValidationError):
            normalize_service_type("Courier")


class TestCombinedStatus:

    @pytest.mark.parametrize(
        "payment,delivery,expected",
        [
            ("Paid", "Delivered", "Completed"),
            ("Paid", "Booked", "Paid-PendingDelivery"),
            ("Paid", "InTransit", "Paid-PendingDelivery"),
            ("Partial", "Delivered", "PartialPayment"),
            ("Pending", "Delivered", "Pending"),
        ],
    )
    def test_combined_status(self, payment, delivery, expected):
        assert combined_status(payment, delivery) == expected


class TestTransitions:

    def test_forward_delivery_moves_allowed(self):
        validate_delivery_move("Booked", "InTransit")
        validate_delivery_move("InTransit", "Delivered")
        validate_delivery_move("Booked", "Cancelled")

    @pytest.mark.parametrize(
        "current,new",
        [("Delivered", "Booked"), ("InTransit", "Booked"), ("Cancelled", "Delivered"), ("Delivered", "Cancelled")],
    )
    def test_backward_or_terminal_delivery_moves_rejected(self, current, new):
        with pytest.raises(ValidationError):
            validate_delivery_move(current, new)

    def test_paid_cannot_go_back_to_pending(self):
        with pytest.raises(ValidationError):
            validate_payment_move("Paid", "Pending")

    def test_partial_to_partial_allowed(self):
        validate_payment_move("Partial", "Partial")


class TestPlanCreate:

    def test_defaults_to_booked_pending_with_zero_amount(self):
        state, commands = _create()
        assert state.status == "Booked"
        assert state.payment_status == "Pending"
        assert state.payment_amount == Decimal("0")
        assert commands == []

    def test_capacity_exceeded(self):
        with pytest.raises(CapacityExceededError):
            _create(cylinders=3)

    def test_type_mismatch(self):
        with pytest.raises(TypeMismatchError):
            _create(cylinder_type="19kg")

    def test_cylinder_type_defaults_to_registration(self):
        state, _ = _create(cylinder_type=None)
        assert state.cylinder_type == "14.2kg"

    @pytest.mark.parametrize("code", ["123", "12345", "12a4", "", None, "١٢٣٤", "１２３４"])
    def test_dsc_code_must_be_four_digits(self, code):
        with pytest.raises(ValidationError):
            _create(dsc_code=code)

    def test_delivery_date_in_past_rejected(self):
        with pytest.raises(InvalidDateError):
            _create(delivery_date=TODAY - timedelta(days=1))

    def test_delivery_date_today_accepted(self):
        state, _ = _create(delivery_date="2026-01-05")
        assert state.delivery_date == TODAY

    def test_empty_received_requires_drop(self):
        with pytest.raises(ValidationError):
            _create(service_type="Pickup", empty_cylinder_received=True)

    def test_empty_received_adds_empty_units(self):
        _, commands = _create(empty_cylinder_received=True)
        assert commands == [AddUnits("14.2kg", "EMPTY", 2)]

    def test_prepaid_records_payment(self):
        state, commands = _create(payment_status="Paid")
        assert state.payment_amount == Decimal("2450")
        assert state.last_payment_date == NOW
        assert commands == [RecordPayment("Paid", "Booked", Decimal("2450"), NOW)]

    def test_partial_requires_amount_within_full(self):
        with pytest.raises(ValidationError):
            _create(payment_status="Partial")
        with pytest.raises(ValidationError):
            _create(payment_status="Partial", payment_amount="3000")
        with pytest.raises(ValidationError):
            _create(payment_status="Partial", payment_amount=0)

        state, _ = _create(payment_status="Partial", payment_amount="500.5")
        assert state.payment_amount == Decimal("500.50")


class TestPlanUpdate:

    def test_paid_and_delivered_in_one_step(self):
        state, commands = _update(_state(), payment_status="Paid", status="Delivered")

        assert state.payment_amount == Decimal("2450")
        assert state.is_locked
        assert RemoveUnits("14.2kg", "FULL", 2) in commands
        assert RecordPayment("Paid", "Delivered", Decimal("2450"), NOW) in commands

    def test_pending_delivery_does_not_touch_ledger(self):
        _, commands = _update(_state(), status="InTransit")
        assert commands == []

    def test_delivery_change_on_paid_booking_revises(self):
        paid = _state(payment_status="Paid", payment_amount=Decimal("2450"), last_payment_date=NOW)
        state, commands = _update(paid, status="Delivered")

        assert commands == [
            RemoveUnits("14.2kg", "FULL", 2),
            RevisePayment("Paid", "Delivered", Decimal("2450")),
        ]
        assert state.last_payment_date == NOW

    def test_partial_amount_change_records(self):
        partial = _state(payment_status="Partial", payment_amount=Decimal("500"))
        _, commands = _update(partial, payment_amount="900")
        assert commands == [RecordPayment("Partial", "Booked", Decimal("900"), NOW)]

    def test_partial_without_amount_keeps_current(self):
        partial = _state(payment_status="Partial", payment_amount=Decimal("500"))
        state, commands = _update(partial, status="InTransit")
        assert state.payment_amount == Decimal("500")
        assert commands == [RevisePayment("Partial", "InTransit", Decimal("500"))]

    def test_already_delivered_does_not_remove_again(self):
        delivered = _state(status="Delivered")
        _, commands = _update(delivered, payment_status="Paid")
        assert not any(isinstance(c, RemoveUnits) for c in commands)

    def test_empty_received_can_only_switch_on(self):
        _, commands = _update(_state(), empty_cylinder_received=True)
        assert commands == [AddUnits("14.2kg", "EMPTY", 2)]

        with pytest.raises(ValidationError):
            _update(_state(empty_cylinder_received=True), empty_cylinder_received=False)

    def test_update_does_not_mutate_input_state(self):
        original = _state()
        _update(original, payment_status="Paid")
        assert original.payment_status == "Pending"


class TestExpiry:

    def test_hours_until_expiry(self):
        assert hours_until_expiry(NOW, NOW + timedelta(hours=5), 20) == 15.0

    def test_never_negative(self):
        assert hours_until_expiry(NOW, NOW + timedelta(hours=30), 20) == 0.0
