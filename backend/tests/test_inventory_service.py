# Overview: Pytest coverage for the cylinder and stove inventory ledger.

"""
Inventory Ledger Tests

Unit-derived counts, all-or-nothing removal/transition, and the stove
lending cycle.
"""

from datetime import timedelta

import pytest

from gasbook.models import LendingRecord, StoveUnit
from gasbook.services import inventory_service
from gasbook.services.inventory_service import (
    InsufficientStockError,
    NoStockError,
    UnitNotFoundError,
)
from gasbook.services.owner_service import OwnerAccessError
from gasbook.time_utils import utcnow
from gasbook.validation import ValidationError


def _count(owner_key, cylinder_type, status):
    return inventory_service.count_cylinders(owner_key=owner_key, cylinder_type=cylinder_type, status=status)


class TestCylinderUnits:

    def test_add_creates_independent_units(self, db_session, owner_a):
        ids = inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="5kg", status="EMPTY", quantity=4)
        assert len(set(ids)) == 4
        assert _count(owner_a, "5kg", "EMPTY") == 4

    def test_remove_more_than_available_changes_nothing(self, db_session, owner_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="19kg", status="FULL", quantity=3)

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.remove_cylinders(owner_key=owner_a, cylinder_type="19kg", status="FULL", quantity=5)

        assert exc.value.available == 3
        assert exc.value.requested == 5
        assert _count(owner_a, "19kg", "FULL") == 3

    def test_remove_exact_quantity(self, db_session, owner_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="19kg", status="FULL", quantity=3)
        inventory_service.remove_cylinders(owner_key=owner_a, cylinder_type="19kg", status="FULL", quantity=3)
        assert _count(owner_a, "19kg", "FULL") == 0

    def test_remove_only_touches_matching_status(self, db_session, owner_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="FULL", quantity=2)
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="EMPTY", quantity=2)

        inventory_service.remove_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="EMPTY", quantity=2)

        assert _count(owner_a, "14.2kg", "FULL") == 2
        assert _count(owner_a, "14.2kg", "EMPTY") == 0

    def test_transition_is_all_or_nothing(self, db_session, owner_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="5kg", status="EMPTY", quantity=2)

        with pytest.raises(InsufficientStockError):
            inventory_service.transition_cylinders(
                owner_key=owner_a, cylinder_type="5kg", from_status="EMPTY", to_status="FULL", quantity=3,
            )
        assert _count(owner_a, "5kg", "EMPTY") == 2

        inventory_service.transition_cylinders(
            owner_key=owner_a, cylinder_type="5kg", from_status="EMPTY", to_status="FULL", quantity=2,
        )
        assert _count(owner_a, "5kg", "EMPTY") == 0
        assert _count(owner_a, "5kg", "FULL") == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"cylinder_type": "50kg", "status": "FULL", "quantity": 1},
            {"cylinder_type": "5kg", "status": "HALF", "quantity": 1},
            {"cylinder_type": "5kg", "status": "FULL", "quantity": 0},
            {"cylinder_type": "5kg", "status": "FULL", "quantity": 2.5},
        ],
    )
    def test_invalid_input_rejected(self, db_session, owner_a, kwargs):
        with pytest.raises(ValidationError):
            inventory_service.add_cylinders(owner_key=owner_a, **kwargs)

    def test_counts_include_every_type(self, db_session, owner_a):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="FULL", quantity=3)
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=2)

        counts = inventory_service.get_inventory_counts(owner_key=owner_a)

        assert counts["cylinders"]["14.2kg"] == {"FULL": 3, "EMPTY": 0}
        assert counts["cylinders"]["19kg"] == {"FULL": 0, "EMPTY": 0}
        assert counts["stoves"]["2-burner"] == {"AVAILABLE": 2, "LENT": 0}
        assert counts["totals"]["full_cylinders"] == 3
        assert counts["totals"]["available_stoves"] == 2

    def test_counts_are_owner_scoped(self, db_session, owner_a, owner_b):
        inventory_service.add_cylinders(owner_key=owner_a, cylinder_type="14.2kg", status="FULL", quantity=3)
        assert _count(owner_b, "14.2kg", "FULL") == 0

        with pytest.raises(InsufficientStockError):
            inventory_service.remove_cylinders(owner_key=owner_b, cylinder_type="14.2kg", status="FULL", quantity=1)
        assert _count(owner_a, "14.2kg", "FULL") == 3


class TestStoves:

    def test_lend_and_return_cycle(self, db_session, owner_a, customer_a):
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=1)

        stove = inventory_service.lend_stove(
            owner_key=owner_a, model="2-burner", customer_id=customer_a.id, payment_status="PENDING",
        )
        assert stove.status == "LENT"
        assert stove.borrower_name == "Asha Rao"
        assert stove.to_dict()["borrower"]["phone"] == "9876543210"

        inventory_service.set_stove_payment_status(owner_key=owner_a, stove_id=stove.id, payment_status="PAID")

        record = inventory_service.return_stove(owner_key=owner_a, stove_id=stove.id)
        assert record.status == "RETURNED"
        assert record.payment_status == "PAID"
        assert record.borrower_customer_id == customer_a.id
        assert record.stove_model == "2-burner"

        stove = db_session.get(StoveUnit, stove.id)
        assert stove.status == "AVAILABLE"
        assert stove.borrower_name is None
        assert stove.to_dict()["borrower"] is None

    def test_lend_without_stock(self, db_session, owner_a, customer_a):
        with pytest.raises(NoStockError):
            inventory_service.lend_stove(
                owner_key=owner_a, model="3-burner", customer_id=customer_a.id, payment_status="PAID",
            )

    def test_lend_to_foreign_customer_rejected(self, db_session, owner_a, customer_b):
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=1)
        with pytest.raises(OwnerAccessError):
            inventory_service.lend_stove(
                owner_key=owner_a, model="2-burner", customer_id=customer_b.id, payment_status="PAID",
            )

    def test_return_available_stove_rejected(self, db_session, owner_a):
        (stove_id,) = inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=1)
        with pytest.raises(ValidationError):
            inventory_service.return_stove(owner_key=owner_a, stove_id=stove_id)
        assert db_session.query(LendingRecord).count() == 0

    def test_rejected_return_ends_transaction(self, db_session, owner_a):
        (stove_id,) = inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=1)

        with pytest.raises(ValidationError):
            inventory_service.return_stove(owner_key=owner_a, stove_id=stove_id)
        assert not db_session.in_transaction()

        with pytest.raises(ValidationError):
            inventory_service.set_stove_payment_status(owner_key=owner_a, stove_id=stove_id, payment_status="PAID")
        assert not db_session.in_transaction()

    def test_return_foreign_stove_not_found(self, db_session, owner_a, owner_b):
        (stove_id,) = inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=1)
        with pytest.raises(UnitNotFoundError):
            inventory_service.return_stove(owner_key=owner_b, stove_id=stove_id)

    def test_remove_stoves_skips_lent_units(self, db_session, owner_a, customer_a):
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=2)
        inventory_service.lend_stove(
            owner_key=owner_a, model="2-burner", customer_id=customer_a.id, payment_status="PAID",
        )

        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.remove_stoves(owner_key=owner_a, model="2-burner", quantity=2)
        assert exc.value.available == 1

        inventory_service.remove_stoves(owner_key=owner_a, model="2-burner", quantity=1)
        remaining = inventory_service.list_stoves(owner_key=owner_a)
        assert [s.status for s in remaining] == ["LENT"]

    def test_list_stoves_by_status(self, db_session, owner_a, customer_a):
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=3)
        inventory_service.lend_stove(
            owner_key=owner_a, model="2-burner", customer_id=customer_a.id, payment_status="PAID",
        )
        assert len(inventory_service.list_stoves(owner_key=owner_a, status="AVAILABLE")) == 2
        assert len(inventory_service.list_stoves(owner_key=owner_a, status="LENT")) == 1
        assert inventory_service.count_stoves(owner_key=owner_a, model="2-burner", status="AVAILABLE") == 2

    def test_lending_records_newest_return_first(self, db_session, owner_a, customer_a):
        inventory_service.add_stoves(owner_key=owner_a, model="2-burner", quantity=2)
        first = inventory_service.lend_stove(
            owner_key=owner_a, model="2-burner", customer_id=customer_a.id, payment_status="PAID",
        )
        second = inventory_service.lend_stove(
            owner_key=owner_a, model="2-burner", customer_id=customer_a.id, payment_status="PAID",
        )
        now = utcnow()
        inventory_service.return_stove(owner_key=owner_a, stove_id=first.id, now=now - timedelta(hours=2))
        inventory_service.return_stove(owner_key=owner_a, stove_id=second.id, now=now - timedelta(hours=1))

        records = inventory_service.list_lending_records(owner_key=owner_a)
        assert [r.stove_id for r in records] == [second.id, first.id]
