# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/gasbook/services/inventory_service.py

import logging

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CylinderUnit, StoveUnit, LendingRecord, Customer
from ..time_utils import utcnow
from ..validation import ValidationError, require_choice, require_quantity
from . import change_feed
from .concurrency import lock_for_update, serializer, inventory_key
from .owner_service import OwnerAccessError, require_owned
"""
Inventory Invariants (authoritative)

Unit model:
- Every physical cylinder / stove is one row. Counts are COUNT(*) over rows,
  never a stored quantity field.
- A (type, status) count can never go negative: removal and transition are
  all-or-nothing. If fewer than `quantity` matching units exist, nothing is
  touched and InsufficientStockError reports the available count.
- Which matching units are removed is unspecified (they are fungible).

Serialization:
- Every mutation of one (owner, kind, type, status) key runs inside
  serializer.serialized(...), and unit selection uses SELECT ... FOR UPDATE
  where the database honors it. The count check and the deletes that follow
  it therefore cannot interleave with another decrement of the same key.

Stoves:
- AVAILABLE <-> LENT are status flips on one unit.
- LENT carries a borrower snapshot and a PAID / PENDING payment status.
- LENT -> AVAILABLE always writes a RETURNED LendingRecord first.
"""


logger = logging.getLogger("gasbook.inventory")

KIND_CYLINDER = "cylinder"
KIND_STOVE = "stove"

CYLINDER_FULL = "FULL"
CYLINDER_EMPTY = "EMPTY"
CYLINDER_STATUSES = (CYLINDER_FULL, CYLINDER_EMPTY)

STOVE_AVAILABLE = "AVAILABLE"
STOVE_LENT = "LENT"
STOVE_STATUSES = (STOVE_AVAILABLE, STOVE_LENT)

STOVE_PAYMENT_PAID = "PAID"
STOVE_PAYMENT_PENDING = "PENDING"
STOVE_PAYMENT_STATUSES = (STOVE_PAYMENT_PAID, STOVE_PAYMENT_PENDING)


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    pass


class InsufficientStockError(InventoryError):
    """Fewer matching units exist than were requested. Nothing was changed."""

    def __init__(self, item_type: str, status: str, available: int, requested: int):
        self.item_type = item_type
        self.status = status
        self.available = available
        self.requested = requested
        super().__init__(
            f"insufficient: Only {available} {item_type} ({status}) available, {requested} requested"
        )


class NoStockError(InventoryError):
    """No AVAILABLE stove of the requested model."""
    pass


class UnitNotFoundError(InventoryError):
    """Unit id missing or owned by another owner."""
    pass


def cylinder_types() -> tuple:
    return tuple(current_app.config["CYLINDER_TYPES"])


def _validate_cylinder_type(cylinder_type) -> str:
    return require_choice(cylinder_type, cylinder_types(), "cylinder_type")


def _validate_stove_model(model) -> str:
    value = "" if model is None else str(model).strip()
    if not value:
        raise ValidationError("model is required")
    if len(value) > 64:
        raise ValidationError("model exceeds max length 64")
    return value


# =============================================================================
# CYLINDERS
# =============================================================================

def count_cylinders(*, owner_key: str, cylinder_type: str, status: str) -> int:
    q = db.session.query(func.count(CylinderUnit.id)).filter(
        CylinderUnit.owner_key == owner_key,
        CylinderUnit.cylinder_type == cylinder_type,
        CylinderUnit.status == status,
    )
    return int(q.scalar() or 0)


def _add_cylinders_inner(*, owner_key: str, cylinder_type: str, status: str, quantity: int) -> list[int]:
    """Core insert without validation, serialization, or commit."""
    now = utcnow()
    units = [
        CylinderUnit(
            owner_key=owner_key,
            cylinder_type=cylinder_type,
            status=status,
            created_at=now,
            updated_at=now,
        )
        for _ in range(quantity)
    ]
    db.session.add_all(units)
    db.session.flush()
    return [u.id for u in units]


def _select_units_locked(model, filters, quantity: int) -> list:
    """
    Select up to `quantity` matching unit ids, locked.

    The caller already holds the serializer key for these filters.
    """
    query = db.session.query(model.id).filter(*filters).order_by(model.id)
    rows = lock_for_update(query).limit(quantity).all()
    return [r.id for r in rows]


def _remove_cylinders_inner(*, owner_key: str, cylinder_type: str, status: str, quantity: int) -> list[int]:
    """
    Core all-or-nothing removal without serialization or commit.

    Callers must hold serializer.serialized(inventory_key(...)) for the key.
    Called by remove_cylinders() and by booking_service on delivery.
    """
    ids = _select_units_locked(
        CylinderUnit,
        (
            CylinderUnit.owner_key == owner_key,
            CylinderUnit.cylinder_type == cylinder_type,
            CylinderUnit.status == status,
        ),
        quantity,
    )
    if len(ids) < quantity:
        raise InsufficientStockError(cylinder_type, status, available=len(ids), requested=quantity)

    db.session.query(CylinderUnit).filter(CylinderUnit.id.in_(ids)).delete(synchronize_session=False)
    db.session.flush()
    return ids


def add_cylinders(*, owner_key: str, cylinder_type: str, status: str, quantity) -> list[int]:
    """
    Insert `quantity` independent cylinder units.

    Always succeeds for valid input. Returns the new unit ids.
    """
    cylinder_type = _validate_cylinder_type(cylinder_type)
    status = require_choice(status, CYLINDER_STATUSES, "status")
    quantity = require_quantity(quantity)

    with serializer.serialized(inventory_key(owner_key, KIND_CYLINDER, cylinder_type, status)):
        ids = _add_cylinders_inner(
            owner_key=owner_key,
            cylinder_type=cylinder_type,
            status=status,
            quantity=quantity,
        )
        db.session.commit()

    change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_CREATED, owner_key, ids)
    return ids


def remove_cylinders(*, owner_key: str, cylinder_type: str, status: str, quantity) -> list[int]:
    """
    Delete exactly `quantity` matching cylinder units, or nothing.

    Raises:
        InsufficientStockError: fewer than `quantity` units; count unchanged
    """
    cylinder_type = _validate_cylinder_type(cylinder_type)
    status = require_choice(status, CYLINDER_STATUSES, "status")
    quantity = require_quantity(quantity)

    with serializer.serialized(inventory_key(owner_key, KIND_CYLINDER, cylinder_type, status)):
        try:
            ids = _remove_cylinders_inner(
                owner_key=owner_key,
                cylinder_type=cylinder_type,
                status=status,
                quantity=quantity,
            )
            db.session.commit()
        except InventoryError:
            db.session.rollback()
            raise

    change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_DELETED, owner_key, ids)
    return ids


def transition_cylinders(
    *,
    owner_key: str,
    cylinder_type: str,
    from_status: str,
    to_status: str,
    quantity,
) -> list[int]:
    """
    Flip `quantity` units from one status to another, all-or-nothing.

    e.g. EMPTY -> FULL after a refill run.
    """
    cylinder_type = _validate_cylinder_type(cylinder_type)
    from_status = require_choice(from_status, CYLINDER_STATUSES, "from_status")
    to_status = require_choice(to_status, CYLINDER_STATUSES, "to_status")
    quantity = require_quantity(quantity)
    if from_status == to_status:
        raise ValidationError("from_status and to_status must differ")

    with serializer.serialized(
        inventory_key(owner_key, KIND_CYLINDER, cylinder_type, from_status),
        inventory_key(owner_key, KIND_CYLINDER, cylinder_type, to_status),
    ):
        try:
            ids = _select_units_locked(
                CylinderUnit,
                (
                    CylinderUnit.owner_key == owner_key,
                    CylinderUnit.cylinder_type == cylinder_type,
                    CylinderUnit.status == from_status,
                ),
                quantity,
            )
            if len(ids) < quantity:
                raise InsufficientStockError(cylinder_type, from_status, available=len(ids), requested=quantity)

            db.session.query(CylinderUnit).filter(CylinderUnit.id.in_(ids)).update(
                {"status": to_status, "updated_at": utcnow()},
                synchronize_session=False,
            )
            db.session.commit()
        except InventoryError:
            db.session.rollback()
            raise

    change_feed.publish(change_feed.COLLECTION_CYLINDERS, change_feed.ACTION_UPDATED, owner_key, ids)
    return ids


def get_inventory_counts(*, owner_key: str) -> dict:
    """
    Unit counts for one owner.

    Every configured cylinder type appears (with zeros) even without stock.
    """
    cylinders = {t: {CYLINDER_FULL: 0, CYLINDER_EMPTY: 0} for t in cylinder_types()}

    rows = db.session.query(
        CylinderUnit.cylinder_type, CylinderUnit.status, func.count(CylinderUnit.id)
    ).filter(
        CylinderUnit.owner_key == owner_key,
    ).group_by(CylinderUnit.cylinder_type, CylinderUnit.status).all()

    for cylinder_type, status, count in rows:
        cylinders.setdefault(cylinder_type, {CYLINDER_FULL: 0, CYLINDER_EMPTY: 0})[status] = int(count)

    stoves: dict[str, dict] = {}
    stove_rows = db.session.query(
        StoveUnit.model, StoveUnit.status, func.count(StoveUnit.id)
    ).filter(
        StoveUnit.owner_key == owner_key,
    ).group_by(StoveUnit.model, StoveUnit.status).all()

    for model, status, count in stove_rows:
        stoves.setdefault(model, {STOVE_AVAILABLE: 0, STOVE_LENT: 0})[status] = int(count)

    return {
        "cylinders": cylinders,
        "stoves": stoves,
        "totals": {
            "full_cylinders": sum(c[CYLINDER_FULL] for c in cylinders.values()),
            "empty_cylinders": sum(c[CYLINDER_EMPTY] for c in cylinders.values()),
            "available_stoves": sum(s[STOVE_AVAILABLE] for s in stoves.values()),
            "lent_stoves": sum(s[STOVE_LENT] for s in stoves.values()),
        },
    }


# =============================================================================
# STOVES
# =============================================================================

def count_stoves(*, owner_key: str, model: str, status: str) -> int:
    q = db.session.query(func.count(StoveUnit.id)).filter(
        StoveUnit.owner_key == owner_key,
        StoveUnit.model == model,
        StoveUnit.status == status,
    )
    return int(q.scalar() or 0)


def add_stoves(*, owner_key: str, model: str, quantity) -> list[int]:
    """Insert `quantity` AVAILABLE stoves of one model."""
    model = _validate_stove_model(model)
    quantity = require_quantity(quantity)

    with serializer.serialized(inventory_key(owner_key, KIND_STOVE, model, STOVE_AVAILABLE)):
        now = utcnow()
        stoves = [
            StoveUnit(owner_key=owner_key, model=model, status=STOVE_AVAILABLE, created_at=now, updated_at=now)
            for _ in range(quantity)
        ]
        db.session.add_all(stoves)
        db.session.commit()
        ids = [s.id for s in stoves]

    change_feed.publish(change_feed.COLLECTION_STOVES, change_feed.ACTION_CREATED, owner_key, ids)
    return ids


def remove_stoves(*, owner_key: str, model: str, quantity) -> list[int]:
    """
    Delete `quantity` AVAILABLE stoves of one model, all-or-nothing.

    LENT stoves are never removed; they must be returned first.
    """
    model = _validate_stove_model(model)
    quantity = require_quantity(quantity)

    with serializer.serialized(inventory_key(owner_key, KIND_STOVE, model, STOVE_AVAILABLE)):
        try:
            ids = _select_units_locked(
                StoveUnit,
                (
                    StoveUnit.owner_key == owner_key,
                    StoveUnit.model == model,
                    StoveUnit.status == STOVE_AVAILABLE,
                ),
                quantity,
            )
            if len(ids) < quantity:
                raise InsufficientStockError(model, STOVE_AVAILABLE, available=len(ids), requested=quantity)

            db.session.query(StoveUnit).filter(StoveUnit.id.in_(ids)).delete(synchronize_session=False)
            db.session.commit()
        except InventoryError:
            db.session.rollback()
            raise

    change_feed.publish(change_feed.COLLECTION_STOVES, change_feed.ACTION_DELETED, owner_key, ids)
    return ids


def lend_stove(*, owner_key: str, model: str, customer_id: int, payment_status: str, now=None) -> StoveUnit:
    """
    Lend one AVAILABLE stove of `model` to a customer.

    Raises:
        NoStockError: no AVAILABLE stove of that model
        OwnerAccessError: customer missing or owned by someone else
    """
    model = _validate_stove_model(model)
    payment_status = require_choice(payment_status, STOVE_PAYMENT_STATUSES, "payment_status")
    customer = require_owned(Customer, customer_id, owner_key)

    with serializer.serialized(
        inventory_key(owner_key, KIND_STOVE, model, STOVE_AVAILABLE),
        inventory_key(owner_key, KIND_STOVE, model, STOVE_LENT),
    ):
        try:
            ids = _select_units_locked(
                StoveUnit,
                (
                    StoveUnit.owner_key == owner_key,
                    StoveUnit.model == model,
                    StoveUnit.status == STOVE_AVAILABLE,
                ),
                1,
            )
            if not ids:
                raise NoStockError(f"No {model} stoves available to lend")

            stove = db.session.get(StoveUnit, ids[0])
            lent_at = now or utcnow()
            stove.status = STOVE_LENT
            stove.borrower_customer_id = customer.id
            stove.borrower_name = customer.name
            stove.borrower_phone = customer.phone
            stove.borrower_address = customer.address
            stove.payment_status = payment_status
            stove.lent_at = lent_at
            stove.updated_at = lent_at
            db.session.commit()
        except InventoryError:
            db.session.rollback()
            raise

    change_feed.publish(change_feed.COLLECTION_STOVES, change_feed.ACTION_UPDATED, owner_key, [stove.id])
    return stove


def _get_stove(owner_key: str, stove_id, *, lock: bool = False) -> StoveUnit:
    try:
        return require_owned(StoveUnit, stove_id, owner_key, lock=lock)
    except OwnerAccessError as e:
        raise UnitNotFoundError(f"Stove {stove_id} not found") from e


def set_stove_payment_status(*, owner_key: str, stove_id: int, payment_status: str) -> StoveUnit:
    """Update the payment status of a LENT stove (e.g. PENDING -> PAID)."""
    payment_status = require_choice(payment_status, STOVE_PAYMENT_STATUSES, "payment_status")
    stove = _get_stove(owner_key, stove_id, lock=True)
    if stove.status != STOVE_LENT:
        db.session.rollback()
        raise ValidationError("Only LENT stoves carry a payment status")

    stove.payment_status = payment_status
    stove.updated_at = utcnow()
    db.session.commit()

    change_feed.publish(change_feed.COLLECTION_STOVES, change_feed.ACTION_UPDATED, owner_key, [stove.id])
    return stove


def return_stove(*, owner_key: str, stove_id: int, now=None) -> LendingRecord:
    """
    Take a LENT stove back.

    Writes the RETURNED LendingRecord and frees the stove in one commit.
    Returns the LendingRecord.
    """
    stove = _get_stove(owner_key, stove_id)

    with serializer.serialized(
        inventory_key(owner_key, KIND_STOVE, stove.model, STOVE_AVAILABLE),
        inventory_key(owner_key, KIND_STOVE, stove.model, STOVE_LENT),
    ):
        stove = _get_stove(owner_key, stove_id, lock=True)
        if stove.status != STOVE_LENT:
            db.session.rollback()
            raise ValidationError(f"Stove {stove_id} is not lent out")

        returned_at = now or utcnow()
        record = LendingRecord(
            owner_key=owner_key,
            stove_id=stove.id,
            stove_model=stove.model,
            borrower_customer_id=stove.borrower_customer_id,
            borrower_name=stove.borrower_name,
            borrower_phone=stove.borrower_phone,
            borrower_address=stove.borrower_address,
            payment_status=stove.payment_status,
            lent_at=stove.lent_at,
            returned_at=returned_at,
            status="RETURNED",
            created_at=returned_at,
        )
        db.session.add(record)

        stove.status = STOVE_AVAILABLE
        stove.borrower_customer_id = None
        stove.borrower_name = None
        stove.borrower_phone = None
        stove.borrower_address = None
        stove.payment_status = None
        stove.lent_at = None
        stove.updated_at = returned_at
        db.session.commit()

    change_feed.publish(change_feed.COLLECTION_STOVES, change_feed.ACTION_UPDATED, owner_key, [stove.id])
    change_feed.publish(change_feed.COLLECTION_LENDING_RECORDS, change_feed.ACTION_CREATED, owner_key, [record.id])
    return record


def list_stoves(*, owner_key: str, status: str | None = None, model: str | None = None) -> list[StoveUnit]:
    q = db.session.query(StoveUnit).filter(StoveUnit.owner_key == owner_key)
    if status is not None:
        q = q.filter(StoveUnit.status == require_choice(status, STOVE_STATUSES, "status"))
    if model is not None:
        q = q.filter(StoveUnit.model == model)
    return q.order_by(StoveUnit.model, StoveUnit.id).all()


def list_lending_records(*, owner_key: str, limit: int = 200, sweep: bool = True) -> list[LendingRecord]:
    """
    Lending history, most recent return first.

    Reading the collection also triggers the lending-record retention sweep.
    """
    if sweep:
        from .retention_service import sweep_on_read
        sweep_on_read(owner_key, bookings=False, lending_records=True)

    return db.session.query(LendingRecord).filter(
        LendingRecord.owner_key == owner_key,
    ).order_by(
        LendingRecord.returned_at.desc(),
        LendingRecord.id.desc(),
    ).limit(limit).all()
