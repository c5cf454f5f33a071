# Overview: Service-layer operations for retention; deletes expired bookings and lending records.

"""
Retention Sweeper

Two rules:
- Booking: Paid AND Delivered, updated_at at least BOOKING_RETENTION_HOURS ago
- LendingRecord: RETURNED, returned_at at least LENDING_RETENTION_DAYS ago

Triggers:
- every read of the bookings / lending-record collections (sweep_on_read)
- the APScheduler timers (scheduler.py)
- `flask maintenance sweep-retention` and POST /api/maintenance/retention-sweep

Each delete is conditional (id AND the expiry predicate), so two sweeps
racing over the same rows delete each row once and the loser counts zero.
Customers and their payment history are never touched.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Booking, LendingRecord
from ..time_utils import utcnow
from . import change_feed
from .booking_rules import DELIVERY_DELIVERED, PAYMENT_PAID


logger = logging.getLogger("gasbook.retention")

LENDING_RETURNED = "RETURNED"


def _expired_booking_filters(cutoff: datetime) -> tuple:
    return (
        Booking.payment_status == PAYMENT_PAID,
        Booking.status == DELIVERY_DELIVERED,
        Booking.updated_at <= cutoff,
    )


def _expired_lending_filters(cutoff: datetime) -> tuple:
    return (
        LendingRecord.status == LENDING_RETURNED,
        LendingRecord.returned_at <= cutoff,
    )


def _delete_conditionally(model, filters: tuple, owner_key: str | None, collection: str) -> int:
    """
    Find candidates, then delete each one again guarded by the predicate.

    Publishes one `deleted` event per owner for the ids actually removed.
    """
    q = db.session.query(model.id, model.owner_key).filter(*filters)
    if owner_key is not None:
        q = q.filter(model.owner_key == owner_key)
    candidates = q.all()
    if not candidates:
        return 0

    deleted_by_owner: dict[str, list[int]] = defaultdict(list)
    for record_id, record_owner in candidates:
        rows = db.session.query(model).filter(model.id == record_id, *filters).delete(synchronize_session=False)
        if rows:
            deleted_by_owner[record_owner].append(record_id)
    db.session.commit()

    for record_owner, ids in deleted_by_owner.items():
        change_feed.publish(collection, change_feed.ACTION_DELETED, record_owner, ids)

    return sum(len(ids) for ids in deleted_by_owner.values())


def sweep_expired_bookings(owner_key: str | None = None, now: datetime | None = None) -> int:
    """Delete Paid + Delivered bookings past retention. Returns rows deleted."""
    now = now or utcnow()
    cutoff = now - timedelta(hours=current_app.config["BOOKING_RETENTION_HOURS"])
    deleted = _delete_conditionally(
        Booking, _expired_booking_filters(cutoff), owner_key, change_feed.COLLECTION_BOOKINGS,
    )
    if deleted:
        logger.info("Retention sweep deleted %s booking(s) (owner=%r)", deleted, owner_key)
    return deleted


def sweep_expired_lending_records(owner_key: str | None = None, now: datetime | None = None) -> int:
    """Delete RETURNED lending records past retention. Returns rows deleted."""
    now = now or utcnow()
    cutoff = now - timedelta(days=current_app.config["LENDING_RETENTION_DAYS"])
    deleted = _delete_conditionally(
        LendingRecord, _expired_lending_filters(cutoff), owner_key, change_feed.COLLECTION_LENDING_RECORDS,
    )
    if deleted:
        logger.info("Retention sweep deleted %s lending record(s) (owner=%r)", deleted, owner_key)
    return deleted


def run_retention_sweep(owner_key: str | None = None, now: datetime | None = None) -> dict:
    """
    Run both rules.

    owner_key=None sweeps every owner (timer mode).
    """
    now = now or utcnow()
    return {
        "bookings_deleted": sweep_expired_bookings(owner_key, now),
        "lending_records_deleted": sweep_expired_lending_records(owner_key, now),
    }


def sweep_on_read(owner_key: str, *, bookings: bool, lending_records: bool, now: datetime | None = None) -> None:
    """
    Opportunistic sweep before a collection read.

    Failures are logged and swallowed; the read goes ahead either way.
    """
    try:
        if bookings:
            sweep_expired_bookings(owner_key, now)
        if lending_records:
            sweep_expired_lending_records(owner_key, now)
    except Exception:
        db.session.rollback()
        logger.exception("On-read retention sweep failed (owner=%r)", owner_key)
