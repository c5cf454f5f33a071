"""
Owner Scope: owner-key extraction and cross-owner rejection.

WHY: Every record belongs to exactly one owner (the opaque owner_key).
Reads and writes are always filtered by the caller's owner_key, and a
record id that belongs to another owner is treated as not found.

SECURITY INVARIANTS:
1. Every request handled by an owner-scoped route has g.owner_key set
2. Ids from client input are resolved with require_owned()
3. Cross-owner attempts are logged, and reported exactly like a missing id

USAGE:
    from gasbook.services.owner_service import require_owned

    booking = require_owned(Booking, booking_id, owner_key)
"""

import logging
import re

from flask import g

from ..extensions import db


logger = logging.getLogger("gasbook.owner")

OWNER_KEY_RE = re.compile(r"^[A-Za-z0-9_.:+@-]{1,64}$")


class OwnerAccessError(Exception):
    """Raised when a record is missing or belongs to another owner."""
    pass


def normalize_owner_key(value) -> str:
    """
    Validate an owner key.

    Raises OwnerAccessError for blank or malformed keys.
    """
    key = "" if value is None else str(value).strip()
    if not OWNER_KEY_RE.match(key):
        raise OwnerAccessError("Owner key missing or malformed")
    return key


def get_current_owner_key() -> str:
    """
    Get current owner_key from Flask g context.

    SECURITY: Raises OwnerAccessError if owner_key not set.
    This should never happen after @require_owner, but is a safety check.
    """
    if not hasattr(g, 'owner_key') or g.owner_key is None:
        raise OwnerAccessError("Owner context not established")
    return g.owner_key


def require_owned(model, record_id, owner_key: str, *, lock: bool = False):
    """
    Load a record by id and check it belongs to owner_key.

    Raises:
        OwnerAccessError if the record doesn't exist or belongs to another owner
    """
    query = db.session.query(model).filter_by(id=record_id)
    if lock:
        query = query.with_for_update()
    record = query.first()

    if record is None:
        raise OwnerAccessError(f"{model.__name__} {record_id} not found")

    if record.owner_key != owner_key:
        logger.warning(
            "Cross-owner access denied: %s %s requested by owner %r",
            model.__name__, record_id, owner_key,
        )
        raise OwnerAccessError(f"{model.__name__} {record_id} not found")  # Don't reveal it exists for another owner

    return record


def scoped_query(model, owner_key: str | None = None):
    """
    Base query for model filtered to one owner.

    Usage:
        customers = scoped_query(Customer, owner_key).order_by(Customer.name).all()
    """
    if owner_key is None:
        owner_key = get_current_owner_key()
    return db.session.query(model).filter(model.owner_key == owner_key)
