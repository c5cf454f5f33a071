# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Service

OWNER SCOPE: customers are partitioned by owner_key.
- phone is unique per owner
- book_id is unique per owner among Domestic customers only
  (Commercial customers may share or omit it)

REGISTRATION: cylinders / cylinder_type cap every booking for the customer.
Editing the registration never touches existing bookings.
"""

import logging

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Booking, Customer
from ..models.customers import CATEGORY_DOMESTIC
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_customer,
    validate_payload,
)
from . import change_feed
from .owner_service import OwnerAccessError, require_owned, scoped_query


logger = logging.getLogger("gasbook.customers")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "phone", "book_id", "category", "subsidy",
        "address", "cylinders", "cylinder_type",
    },
    required_on_create={"name", "phone"},
)


class CustomerNotFoundError(Exception):
    """Raised when a customer is missing or belongs to another owner."""
    pass


def get_customer(*, owner_key: str, customer_id: int) -> Customer:
    try:
        return require_owned(Customer, customer_id, owner_key)
    except OwnerAccessError as e:
        raise CustomerNotFoundError(f"Customer {customer_id} not found") from e


def _check_unique(owner_key: str, *, phone, book_id, category, exclude_id=None) -> None:
    q = db.session.query(Customer.id).filter(Customer.owner_key == owner_key, Customer.phone == phone)
    if exclude_id is not None:
        q = q.filter(Customer.id != exclude_id)
    if q.first():
        raise ConflictError(f"A customer with phone {phone} already exists")

    if book_id and category == CATEGORY_DOMESTIC:
        q = db.session.query(Customer.id).filter(
            Customer.owner_key == owner_key,
            Customer.category == CATEGORY_DOMESTIC,
            Customer.book_id == book_id,
        )
        if exclude_id is not None:
            q = q.filter(Customer.id != exclude_id)
        if q.first():
            raise ConflictError(f"A domestic customer with book_id {book_id} already exists")


def register_customer(*, owner_key: str, payload: dict) -> Customer:
    """
    Register a customer from a JSON payload.

    Raises:
        ValidationError: malformed fields
        ConflictError: duplicate phone, or duplicate domestic book_id
    """
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch, cylinder_types=current_app.config["CYLINDER_TYPES"])

    customer = Customer(owner_key=owner_key, payment_history=[], **patch)
    customer.category = customer.category or CATEGORY_DOMESTIC
    customer.cylinders = customer.cylinders or 1
    customer.cylinder_type = customer.cylinder_type or current_app.config["CYLINDER_TYPES"][0]
    if customer.subsidy is None:
        customer.subsidy = False

    _check_unique(owner_key, phone=customer.phone, book_id=customer.book_id, category=customer.category)

    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(f"A customer with phone {customer.phone} already exists") from e

    change_feed.publish(change_feed.COLLECTION_CUSTOMERS, change_feed.ACTION_CREATED, owner_key, [customer.id])
    return customer


def update_customer(*, owner_key: str, customer_id: int, payload: dict) -> Customer:
    """Partial edit. Uniqueness is re-checked against the merged record."""
    customer = get_customer(owner_key=owner_key, customer_id=customer_id)

    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch, cylinder_types=current_app.config["CYLINDER_TYPES"])

    _check_unique(
        owner_key,
        phone=patch.get("phone", customer.phone),
        book_id=patch.get("book_id", customer.book_id),
        category=patch.get("category", customer.category),
        exclude_id=customer.id,
    )

    for k, v in patch.items():
        setattr(customer, k, v)
    customer.updated_at = utcnow()

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError("Customer conflicts with an existing record") from e

    change_feed.publish(change_feed.COLLECTION_CUSTOMERS, change_feed.ACTION_UPDATED, owner_key, [customer.id])
    return customer


def list_customers(
    *,
    owner_key: str,
    category: str | None = None,
    subsidy: bool | None = None,
    q: str | None = None,
) -> list[Customer]:
    query = scoped_query(Customer, owner_key)
    if category:
        query = query.filter(Customer.category == category)
    if subsidy is not None:
        query = query.filter(Customer.subsidy.is_(subsidy))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(like),
            Customer.phone.ilike(like),
            Customer.book_id.ilike(like),
        ))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def delete_customer(*, owner_key: str, customer_id: int) -> None:
    """
    Delete a customer with no remaining bookings.

    Raises:
        ConflictError: bookings still reference the customer
    """
    customer = get_customer(owner_key=owner_key, customer_id=customer_id)

    remaining = db.session.query(Booking.id).filter(
        Booking.owner_key == owner_key,
        Booking.customer_id == customer.id,
    ).count()
    if remaining:
        raise ConflictError(f"Customer has {remaining} booking(s); delete them first")

    db.session.delete(customer)
    db.session.commit()
    logger.info("Deleted customer %s for owner %r", customer_id, owner_key)

    change_feed.publish(change_feed.COLLECTION_CUSTOMERS, change_feed.ACTION_DELETED, owner_key, [customer_id])
