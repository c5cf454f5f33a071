# Overview: Service-layer operations for the per-customer payment history ledger.

"""
Payment History Ledger

Each Customer carries payment_history: a JSON list of transaction dicts,
newest first, never longer than PAYMENT_HISTORY_LIMIT.

Transaction shape:
    {
        "date": "2026-01-05T10:00:00Z",
        "amount": "2450",            # or the legacy placeholder "FULL"
        "bookingId": 17,
        "status": "Completed",       # combined_status(paymentStatus, deliveryStatus)
        "paymentStatus": "Paid",
        "deliveryStatus": "Delivered",
        "timestamp": 1767607200000,  # epoch ms, sort key
    }

The list functions below are pure: they take a list and return a new list.
The DB functions load the customer, apply one of them, and replace the
JSON column wholesale (in-place mutation of a JSON column is not tracked
by SQLAlchemy).

SELF-HEAL: older clients wrote "FULL" instead of the amount of a Paid
transaction. Whenever a booking is processed, its own placeholder entries
are rewritten with the concrete amount. Placeholders of other bookings are
left alone until their booking is processed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Customer
from ..money import format_amount
from ..time_utils import to_epoch_ms, to_utc_z, utcnow
from .booking_rules import PAYMENT_PAID, combined_status
from .owner_service import require_owned


logger = logging.getLogger("gasbook.ledger")

PLACEHOLDER_AMOUNT = "FULL"
DEFAULT_HISTORY_LIMIT = 30


def _history_limit() -> int:
    return int(current_app.config.get("PAYMENT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT))


def _is_placeholder(amount) -> bool:
    return amount in (None, "", PLACEHOLDER_AMOUNT)


# =============================================================================
# PURE LIST FUNCTIONS
# =============================================================================

def build_transaction(
    *,
    booking_id: int,
    payment_status: str,
    delivery_status: str,
    amount,
    date: datetime,
) -> dict:
    return {
        "date": to_utc_z(date),
        "amount": format_amount(amount),
        "bookingId": booking_id,
        "status": combined_status(payment_status, delivery_status),
        "paymentStatus": payment_status,
        "deliveryStatus": delivery_status,
        "timestamp": to_epoch_ms(date),
    }


def repair_placeholder_amounts(history: list[dict], booking_id: int, amount) -> list[dict]:
    """
    Rewrite placeholder amounts on Paid entries of one booking.

    Entries of other bookings are returned unchanged.
    """
    concrete = format_amount(amount)
    repaired = []
    for entry in history:
        if (
            entry.get("bookingId") == booking_id
            and entry.get("paymentStatus") == PAYMENT_PAID
            and _is_placeholder(entry.get("amount"))
        ):
            entry = {**entry, "amount": concrete}
        repaired.append(entry)
    return repaired


def record_transaction(history: list[dict], transaction: dict, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[dict]:
    """
    Prepend a transaction, re-sort newest first, and truncate to `limit`.

    The sort is stable, so entries with equal timestamps keep the new one first.
    """
    entries = [transaction] + [dict(e) for e in (history or [])]
    if transaction["paymentStatus"] == PAYMENT_PAID:
        entries = repair_placeholder_amounts(entries, transaction["bookingId"], transaction["amount"])
    entries.sort(key=lambda e: e.get("timestamp") or 0, reverse=True)
    return entries[:limit]


def revise_transaction(
    history: list[dict],
    booking_id: int,
    *,
    delivery_status: str,
    amount=None,
) -> tuple[list[dict], bool]:
    """
    Rewrite the newest entry of one booking in place (no reordering).

    Updates deliveryStatus and the combined status. The amount is only
    replaced on a Paid entry that still carries the placeholder.
    Returns (new_history, revised).
    """
    entries = [dict(e) for e in (history or [])]
    for i, entry in enumerate(entries):
        if entry.get("bookingId") != booking_id:
            continue
        revised = {
            **entry,
            "deliveryStatus": delivery_status,
            "status": combined_status(entry.get("paymentStatus"), delivery_status),
        }
        if amount is not None and entry.get("paymentStatus") == PAYMENT_PAID and _is_placeholder(entry.get("amount")):
            revised["amount"] = format_amount(amount)
        entries[i] = revised
        return entries, True
    return entries, False


# =============================================================================
# DB OPERATIONS
# =============================================================================

def record_customer_transaction(
    *,
    owner_key: str,
    customer_id: int,
    booking_id: int,
    payment_status: str,
    delivery_status: str,
    amount: Decimal,
    date: datetime | None = None,
) -> dict:
    """
    Append a transaction to the customer's ledger and refresh the payment
    snapshot (status + last payment date). Commits.

    Returns the transaction dict that was recorded.
    """
    date = date or utcnow()
    customer = require_owned(Customer, customer_id, owner_key)
    transaction = build_transaction(
        booking_id=booking_id,
        payment_status=payment_status,
        delivery_status=delivery_status,
        amount=amount,
        date=date,
    )
    customer.payment_history = record_transaction(
        customer.payment_history or [], transaction, limit=_history_limit(),
    )
    customer.payment_status = payment_status
    customer.last_payment_date = date
    db.session.commit()
    return transaction


def revise_customer_transaction(
    *,
    owner_key: str,
    customer_id: int,
    booking_id: int,
    delivery_status: str,
    amount: Decimal | None = None,
) -> bool:
    """
    Revise the booking's ledger entry after a delivery status change. Commits.

    Returns False (and writes nothing) when the booking has no entry.
    """
    customer = require_owned(Customer, customer_id, owner_key)
    history, revised = revise_transaction(
        customer.payment_history or [],
        booking_id,
        delivery_status=delivery_status,
        amount=amount,
    )
    if not revised:
        logger.info("No ledger entry for booking %s on customer %s; nothing revised", booking_id, customer_id)
        return False

    customer.payment_history = history
    db.session.commit()
    return True


def get_payment_history(*, owner_key: str, customer_id: int) -> list[dict]:
    customer = require_owned(Customer, customer_id, owner_key)
    return list(customer.payment_history or [])
