# Overview: Flask API routes for booking operations; parses input and returns JSON responses.

"""
Booking Routes

OWNER SCOPE: All routes require X-Owner-Key.

Status mapping:
- 400: ValidationError (dsc code, capacity, type, date, illegal move)
- 404: booking / customer missing or owned by someone else
- 409: locked booking, insufficient stock (decision or cancel)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_owner
from ..services import booking_service
from ..services.booking_service import (
    BookingLockedError,
    BookingNotFoundError,
    InsufficientStockDecision,
)
from ..services.customer_service import CustomerNotFoundError
from ..services.inventory_service import InsufficientStockError
from ..validation import ValidationError, require_int


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")

CREATE_FIELDS = {
    "customer_id", "cylinders", "cylinder_type", "dsc_code", "service_type",
    "delivery_date", "payment_status", "payment_amount", "empty_cylinder_received",
}
UPDATE_FIELDS = {
    "payment_status", "payment_amount", "status", "empty_cylinder_received", "on_insufficient_stock",
}


def _reject_unknown(payload: dict, allowed: set) -> None:
    for k in payload.keys():
        if k not in allowed:
            raise ValidationError(f"Field not allowed: {k}")


@bookings_bp.get("")
@require_owner
def list_bookings_route():
    """
    Query parameters:
    - delivery_status: Booked | InTransit | Delivered | Cancelled
    - payment_status: Pending | Partial | Paid
    - date_from, date_to: inclusive delivery-date window (YYYY-MM-DD)
    - customer_id
    """
    try:
        customer_id = request.args.get("customer_id")
        bookings = booking_service.list_bookings(
            owner_key=g.owner_key,
            delivery_status=request.args.get("delivery_status") or None,
            payment_status=request.args.get("payment_status") or None,
            date_from=request.args.get("date_from") or None,
            date_to=request.args.get("date_to") or None,
            customer_id=require_int(customer_id, "customer_id") if customer_id else None,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "items": [booking_service.serialize_booking(b) for b in bookings],
        "count": len(bookings),
    })


@bookings_bp.post("")
@require_owner
def create_booking_route():
    """
    Request body:
    {
        "customer_id": 1,               // required
        "cylinders": 2,                 // required
        "dsc_code": "1234",             // required, 4 digits
        "delivery_date": "2026-01-05",  // required, today or later
        "service_type": "Drop",         // No | Pickup | Drop | Pickup+Drop
        "cylinder_type": "14.2kg",      // defaults to the customer's type
        "payment_status": "Pending",    // Pending | Partial | Paid
        "payment_amount": "500",        // required for Partial
        "empty_cylinder_received": false
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        _reject_unknown(payload, CREATE_FIELDS)
        for field in ("customer_id", "cylinders", "dsc_code", "delivery_date"):
            if payload.get(field) is None:
                raise ValidationError(f"{field} is required")

        booking = booking_service.create_booking(
            owner_key=g.owner_key,
            customer_id=require_int(payload["customer_id"], "customer_id"),
            cylinders=payload["cylinders"],
            dsc_code=payload["dsc_code"],
            delivery_date=payload["delivery_date"],
            service_type=payload.get("service_type"),
            cylinder_type=payload.get("cylinder_type"),
            payment_status=payload.get("payment_status"),
            payment_amount=payload.get("payment_amount"),
            empty_cylinder_received=payload.get("empty_cylinder_received", False),
        )
        return jsonify({"id": booking.id, "booking": booking_service.serialize_booking(booking)}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>")
@require_owner
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking(owner_key=g.owner_key, booking_id=booking_id)
    except BookingNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(booking_service.serialize_booking(booking))


@bookings_bp.patch("/<int:booking_id>")
@require_owner
def update_booking_route(booking_id: int):
    """
    Request body (all optional):
    {
        "payment_status": "Paid",
        "payment_amount": "500",
        "status": "Delivered",
        "empty_cylinder_received": true,
        "on_insufficient_stock": "cancel" | "proceed"
    }

    A delivery short on FULL stock without on_insufficient_stock returns
    409 with decision_required=true; re-issue with a decision.
    """
    payload = request.get_json(silent=True) or {}

    try:
        _reject_unknown(payload, UPDATE_FIELDS)
        booking = booking_service.update_booking(
            owner_key=g.owner_key,
            booking_id=booking_id,
            payment_status=payload.get("payment_status"),
            payment_amount=payload.get("payment_amount"),
            status=payload.get("status"),
            empty_cylinder_received=payload.get("empty_cylinder_received"),
            on_insufficient_stock=payload.get("on_insufficient_stock"),
        )
        return jsonify(booking_service.serialize_booking(booking))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BookingNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BookingLockedError as e:
        return jsonify({"error": str(e), "locked": True}), 409
    except InsufficientStockDecision as e:
        return jsonify({
            "error": str(e),
            "decision_required": True,
            "available": e.available,
            "required": e.required,
        }), 409
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "available": e.available, "requested": e.requested}), 409
    except Exception:
        current_app.logger.exception("Failed to update booking")
        return jsonify({"error": "Internal server error"}), 500


@bookings_bp.delete("/<int:booking_id>")
@require_owner
def delete_booking_route(booking_id: int):
    """Idempotent: deleting a missing booking reports deleted=false."""
    deleted = booking_service.delete_booking(owner_key=g.owner_key, booking_id=booking_id)
    return jsonify({"deleted": deleted, "id": booking_id})
