# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

"""
Customer Routes

OWNER SCOPE: All routes require X-Owner-Key. Customers of other owners
are reported as 404.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_owner
from ..services import customer_service, payment_history_service
from ..services.customer_service import CustomerNotFoundError
from ..services.owner_service import OwnerAccessError
from ..validation import ConflictError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


@customers_bp.get("")
@require_owner
def list_customers_route():
    """
    Query parameters:
    - category: Domestic | Commercial
    - subsidy: true | false
    - q: search on name, phone, book_id
    """
    try:
        customers = customer_service.list_customers(
            owner_key=g.owner_key,
            category=request.args.get("category") or None,
            subsidy=_parse_bool_arg("subsidy"),
            q=request.args.get("q") or None,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.post("")
@require_owner
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        customer = customer_service.register_customer(owner_key=g.owner_key, payload=payload)
        return jsonify(customer.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_owner
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(owner_key=g.owner_key, customer_id=customer_id)
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(customer.to_dict())


@customers_bp.patch("/<int:customer_id>")
@require_owner
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        customer = customer_service.update_customer(
            owner_key=g.owner_key,
            customer_id=customer_id,
            payload=payload,
        )
        return jsonify(customer.to_dict())
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_owner
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(owner_key=g.owner_key, customer_id=customer_id)
        return jsonify({"deleted": True, "id": customer_id})
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/payment-history")
@require_owner
def payment_history_route(customer_id: int):
    """Ledger as stored: newest first."""
    try:
        history = payment_history_service.get_payment_history(owner_key=g.owner_key, customer_id=customer_id)
    except OwnerAccessError:
        return jsonify({"error": f"Customer {customer_id} not found"}), 404
    return jsonify({"customer_id": customer_id, "items": history, "count": len(history)})
