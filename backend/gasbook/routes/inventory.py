# backend/gasbook/routes/inventory.py
"""
Cylinder inventory routes.

OWNER SCOPE: All routes require X-Owner-Key.

Removal and transition are all-or-nothing: asking for more units than exist
returns 409 with the available count and leaves stock unchanged.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_owner
from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/cylinders")
@require_owner
def cylinder_counts_route():
    return inventory_service.get_inventory_counts(owner_key=g.owner_key)


@inventory_bp.post("/cylinders/add")
@require_owner
def add_cylinders_route():
    """Body: {"cylinder_type": "14.2kg", "status": "FULL", "quantity": 10}"""
    payload = request.get_json(silent=True) or {}

    try:
        ids = inventory_service.add_cylinders(
            owner_key=g.owner_key,
            cylinder_type=payload.get("cylinder_type"),
            status=payload.get("status", inventory_service.CYLINDER_FULL),
            quantity=payload.get("quantity"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to add cylinders")
        return {"error": "Internal server error"}, 500

    return {"added": len(ids), "unit_ids": ids}, 201


@inventory_bp.post("/cylinders/remove")
@require_owner
def remove_cylinders_route():
    """Body: {"cylinder_type": "19kg", "status": "FULL", "quantity": 5}"""
    payload = request.get_json(silent=True) or {}

    try:
        ids = inventory_service.remove_cylinders(
            owner_key=g.owner_key,
            cylinder_type=payload.get("cylinder_type"),
            status=payload.get("status", inventory_service.CYLINDER_FULL),
            quantity=payload.get("quantity"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InsufficientStockError as e:
        return {"error": str(e), "available": e.available, "requested": e.requested}, 409
    except Exception:
        current_app.logger.exception("Failed to remove cylinders")
        return {"error": "Internal server error"}, 500

    return {"removed": len(ids)}


@inventory_bp.post("/cylinders/transition")
@require_owner
def transition_cylinders_route():
    """Body: {"cylinder_type": "5kg", "from_status": "EMPTY", "to_status": "FULL", "quantity": 3}"""
    payload = request.get_json(silent=True) or {}

    try:
        ids = inventory_service.transition_cylinders(
            owner_key=g.owner_key,
            cylinder_type=payload.get("cylinder_type"),
            from_status=payload.get("from_status"),
            to_status=payload.get("to_status"),
            quantity=payload.get("quantity"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InsufficientStockError as e:
        return {"error": str(e), "available": e.available, "requested": e.requested}, 409
    except Exception:
        current_app.logger.exception("Failed to transition cylinders")
        return {"error": "Internal server error"}, 500

    return {"transitioned": len(ids)}
