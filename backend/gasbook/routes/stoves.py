# backend/gasbook/routes/stoves.py
"""
Stove inventory and lending routes.

OWNER SCOPE: All routes require X-Owner-Key.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_owner
from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError, NoStockError, UnitNotFoundError
from ..services.owner_service import OwnerAccessError
from ..validation import ValidationError, require_int


stoves_bp = Blueprint("stoves", __name__, url_prefix="/api/stoves")


@stoves_bp.get("")
@require_owner
def list_stoves_route():
    """Query parameters: status (AVAILABLE | LENT), model"""
    try:
        stoves = inventory_service.list_stoves(
            owner_key=g.owner_key,
            status=request.args.get("status") or None,
            model=request.args.get("model") or None,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [s.to_dict() for s in stoves], "count": len(stoves)}


@stoves_bp.post("/add")
@require_owner
def add_stoves_route():
    payload = request.get_json(silent=True) or {}
    try:
        ids = inventory_service.add_stoves(
            owner_key=g.owner_key,
            model=payload.get("model"),
            quantity=payload.get("quantity"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to add stoves")
        return {"error": "Internal server error"}, 500
    return {"added": len(ids), "unit_ids": ids}, 201


@stoves_bp.post("/remove")
@require_owner
def remove_stoves_route():
    payload = request.get_json(silent=True) or {}
    try:
        ids = inventory_service.remove_stoves(
            owner_key=g.owner_key,
            model=payload.get("model"),
            quantity=payload.get("quantity"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except InsufficientStockError as e:
        return {"error": str(e), "available": e.available, "requested": e.requested}, 409
    except Exception:
        current_app.logger.exception("Failed to remove stoves")
        return {"error": "Internal server error"}, 500
    return {"removed": len(ids)}


@stoves_bp.post("/lend")
@require_owner
def lend_stove_route():
    """Body: {"model": "2-burner", "customer_id": 1, "payment_status": "PENDING"}"""
    payload = request.get_json(silent=True) or {}
    try:
        if payload.get("customer_id") is None:
            raise ValidationError("customer_id is required")
        stove = inventory_service.lend_stove(
            owner_key=g.owner_key,
            model=payload.get("model"),
            customer_id=require_int(payload["customer_id"], "customer_id"),
            payment_status=payload.get("payment_status", inventory_service.STOVE_PAYMENT_PENDING),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except OwnerAccessError:
        return {"error": f"Customer {payload.get('customer_id')} not found"}, 404
    except NoStockError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to lend stove")
        return {"error": "Internal server error"}, 500
    return stove.to_dict(), 201


@stoves_bp.post("/<int:stove_id>/return")
@require_owner
def return_stove_route(stove_id: int):
    try:
        record = inventory_service.return_stove(owner_key=g.owner_key, stove_id=stove_id)
    except UnitNotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to return stove")
        return {"error": "Internal server error"}, 500
    return {"lending_record_id": record.id, "lending_record": record.to_dict()}, 201


@stoves_bp.patch("/<int:stove_id>/payment")
@require_owner
def stove_payment_route(stove_id: int):
    """Body: {"payment_status": "PAID"}"""
    payload = request.get_json(silent=True) or {}
    try:
        stove = inventory_service.set_stove_payment_status(
            owner_key=g.owner_key,
            stove_id=stove_id,
            payment_status=payload.get("payment_status"),
        )
    except UnitNotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update stove payment")
        return {"error": "Internal server error"}, 500
    return stove.to_dict()


@stoves_bp.get("/lending-records")
@require_owner
def lending_records_route():
    """Newest return first. Records past retention are swept before reading."""
    limit = request.args.get("limit", 200, type=int)
    limit = max(1, min(limit, 500))
    records = inventory_service.list_lending_records(owner_key=g.owner_key, limit=limit)
    return {"items": [r.to_dict() for r in records], "count": len(records)}
