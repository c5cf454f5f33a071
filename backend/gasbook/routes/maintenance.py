# backend/gasbook/routes/maintenance.py
"""
Maintenance routes.

The retention sweep also runs on every bookings / lending-records read and
on the background timers; this endpoint runs it on demand for the caller's
owner scope only.
"""
from flask import Blueprint, g, current_app

from ..decorators import require_owner
from ..services import retention_service


maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api/maintenance")


@maintenance_bp.post("/retention-sweep")
@require_owner
def retention_sweep_route():
    try:
        result = retention_service.run_retention_sweep(owner_key=g.owner_key)
    except Exception:
        current_app.logger.exception("Retention sweep failed")
        return {"error": "Internal server error"}, 500
    return result
