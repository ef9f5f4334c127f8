# Overview: Flask API route for the dashboard snapshot.

from flask import Blueprint, current_app, jsonify

from ..services.dashboard_service import dashboard_snapshot
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """Today's and this month's sales, stock alerts, recent sales and best sellers."""
    try:
        return jsonify(dashboard_snapshot()), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500
