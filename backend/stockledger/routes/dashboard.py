from flask import Blueprint, jsonify, current_app

from stockledger.decorators import require_auth
from stockledger.services import inventory_service, reporting_service, stock_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
def dashboard_stats():
    try:
        return jsonify({
            "overview": reporting_service.dashboard_overview(),
            "inventory_value": reporting_service.inventory_value(),
            "recent_activity": [row.to_dict() for row in inventory_service.list_recent(limit=10)],
            "low_stock_products": [level.to_dict() for level in stock_service.low_stock_products()],
            "top_products": reporting_service.most_active_products(limit=5),
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load dashboard stats")
        return jsonify({"error": "Internal server error"}), 500
