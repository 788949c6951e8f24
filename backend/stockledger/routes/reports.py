from flask import Blueprint, jsonify, request

from stockledger.decorators import require_auth, require_role
from stockledger.errors import ValidationError
from stockledger.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
@require_auth
@require_role("admin", "manager")
def summary_report():
    try:
        report = reporting_service.sales_summary(
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/sales")
@require_auth
@require_role("admin", "manager")
def sales_report():
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)

    try:
        report = reporting_service.paginated_sales(
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
            page=page,
            limit=limit,
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/sales/<int:sale_id>/items")
@require_auth
@require_role("admin", "manager")
def sale_items_report(sale_id: int):
    return jsonify({"sale_id": sale_id, "items": reporting_service.sale_items(sale_id)}), 200
