# backend/stockledger/routes/pos.py
"""
Point-of-sale routes: product browser, checkout and sales history.

SECURITY: All routes require authentication. Any role may sell; the
authenticated user is recorded as the cashier.

Checkout body:
    {
      "items": [{product_id, product_name, unit_of_measure,
                 unit_price_cents, quantity}, ...],
      "total_amount_cents": int,
      "payment_method": "cash" | "card" | "mobile",
      "cash_tendered_cents": int (cash only),
      "change_amount_cents": int (optional, cash only),
      "idempotency_key": str (optional)
    }
"""
from flask import Blueprint, request, g

from ..decorators import require_auth
from ..errors import CommitFailed, NotFoundError, ValidationError
from ..services import sales_service, stock_service


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.get("/products")
@require_auth
def list_products_route():
    search = request.args.get("search")
    return {"products": stock_service.products_with_stock(search=search)}


@pos_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    rows = stock_service.products_with_stock(product_id=product_id)
    if not rows:
        return {"error": "Product not found"}, 404
    return {"product": rows[0]}


@pos_bp.post("/sales")
@require_auth
def create_sale_route():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    items = payload.get("items")
    if not isinstance(items, list):
        return {"error": "items must be a list"}, 400

    try:
        sale = sales_service.commit_sale(
            cashier_id=g.current_user.id,
            items=items,
            total_amount_cents=payload.get("total_amount_cents"),
            cash_tendered_cents=payload.get("cash_tendered_cents"),
            change_amount_cents=payload.get("change_amount_cents"),
            payment_method=payload.get("payment_method") or "cash",
            idempotency_key=payload.get("idempotency_key"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except CommitFailed:
        # Already logged with traceback by the service
        return {"error": "Failed to record sale"}, 500

    return {"sale": sales_service.sale_to_dict(sale)}, 201


@pos_bp.get("/sales")
@require_auth
def list_sales_route():
    limit = request.args.get("limit", default=100, type=int)
    sales = sales_service.list_sales(
        date_from=request.args.get("from"),
        date_to=request.args.get("to"),
        limit=max(1, min(limit, 500)),
    )
    return {"sales": sales}


@pos_bp.get("/sales/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    return {"sale": sales_service.get_sale(sale_id)}
