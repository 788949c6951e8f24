# backend/stockledger/routes/inventory.py
"""
Inventory ledger routes.

SECURITY: All routes require authentication.
- Any authenticated user may read history and stock levels
- Appending a movement requires role admin, manager or staff

The log is append-only: there is no PUT, PATCH or DELETE here. A wrong
entry is corrected by POSTing an adjustment with an explanatory note.
"""
from flask import Blueprint, request, g

from ..models import InventoryTransaction
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_inventory_transaction,
)
from ..decorators import require_auth, require_role
from ..services import inventory_service, stock_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "transaction_type", "quantity", "notes"},
    required_on_create={"product_id", "transaction_type", "quantity"},
)


@inventory_bp.post("/transactions")
@require_auth
@require_role("admin", "manager", "staff")
def create_transaction_route():
    """
    Append one stock movement.

    Body: {product_id, transaction_type: in|out|adjustment, quantity > 0, notes?}
    The actor is the authenticated user.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryTransaction,
            payload=payload,
            policy=INVENTORY_TRANSACTION_POLICY,
            partial=False,
        )
        enforce_rules_inventory_transaction(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    created_tx = inventory_service.append_transaction(
        product_id=patch["product_id"],
        transaction_type=patch["transaction_type"],
        quantity=patch["quantity"],
        actor_id=g.current_user.id,
        notes=patch.get("notes") or None,
    )

    return {
        "transaction": inventory_service.get_transaction(created_tx.id).to_dict(),
        "current_stock": stock_service.current_stock(patch["product_id"]),
    }, 201


@inventory_bp.get("/transactions")
@require_auth
def list_transactions_route():
    limit = request.args.get("limit", default=200, type=int)
    rows = inventory_service.list_all(limit=max(1, min(limit, 1000)))
    return {"transactions": [row.to_dict() for row in rows]}


@inventory_bp.get("/transactions/recent")
@require_auth
def recent_transactions_route():
    limit = request.args.get("limit", default=10, type=int)
    rows = inventory_service.list_recent(limit=max(1, min(limit, 100)))
    return {"transactions": [row.to_dict() for row in rows]}


@inventory_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    return {"transaction": inventory_service.get_transaction(transaction_id).to_dict()}


@inventory_bp.get("/products/<int:product_id>/transactions")
@require_auth
def product_transactions_route(product_id: int):
    limit = request.args.get("limit", type=int)
    rows = inventory_service.list_by_product(product_id, limit=limit)
    return {
        "product_id": product_id,
        "transactions": [row.to_dict() for row in rows],
    }


@inventory_bp.get("/products/<int:product_id>/stock")
@require_auth
def product_stock_route(product_id: int):
    return stock_service.product_stock(product_id).to_dict()


@inventory_bp.get("/stock")
@require_auth
def stock_levels_route():
    return {"products": [level.to_dict() for level in stock_service.all_stock_levels()]}


@inventory_bp.get("/stock/low")
@require_auth
def low_stock_route():
    levels = stock_service.low_stock_products()
    return {
        "count": len(levels),
        "products": [level.to_dict() for level in levels],
    }
