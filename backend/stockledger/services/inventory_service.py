# Overview: Transaction store; the append-only log of stock movements.

# backend/stockledger/services/inventory_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..errors import NotFoundError
from ..models import Product, InventoryTransaction, User
from ..validation import enforce_positive_quantity, enforce_transaction_type
from stockledger.time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry
"""
Inventory Ledger Invariants (authoritative)

- Stock is never stored. It is derived from inventory_transactions
  (see stock_service.current_stock).
- quantity > 0 on every row; transaction_type decides the sign:
    in, adjustment -> +quantity
    out            -> -quantity
- The log is append-only. This module exposes no update or delete; a
  mistake is corrected by appending an adjustment with an explanatory note.
- Validation happens before any write; a rejected append leaves no row.
- Errors propagate to the caller. Nothing here hides a failed write.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionView:
    """A transaction joined with product and actor display names."""
    id: int
    product_id: int
    sku: str | None
    product_name: str | None
    transaction_type: str
    quantity: int
    user_id: int | None
    user_name: str | None
    notes: str | None
    sale_id: int | None
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def append_transaction(
    product_id: int,
    transaction_type: str,
    quantity: int,
    actor_id: int | None,
    notes: str | None = None,
) -> InventoryTransaction:
    """
    Append one stock movement and commit it.

    Raises ValidationError for a non-positive quantity or an unknown type,
    NotFoundError for an unknown product. Transient database failures are
    retried; anything else propagates.
    """
    transaction_type = enforce_transaction_type(transaction_type)
    quantity = enforce_positive_quantity(quantity)

    def _op():
        get_product(product_id)

        tx = InventoryTransaction(
            product_id=product_id,
            transaction_type=transaction_type,
            quantity=quantity,
            user_id=actor_id,
            notes=notes,
            created_at=utcnow(),
        )
        db.session.add(tx)
        db.session.commit()
        return tx

    tx = run_with_retry(_op)
    logger.info(
        "Inventory %s of %d for product %d by user %s (tx %d)",
        transaction_type, quantity, product_id, actor_id, tx.id,
    )
    return tx


def get_transaction(transaction_id: int) -> TransactionView:
    rows = _view_query().filter(InventoryTransaction.id == transaction_id).all()
    if not rows:
        raise NotFoundError("Transaction not found")
    return _to_view(rows[0])


def list_by_product(product_id: int, limit: int | None = None) -> list[InventoryTransaction]:
    """History for one product, newest first."""
    get_product(product_id)

    q = InventoryTransaction.query.filter_by(product_id=product_id).order_by(
        InventoryTransaction.created_at.desc(),
        InventoryTransaction.id.desc(),
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def list_recent(limit: int = 10) -> list[TransactionView]:
    """Latest movements across all products, with display names."""
    return [_to_view(row) for row in _view_query().limit(limit).all()]


def list_all(limit: int = 200) -> list[TransactionView]:
    return list_recent(limit=limit)


def _view_query():
    # Outer joins: a removed actor must not hide the movement
    return db.session.query(
        InventoryTransaction,
        Product.sku,
        Product.name,
        User.first_name,
        User.last_name,
    ).outerjoin(
        Product, InventoryTransaction.product_id == Product.id
    ).outerjoin(
        User, InventoryTransaction.user_id == User.id
    ).order_by(
        InventoryTransaction.created_at.desc(),
        InventoryTransaction.id.desc(),
    )


def _to_view(row) -> TransactionView:
    tx, sku, product_name, first_name, last_name = row
    user_name = f"{first_name} {last_name}" if first_name is not None else None
    return TransactionView(
        id=tx.id,
        product_id=tx.product_id,
        sku=sku,
        product_name=product_name,
        transaction_type=tx.transaction_type,
        quantity=tx.quantity,
        user_id=tx.user_id,
        user_name=user_name,
        notes=tx.notes,
        sale_id=tx.sale_id,
        created_at=tx.created_at,
    )
