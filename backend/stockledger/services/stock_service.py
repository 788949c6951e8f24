# Overview: Stock calculator; derives stock levels and reorder status from the transaction log.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import case, func, or_

from ..extensions import db
from ..errors import NotFoundError
from ..models import Product, Category, InventoryTransaction
from .inventory_service import get_product
"""
Stock Calculator Invariants (authoritative)

- stock(p) = SUM(quantity) for in/adjustment - SUM(quantity) for out,
  over every transaction of p; 0 when p has none.
- is_low_stock    := stock <= reorder_level   (inclusive boundary)
  is_out_of_stock := stock <= 0
- Negative stock is a valid result (two tills sold the last unit) and is
  reported as-is; it sorts first in the low-stock list.
- Every call re-queries. Nothing is cached between calls.
"""


def signed_quantity():
    """SQL expression: the signed effect of one transaction row on stock."""
    return case(
        (InventoryTransaction.transaction_type.in_(("in", "adjustment")), InventoryTransaction.quantity),
        (InventoryTransaction.transaction_type == "out", -InventoryTransaction.quantity),
        else_=0,
    )


def _stock_sum():
    return func.coalesce(func.sum(signed_quantity()), 0)


def is_low_stock(current_stock: int, reorder_level: int) -> bool:
    return current_stock <= reorder_level


def is_out_of_stock(current_stock: int) -> bool:
    return current_stock <= 0


@dataclass(frozen=True)
class StockLevel:
    product_id: int
    sku: str
    name: str
    current_stock: int
    reorder_level: int

    @property
    def is_low_stock(self) -> bool:
        return is_low_stock(self.current_stock, self.reorder_level)

    @property
    def is_out_of_stock(self) -> bool:
        return is_out_of_stock(self.current_stock)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "is_out_of_stock": self.is_out_of_stock,
        }


def current_stock(product_id: int) -> int:
    """
    Current stock of one product as the signed sum over its history.

    A product without transactions has stock 0; an unknown product raises
    NotFoundError.
    """
    get_product(product_id)

    q = db.session.query(_stock_sum()).filter(
        InventoryTransaction.product_id == product_id,
    )
    return int(q.scalar() or 0)


def _levels_query():
    stock = _stock_sum()
    q = db.session.query(
        Product.id.label("product_id"),
        Product.sku.label("sku"),
        Product.name.label("name"),
        Product.reorder_level.label("reorder_level"),
        stock.label("current_stock"),
    ).outerjoin(
        InventoryTransaction, InventoryTransaction.product_id == Product.id
    ).group_by(
        Product.id, Product.sku, Product.name, Product.reorder_level
    )
    return q, stock


def _to_level(row) -> StockLevel:
    return StockLevel(
        product_id=row.product_id,
        sku=row.sku,
        name=row.name,
        current_stock=int(row.current_stock or 0),
        reorder_level=int(row.reorder_level),
    )


def product_stock(product_id: int) -> StockLevel:
    q, _ = _levels_query()
    row = q.filter(Product.id == product_id).first()
    if row is None:
        raise NotFoundError("Product not found")
    return _to_level(row)


def all_stock_levels() -> list[StockLevel]:
    """One row per product, computed in a single grouped query."""
    q, _ = _levels_query()
    rows = q.order_by(Product.name.asc(), Product.id.asc()).all()
    return [_to_level(row) for row in rows]


def low_stock_products() -> list[StockLevel]:
    """Products at or below their reorder level, most urgent first."""
    q, stock = _levels_query()
    rows = q.having(stock <= Product.reorder_level).order_by(
        stock.asc(),
        Product.name.asc(),
    ).all()
    return [_to_level(row) for row in rows]


def products_with_stock(search: str | None = None, product_id: int | None = None) -> list[dict]:
    """
    Catalog rows with derived stock for the POS product browser.

    search matches name or SKU, case-insensitively.
    """
    stock = _stock_sum()
    q = db.session.query(
        Product,
        Category.name.label("category_name"),
        stock.label("current_stock"),
    ).outerjoin(
        Category, Product.category_id == Category.id
    ).outerjoin(
        InventoryTransaction, InventoryTransaction.product_id == Product.id
    ).group_by(Product.id, Category.name)

    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if product_id is not None:
        q = q.filter(Product.id == product_id)

    rows = q.order_by(Product.name.asc(), Product.id.asc()).all()

    results = []
    for product, category_name, current in rows:
        current = int(current or 0)
        results.append({
            "id": product.id,
            "sku": product.sku,
            "name": product.name,
            "description": product.description,
            "category_id": product.category_id,
            "category_name": category_name,
            "price_cents": product.price_cents,
            "unit_of_measure": product.unit_of_measure,
            "reorder_level": product.reorder_level,
            "current_stock": current,
            "is_low_stock": is_low_stock(current, product.reorder_level),
            "is_out_of_stock": is_out_of_stock(current),
        })
    return results
