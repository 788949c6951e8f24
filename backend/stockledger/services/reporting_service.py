# Overview: Reporting aggregation over committed sales and the transaction log.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Sale, SaleItem, Product, Category, Supplier, InventoryTransaction, User
from ..validation import enforce_iso_day
from stockledger.time_utils import local_day_bounds, local_today, to_utc_z
from .stock_service import all_stock_levels


MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar days plus the UTC instants that bound them."""
    first_day: date
    last_day: date
    start: datetime
    end: datetime  # exclusive

    def to_dict(self) -> dict:
        return {
            "from": self.first_day.isoformat(),
            "to": self.last_day.isoformat(),
            "start": to_utc_z(self.start),
            "end": to_utc_z(self.end),
        }


def resolve_date_range(date_from=None, date_to=None) -> DateRange:
    """
    Turn optional "YYYY-MM-DD" bounds into a DateRange.

    Both days are included. An omitted to means today; an omitted from means
    REPORT_DEFAULT_DAYS days back from to.
    """
    tz_name = current_app.config["REPORT_TIMEZONE"]
    default_days = int(current_app.config["REPORT_DEFAULT_DAYS"])

    last_day = enforce_iso_day(date_to, "to") or local_today(tz_name)
    first_day = enforce_iso_day(date_from, "from") or (last_day - timedelta(days=default_days))

    if first_day > last_day:
        raise ValidationError("from must not be after to")

    start, end = local_day_bounds(first_day, last_day, tz_name)
    return DateRange(first_day=first_day, last_day=last_day, start=start, end=end)


def _in_range(q, rng: DateRange):
    return q.filter(Sale.created_at >= rng.start, Sale.created_at < rng.end)


def _round_half_up(numerator: int, denominator: int) -> int:
    if denominator == 0:
        return 0
    return (2 * numerator + denominator) // (2 * denominator)


def top_products(date_from=None, date_to=None, limit: int = 5) -> list[dict]:
    """
    Best sellers by quantity, grouped by the name printed on the receipt.

    Revenue is the sum of snapshot subtotals, never live price x quantity.
    """
    rng = resolve_date_range(date_from, date_to)

    total_qty = func.sum(SaleItem.quantity)
    q = db.session.query(
        SaleItem.product_name.label("product_name"),
        total_qty.label("total_quantity"),
        func.sum(SaleItem.subtotal_cents).label("total_revenue_cents"),
    ).join(Sale, SaleItem.sale_id == Sale.id)

    rows = _in_range(q, rng).group_by(SaleItem.product_name).order_by(
        total_qty.desc(),
        SaleItem.product_name.asc(),
    ).limit(limit).all()

    return [
        {
            "product_name": row.product_name,
            "total_quantity": int(row.total_quantity or 0),
            "total_revenue_cents": int(row.total_revenue_cents or 0),
        }
        for row in rows
    ]


def sales_summary(date_from=None, date_to=None) -> dict:
    rng = resolve_date_range(date_from, date_to)

    q = db.session.query(
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("total_revenue_cents"),
        func.count(Sale.id).label("transaction_count"),
    )
    row = _in_range(q, rng).one()

    revenue = int(row.total_revenue_cents or 0)
    count = int(row.transaction_count or 0)

    return {
        "range": rng.to_dict(),
        "summary": {
            "total_revenue_cents": revenue,
            "transaction_count": count,
            "avg_sale_value_cents": _round_half_up(revenue, count),
        },
        "top_products": top_products(rng.first_day, rng.last_day),
    }


def paginated_sales(date_from=None, date_to=None, page: int = 1, limit: int = 20) -> dict:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    limit = min(limit, MAX_PAGE_LIMIT)

    rng = resolve_date_range(date_from, date_to)

    total = _in_range(db.session.query(func.count(Sale.id)), rng).scalar() or 0

    q = db.session.query(
        Sale,
        User.first_name,
        User.last_name,
    ).outerjoin(User, Sale.cashier_id == User.id)

    rows = _in_range(q, rng).order_by(
        Sale.created_at.desc(),
        Sale.id.desc(),
    ).offset((page - 1) * limit).limit(limit).all()

    sales = []
    for sale, first_name, last_name in rows:
        data = sale.to_dict()
        data["cashier_name"] = f"{first_name} {last_name}" if first_name is not None else None
        sales.append(data)

    return {
        "range": rng.to_dict(),
        "sales": sales,
        "pagination": {
            "total": int(total),
            "page": page,
            "limit": limit,
            "total_pages": -(-int(total) // limit),
        },
    }


def sale_items(sale_id: int) -> list[dict]:
    if db.session.get(Sale, sale_id) is None:
        raise NotFoundError("Sale not found")

    items = SaleItem.query.filter_by(sale_id=sale_id).order_by(SaleItem.id.asc()).all()
    return [item.to_dict() for item in items]


def inventory_value() -> dict:
    """Catalog value at current price; products below zero count as empty."""
    levels = {level.product_id: level.current_stock for level in all_stock_levels()}
    prices = db.session.query(Product.id, Product.price_cents).all()

    total = 0
    for product_id, price_cents in prices:
        total += (price_cents or 0) * max(levels.get(product_id, 0), 0)
    return {"total_value_cents": total}


def most_active_products(limit: int = 5) -> list[dict]:
    tx_count = func.count(InventoryTransaction.id)
    rows = db.session.query(
        Product.id.label("product_id"),
        Product.name.label("product_name"),
        Product.sku.label("sku"),
        tx_count.label("transaction_count"),
    ).outerjoin(
        InventoryTransaction, InventoryTransaction.product_id == Product.id
    ).group_by(
        Product.id, Product.name, Product.sku
    ).order_by(
        tx_count.desc(),
        Product.name.asc(),
    ).limit(limit).all()

    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "sku": row.sku,
            "transaction_count": int(row.transaction_count or 0),
        }
        for row in rows
    ]


def dashboard_overview() -> dict:
    levels = all_stock_levels()
    return {
        "total_products": len(levels),
        "total_categories": db.session.query(func.count(Category.id)).scalar() or 0,
        "total_suppliers": db.session.query(func.count(Supplier.id)).scalar() or 0,
        "low_stock_count": sum(1 for level in levels if level.is_low_stock),
        "out_of_stock_count": sum(1 for level in levels if level.is_out_of_stock),
    }
