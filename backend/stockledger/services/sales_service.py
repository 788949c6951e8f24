"""
Sale commit protocol - one checkout, one unit of work.

WHY: A checkout writes three kinds of rows: the Sale header, one SaleItem
per cart line and one out InventoryTransaction per cart line. They are
committed together or not at all. A sale recorded without its stock
deduction (or the reverse) is a correctness violation, so every write
shares a single database transaction and any failure rolls all of them
back and surfaces as CommitFailed.

Snapshots: name, unit of measure and unit price come from the cart as
built at the till, not from the live product at commit time. The price
shown to the customer is the price charged even if the catalog changes
mid-checkout.

Stock sufficiency is not checked. Two tills selling the last unit both
succeed and derived stock goes negative, which low-stock reporting shows
as urgently out of stock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import CommitFailed, NotFoundError, ValidationError
from ..models import Sale, SaleItem, Product, InventoryTransaction, User
from ..validation import (
    MAX_INTEGER,
    coerce_int,
    enforce_amount_cents,
    enforce_iso_day,
    enforce_payment_method,
    enforce_positive_quantity,
    enforce_price_cents,
)
from stockledger.time_utils import local_day_bounds, utcnow


logger = logging.getLogger(__name__)

# Matches sales.idempotency_key String(128)
IDEMPOTENCY_KEY_MAX_LENGTH = 128


@dataclass(frozen=True)
class CartItem:
    """One cart line with the catalog values frozen at cart-build time."""
    product_id: int
    product_name: str
    unit_of_measure: str
    unit_price_cents: int
    quantity: int

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartItem":
        if not isinstance(data, Mapping):
            raise ValidationError("cart items must be objects")

        product_id = data.get("product_id")
        if product_id is None:
            raise ValidationError("product_id is required for every cart item")

        name = str(data.get("product_name") or "").strip()
        if not name:
            raise ValidationError("product_name is required for every cart item")

        unit = str(data.get("unit_of_measure") or "").strip()
        if not unit:
            raise ValidationError("unit_of_measure is required for every cart item")

        if data.get("unit_price_cents") is None:
            raise ValidationError("unit_price_cents is required for every cart item")

        item = cls(
            product_id=coerce_int("product_id", product_id),
            product_name=name,
            unit_of_measure=unit,
            unit_price_cents=enforce_price_cents(data.get("unit_price_cents"), "unit_price_cents"),
            quantity=enforce_positive_quantity(data.get("quantity")),
        )
        if item.subtotal_cents > MAX_INTEGER:
            raise ValidationError(f"line subtotal cannot exceed {MAX_INTEGER} cents")
        return item


def _normalize_cart(items: Iterable[CartItem | Mapping[str, Any]] | None) -> list[CartItem]:
    cart = []
    for item in items or ():
        if isinstance(item, CartItem):
            # Re-validate: dataclass construction does not check values
            item = CartItem.from_dict(item.__dict__)
        else:
            item = CartItem.from_dict(item)
        cart.append(item)

    if not cart:
        raise ValidationError("empty cart")
    return cart


def _resolve_tender(
    payment_method: str,
    total_amount_cents: int,
    cash_tendered_cents: Any,
    change_amount_cents: Any,
) -> tuple[int | None, int | None]:
    """Returns the (tendered, change) pair to store. NULL/NULL for non-cash."""
    if payment_method != "cash":
        return None, None

    if cash_tendered_cents is None:
        raise ValidationError("cash_tendered_cents is required for cash payments")

    tendered = enforce_amount_cents(cash_tendered_cents, "cash_tendered_cents")
    if tendered < total_amount_cents:
        raise ValidationError("cash_tendered_cents is less than total_amount_cents")

    expected_change = tendered - total_amount_cents
    if change_amount_cents is None:
        return tendered, expected_change

    change = enforce_amount_cents(change_amount_cents, "change_amount_cents")
    if change != expected_change:
        raise ValidationError(
            f"change_amount_cents must equal cash_tendered_cents - total_amount_cents ({expected_change})"
        )
    return tendered, change


def _ensure_products_exist(cart: list[CartItem]) -> None:
    wanted = {item.product_id for item in cart}
    found = {
        row.id
        for row in db.session.query(Product.id).filter(Product.id.in_(wanted)).all()
    }
    missing = sorted(wanted - found)
    if missing:
        raise NotFoundError(f"Product not found: {', '.join(str(m) for m in missing)}")


def _find_by_idempotency_key(key: str) -> Sale | None:
    return Sale.query.filter_by(idempotency_key=key).first()


def _normalize_idempotency_key(key: Any) -> str | None:
    if key is None:
        return None
    key = str(key).strip()
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(f"idempotency_key exceeds max length {IDEMPOTENCY_KEY_MAX_LENGTH}")
    return key or None


def _replay(existing: Sale, total: int) -> Sale:
    """A replay must describe the same checkout as the stored sale."""
    if existing.total_amount_cents != total:
        logger.warning(
            "Idempotency key %r reused with total %d, sale %d has %d",
            existing.idempotency_key, total, existing.id, existing.total_amount_cents,
        )
        raise ValidationError("idempotency_key already used for a different sale")
    logger.info("Sale %d replayed for idempotency key %r", existing.id, existing.idempotency_key)
    return existing


def _write_line(sale: Sale, item: CartItem, actor_id: int | None) -> None:
    """Writes one SaleItem and its out transaction. No flush, no commit."""
    db.session.add(SaleItem(
        sale_id=sale.id,
        product_id=item.product_id,
        product_name=item.product_name,
        unit_of_measure=item.unit_of_measure,
        unit_price_cents=item.unit_price_cents,
        quantity=item.quantity,
        subtotal_cents=item.subtotal_cents,
    ))
    db.session.add(InventoryTransaction(
        product_id=item.product_id,
        transaction_type="out",
        quantity=item.quantity,
        user_id=actor_id,
        notes=f"POS Sale #{sale.id}",
        sale_id=sale.id,
        created_at=sale.created_at,
    ))


def commit_sale(
    *,
    cashier_id: int,
    items: Iterable[CartItem | Mapping[str, Any]],
    total_amount_cents: int,
    cash_tendered_cents: int | None = None,
    change_amount_cents: int | None = None,
    payment_method: str = "cash",
    idempotency_key: str | None = None,
) -> Sale:
    """
    Record a checkout atomically: Sale + SaleItems + out transactions.

    Raises ValidationError / NotFoundError before anything is written, and
    CommitFailed (after a full rollback) when any write fails. Never retried
    here: the cashier resubmits the whole checkout.

    With an idempotency_key, a checkout already recorded under that key is
    returned as-is and nothing new is written. Reusing a key for a checkout
    with a different total is a ValidationError.
    """
    cart = _normalize_cart(items)
    payment_method = enforce_payment_method(payment_method)

    if total_amount_cents is None:
        raise ValidationError("total_amount_cents is required")
    total = enforce_amount_cents(total_amount_cents, "total_amount_cents")
    expected_total = sum(item.subtotal_cents for item in cart)
    if total != expected_total:
        raise ValidationError(
            f"total_amount_cents ({total}) does not match the sum of line subtotals ({expected_total})"
        )

    tendered, change = _resolve_tender(payment_method, total, cash_tendered_cents, change_amount_cents)

    idempotency_key = _normalize_idempotency_key(idempotency_key)
    if idempotency_key:
        existing = _find_by_idempotency_key(idempotency_key)
        if existing is not None:
            return _replay(existing, total)

    _ensure_products_exist(cart)

    try:
        sale = Sale(
            cashier_id=cashier_id,
            total_amount_cents=total,
            cash_tendered_cents=tendered,
            change_amount_cents=change,
            payment_method=payment_method,
            idempotency_key=idempotency_key,
            created_at=utcnow(),
        )
        db.session.add(sale)
        # Header id must exist before any line references it
        db.session.flush()

        for item in cart:
            _write_line(sale, item, cashier_id)

        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        if idempotency_key and isinstance(exc, IntegrityError):
            # A concurrent submission with the same key won the insert
            existing = _find_by_idempotency_key(idempotency_key)
            if existing is not None:
                return _replay(existing, total)
        logger.exception("Sale commit rolled back for cashier %s", cashier_id)
        raise CommitFailed("Failed to record sale") from exc

    logger.info(
        "Sale %d committed by cashier %s: %d line(s), total %d cents",
        sale.id, cashier_id, len(cart), total,
    )
    return sale


def _cashier_name(user: User | None) -> str | None:
    return user.display_name if user is not None else None


def sale_to_dict(sale: Sale, *, include_items: bool = True) -> dict:
    data = sale.to_dict()
    data["cashier_name"] = _cashier_name(sale.cashier)
    if include_items:
        data["items"] = [item.to_dict() for item in sale.items]
    return data


def get_sale(sale_id: int) -> dict:
    """Sale with cashier name and its snapshot items, for receipts."""
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale_to_dict(sale)


def list_sales(date_from=None, date_to=None, limit: int = 100) -> list[dict]:
    """
    POS sales history, newest first.

    date_from / date_to are optional inclusive calendar days in the
    reporting timezone; an omitted bound is open.
    """
    first_day = enforce_iso_day(date_from, "from")
    last_day = enforce_iso_day(date_to, "to")
    if first_day and last_day and first_day > last_day:
        raise ValidationError("from must not be after to")

    tz_name = current_app.config["REPORT_TIMEZONE"]
    q = Sale.query
    if first_day:
        start, _ = local_day_bounds(first_day, first_day, tz_name)
        q = q.filter(Sale.created_at >= start)
    if last_day:
        _, end = local_day_bounds(last_day, last_day, tz_name)
        q = q.filter(Sale.created_at < end)

    sales = q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
    return [sale_to_dict(sale, include_items=False) for sale in sales]
