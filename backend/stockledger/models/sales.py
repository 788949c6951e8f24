from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "card", "mobile")


class Sale(db.Model):
    """
    Header for one completed checkout.

    IMMUTABLE: written once by the sale commit together with its SaleItems
    and the matching out transactions, never updated afterwards.

    cash_tendered_cents / change_amount_cents are NULL for non-cash payments.
    idempotency_key is an optional client token; a resubmitted checkout with
    the same key resolves to the sale already recorded.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "payment_method IN ('cash', 'card', 'mobile')",
            name="ck_sales_payment_method",
        ),
        db.Index("ix_sales_created_at", "created_at"),
        db.Index("ix_sales_cashier_id", "cashier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False)
    cash_tendered_cents = db.Column(db.Integer, nullable=True)
    change_amount_cents = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(20), nullable=False, default="cash")

    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cashier = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_id": self.cashier_id,
            "total_amount_cents": self.total_amount_cents,
            "cash_tendered_cents": self.cash_tendered_cents,
            "change_amount_cents": self.change_amount_cents,
            "payment_method": self.payment_method,
            "idempotency_key": self.idempotency_key,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """
    One line of a sale.

    SNAPSHOT columns (product_name, unit_of_measure, unit_price_cents) hold
    the values the customer was charged at checkout. They are not joined
    back to Product, so later catalog edits never alter a receipt.
    subtotal_cents = unit_price_cents * quantity, fixed at write time.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    unit_of_measure = db.Column(db.String(50), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_of_measure": self.unit_of_measure,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "subtotal_cents": self.subtotal_cents,
        }
