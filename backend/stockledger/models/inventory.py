from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


TRANSACTION_TYPES = ("in", "out", "adjustment")


class InventoryTransaction(db.Model):
    """
    Append-only record of one stock movement.

    quantity is always positive; the direction comes from transaction_type:
    in and adjustment add, out subtracts. Rows are never updated or deleted.
    A mistake is corrected by appending a new adjustment.

    sale_id is set on the out rows written by a sale commit, so stock
    history can be traced back to the originating sale.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invtx_quantity_positive"),
        db.CheckConstraint(
            "transaction_type IN ('in', 'out', 'adjustment')",
            name="ck_invtx_type",
        ),
        db.Index("ix_invtx_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(20), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Actor who recorded the movement (cashier for sale deductions)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} product_id={self.product_id} "
            f"{self.transaction_type} {self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "user_id": self.user_id,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
