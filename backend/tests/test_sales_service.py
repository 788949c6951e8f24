"""
Sale commit protocol tests.

Verifies:
- A checkout writes header, lines and stock deductions together
- Any failure mid-commit leaves no trace
- Receipts keep the price charged, whatever the catalog does later
- Payment and total consistency rules
- Idempotent resubmission
"""

import pytest

from stockledger.errors import CommitFailed, NotFoundError, ValidationError
from stockledger.extensions import db
from stockledger.models import InventoryTransaction, Sale, SaleItem
from stockledger.services import sales_service
from stockledger.services import stock_service


def _counts():
    return (
        Sale.query.count(),
        SaleItem.query.count(),
        InventoryTransaction.query.filter_by(transaction_type="out").count(),
    )


def _commit(cashier, items, **kwargs):
    total = sum(item["unit_price_cents"] * item["quantity"] for item in items)
    kwargs.setdefault("payment_method", "cash")
    if kwargs["payment_method"] == "cash":
        kwargs.setdefault("cash_tendered_cents", total)
    return sales_service.commit_sale(
        cashier_id=cashier.id,
        items=items,
        total_amount_cents=total,
        **kwargs,
    )


# =============================================================================
# ATOMIC COMMIT
# =============================================================================


class TestCommitSale:

    def test_two_line_sale_writes_everything(self, stocked, cashier_user, cart_line):
        water, juice = stocked

        sale = _commit(
            cashier_user,
            [cart_line(water, 3), cart_line(juice, 2)],
            cash_tendered_cents=10000,
        )

        assert _counts() == (1, 2, 2)
        assert sale.total_amount_cents == 3 * 1000 + 2 * 2500
        assert sale.cash_tendered_cents == 10000
        assert sale.change_amount_cents == 10000 - 8000
        assert sale.payment_method == "cash"

        assert stock_service.current_stock(water.id) == 97
        assert stock_service.current_stock(juice.id) == 48

        outs = InventoryTransaction.query.filter_by(sale_id=sale.id).all()
        assert {tx.product_id: tx.quantity for tx in outs} == {water.id: 3, juice.id: 2}
        assert all(tx.transaction_type == "out" for tx in outs)
        assert all(tx.user_id == cashier_user.id for tx in outs)
        assert all(tx.notes == f"POS Sale #{sale.id}" for tx in outs)

    def test_lines_carry_snapshot_and_subtotal(self, stocked, cashier_user, cart_line):
        water, _ = stocked

        sale = _commit(cashier_user, [cart_line(water, 4)])

        (item,) = sale.items
        assert item.product_id == water.id
        assert item.product_name == "Mineral Water"
        assert item.unit_of_measure == "bottle"
        assert item.unit_price_cents == 1000
        assert item.quantity == 4
        assert item.subtotal_cents == 4000

    def test_sale_may_drive_stock_negative(self, water, cashier_user, cart_line):
        _commit(cashier_user, [cart_line(water, 2)])

        assert stock_service.current_stock(water.id) == -2
        assert stock_service.product_stock(water.id).is_out_of_stock

    def test_card_sale_stores_no_cash_fields(self, stocked, cashier_user, cart_line):
        water, _ = stocked

        sale = _commit(cashier_user, [cart_line(water, 1)], payment_method="card")

        assert sale.payment_method == "card"
        assert sale.cash_tendered_cents is None
        assert sale.change_amount_cents is None


# =============================================================================
# FAILURE ATOMICITY
# =============================================================================


class TestCommitFailure:

    def test_failure_on_second_line_rolls_back_everything(
        self, stocked, cashier_user, cart_line, monkeypatch
    ):
        water, juice = stocked
        real_write_line = sales_service._write_line
        calls = {"n": 0}

        def failing_write_line(sale, item, actor_id):
            calls["n"] += 1
            if calls["n"] == 2:
                # First line's SaleItem and out row are already in the transaction
                db.session.flush()
                assert SaleItem.query.count() == 1
                raise RuntimeError("disk full")
            return real_write_line(sale, item, actor_id)

        monkeypatch.setattr(sales_service, "_write_line", failing_write_line)

        with pytest.raises(CommitFailed) as excinfo:
            _commit(cashier_user, [cart_line(water, 3), cart_line(juice, 2)])

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert _counts() == (0, 0, 0)
        assert stock_service.current_stock(water.id) == 100
        assert stock_service.current_stock(juice.id) == 50

    def test_failure_on_commit_rolls_back(self, stocked, cashier_user, cart_line, monkeypatch):
        water, _ = stocked

        def failing_commit():
            raise RuntimeError("connection lost")

        monkeypatch.setattr(db.session, "commit", failing_commit)

        with pytest.raises(CommitFailed):
            _commit(cashier_user, [cart_line(water, 1)])

        monkeypatch.undo()
        assert _counts() == (0, 0, 0)


# =============================================================================
# SNAPSHOTS
# =============================================================================


class TestSnapshots:

    def test_price_change_after_sale_does_not_touch_receipt(
        self, db_session, stocked, cashier_user, cart_line
    ):
        water, _ = stocked
        sale = _commit(cashier_user, [cart_line(water, 2)])

        water.price_cents = 1500
        water.name = "Mineral Water (new label)"
        db_session.commit()

        receipt = sales_service.get_sale(sale.id)
        (item,) = receipt["items"]
        assert item["unit_price_cents"] == 1000
        assert item["subtotal_cents"] == 2000
        assert item["product_name"] == "Mineral Water"
        assert receipt["total_amount_cents"] == 2000

    def test_cart_price_wins_over_live_price(self, db_session, stocked, cashier_user, cart_line):
        water, _ = stocked
        line = cart_line(water, 1)

        # Catalog changes between cart build and checkout
        water.price_cents = 1500
        db_session.commit()

        sale = _commit(cashier_user, [line])
        assert sale.items[0].unit_price_cents == 1000
        assert sale.total_amount_cents == 1000


# =============================================================================
# VALIDATION (nothing written)
# =============================================================================


class TestValidation:

    def test_empty_cart(self, stocked, cashier_user):
        with pytest.raises(ValidationError, match="empty cart"):
            sales_service.commit_sale(
                cashier_id=cashier_user.id, items=[], total_amount_cents=0, cash_tendered_cents=0
            )
        assert _counts() == (0, 0, 0)

    def test_empty_iterator_cart(self, stocked, cashier_user):
        with pytest.raises(ValidationError, match="empty cart"):
            sales_service.commit_sale(
                cashier_id=cashier_user.id,
                items=iter([]),
                total_amount_cents=0,
                payment_method="card",
            )
        assert _counts() == (0, 0, 0)

    def test_generator_cart_is_accepted(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        sale = sales_service.commit_sale(
            cashier_id=cashier_user.id,
            items=(line for line in [cart_line(water, 2)]),
            total_amount_cents=2000,
            payment_method="card",
        )
        assert len(sale.items) == 1
        assert _counts() == (1, 1, 1)

    @pytest.mark.parametrize("quantity", [1_000_001, 10**20])
    def test_oversized_line_quantity(self, stocked, cashier_user, cart_line, quantity):
        water, _ = stocked
        with pytest.raises(ValidationError, match="quantity cannot exceed"):
            _commit(cashier_user, [cart_line(water, quantity)])
        assert _counts() == (0, 0, 0)

    def test_oversized_line_subtotal(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        line = cart_line(water, 1000)
        line["unit_price_cents"] = 999_999_999
        with pytest.raises(ValidationError, match="line subtotal"):
            _commit(cashier_user, [line], payment_method="card")
        assert _counts() == (0, 0, 0)

    def test_oversized_tender(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError, match="cash_tendered_cents cannot exceed"):
            _commit(cashier_user, [cart_line(water, 1)], cash_tendered_cents=10**20)
        assert _counts() == (0, 0, 0)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_line_quantity(self, stocked, cashier_user, cart_line, quantity):
        water, _ = stocked
        with pytest.raises(ValidationError):
            sales_service.commit_sale(
                cashier_id=cashier_user.id,
                items=[cart_line(water, quantity)],
                total_amount_cents=0,
                cash_tendered_cents=0,
            )
        assert _counts() == (0, 0, 0)

    def test_total_must_match_lines(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError, match="does not match"):
            sales_service.commit_sale(
                cashier_id=cashier_user.id,
                items=[cart_line(water, 2)],
                total_amount_cents=1999,
                cash_tendered_cents=5000,
            )
        assert _counts() == (0, 0, 0)

    def test_cash_requires_enough_tender(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError):
            _commit(cashier_user, [cart_line(water, 2)], cash_tendered_cents=1500)

    def test_cash_requires_tender(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError):
            _commit(cashier_user, [cart_line(water, 1)], cash_tendered_cents=None)

    def test_change_must_match(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError):
            _commit(
                cashier_user,
                [cart_line(water, 1)],
                cash_tendered_cents=2000,
                change_amount_cents=500,
            )

    def test_unknown_payment_method(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError):
            _commit(cashier_user, [cart_line(water, 1)], payment_method="cheque")

    def test_missing_snapshot_name(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        line = cart_line(water, 1)
        line["product_name"] = "  "
        with pytest.raises(ValidationError):
            _commit(cashier_user, [line])

    def test_unknown_product(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        line = cart_line(water, 1)
        line["product_id"] = 99999
        with pytest.raises(NotFoundError):
            _commit(cashier_user, [line])
        assert _counts() == (0, 0, 0)

    def test_cart_item_objects_accepted(self, stocked, cashier_user):
        water, _ = stocked
        item = sales_service.CartItem(
            product_id=water.id,
            product_name="Mineral Water",
            unit_of_measure="bottle",
            unit_price_cents=1000,
            quantity=2,
        )
        sale = sales_service.commit_sale(
            cashier_id=cashier_user.id, items=[item], total_amount_cents=2000, payment_method="mobile"
        )
        assert sale.items[0].subtotal_cents == 2000


# =============================================================================
# IDEMPOTENCY
# =============================================================================


class TestIdempotency:

    def test_resubmission_returns_existing_sale(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        items = [cart_line(water, 5)]

        first = _commit(cashier_user, items, idempotency_key="till-1-0001")
        second = _commit(cashier_user, items, idempotency_key="till-1-0001")

        assert second.id == first.id
        assert _counts() == (1, 1, 1)
        assert stock_service.current_stock(water.id) == 95

    def test_distinct_keys_are_distinct_sales(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        items = [cart_line(water, 1)]

        _commit(cashier_user, items, idempotency_key="a")
        _commit(cashier_user, items, idempotency_key="b")
        _commit(cashier_user, items)

        assert _counts() == (3, 3, 3)

    def test_key_reused_for_different_total(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        _commit(cashier_user, [cart_line(water, 1)], idempotency_key="till-1-0002")

        with pytest.raises(ValidationError, match="different sale"):
            _commit(cashier_user, [cart_line(water, 4)], idempotency_key="till-1-0002")

        assert _counts() == (1, 1, 1)
        assert stock_service.current_stock(water.id) == 99

    def test_key_too_long(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        with pytest.raises(ValidationError, match="idempotency_key exceeds max length 128"):
            _commit(cashier_user, [cart_line(water, 1)], idempotency_key="k" * 129)
        assert _counts() == (0, 0, 0)

    def test_key_at_max_length(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        sale = _commit(cashier_user, [cart_line(water, 1)], idempotency_key="k" * 128)
        assert sale.idempotency_key == "k" * 128


# =============================================================================
# READS
# =============================================================================


class TestReads:

    def test_get_sale_includes_cashier_and_items(self, stocked, cashier_user, cart_line):
        water, juice = stocked
        sale = _commit(cashier_user, [cart_line(water, 1), cart_line(juice, 1)])

        data = sales_service.get_sale(sale.id)

        assert data["id"] == sale.id
        assert data["cashier_name"] == "Cora Tester"
        assert [item["product_name"] for item in data["items"]] == ["Mineral Water", "Orange Juice"]

    def test_get_sale_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.get_sale(31337)

    def test_list_sales_newest_first(self, stocked, cashier_user, cart_line):
        water, _ = stocked
        first = _commit(cashier_user, [cart_line(water, 1)])
        second = _commit(cashier_user, [cart_line(water, 1)])

        ids = [row["id"] for row in sales_service.list_sales()]
        assert ids == [second.id, first.id]

    def test_list_sales_rejects_inverted_range(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(date_from="2026-03-10", date_to="2026-03-01")

    def test_list_sales_rejects_bad_date(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(date_from="10/03/2026")
