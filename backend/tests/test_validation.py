import pytest
from datetime import date, datetime

from stockledger.errors import ValidationError
from stockledger.models import InventoryTransaction
from stockledger.time_utils import local_day_bounds, parse_iso_datetime, to_utc_z
from stockledger.validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_iso_day,
    enforce_price_cents,
    enforce_rules_inventory_transaction,
    validate_payload,
)


POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "transaction_type", "quantity", "notes"},
    required_on_create={"product_id", "transaction_type", "quantity"},
)


class TestCoerceInt:

    @pytest.mark.parametrize("raw,expected", [(5, 5), ("7", 7), (" 12 ", 12), (-3, -3)])
    def test_accepts(self, raw, expected):
        assert coerce_int("n", raw) == expected

    @pytest.mark.parametrize("raw", [True, 1.0, "1.0", "1e2", "", "abc", None, [1]])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            coerce_int("n", raw)


class TestValidatePayload:

    def test_clean_patch(self):
        patch = validate_payload(
            model=InventoryTransaction,
            payload={"product_id": "3", "transaction_type": "in", "quantity": 4, "notes": "  restock "},
            policy=POLICY,
            partial=False,
        )
        assert patch == {"product_id": 3, "transaction_type": "in", "quantity": 4, "notes": "restock"}

    def test_missing_required(self):
        with pytest.raises(ValidationError, match="Missing required fields: quantity"):
            validate_payload(
                model=InventoryTransaction,
                payload={"product_id": 1, "transaction_type": "in"},
                policy=POLICY,
                partial=False,
            )

    @pytest.mark.parametrize("field", ["user_id", "sale_id", "created_at", "id"])
    def test_server_owned_fields_rejected(self, field):
        payload = {"product_id": 1, "transaction_type": "in", "quantity": 1, field: 1}
        with pytest.raises(ValidationError, match="Field not allowed"):
            validate_payload(model=InventoryTransaction, payload=payload, policy=POLICY, partial=False)

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            validate_payload(model=InventoryTransaction, payload=[1, 2], policy=POLICY, partial=False)

    def test_null_for_required_column(self):
        with pytest.raises(ValidationError, match="cannot be null"):
            validate_payload(
                model=InventoryTransaction,
                payload={"product_id": 1, "transaction_type": "in", "quantity": None},
                policy=POLICY,
                partial=False,
            )


class TestDomainRules:

    @pytest.mark.parametrize("transaction_type", ["in", "out", "adjustment"])
    def test_known_types(self, transaction_type):
        patch = {"transaction_type": transaction_type, "quantity": 1}
        enforce_rules_inventory_transaction(patch)
        assert patch["quantity"] == 1

    def test_zero_quantity(self):
        with pytest.raises(ValidationError, match="quantity must be > 0"):
            enforce_rules_inventory_transaction({"transaction_type": "adjustment", "quantity": 0})

    def test_price_bounds(self):
        assert enforce_price_cents(0) == 0
        with pytest.raises(ValidationError):
            enforce_price_cents(-1)
        with pytest.raises(ValidationError):
            enforce_price_cents(1_000_000_000)

    def test_iso_day(self):
        assert enforce_iso_day(None, "from") is None
        assert enforce_iso_day("", "from") is None
        assert enforce_iso_day("2026-02-28", "from") == date(2026, 2, 28)
        with pytest.raises(ValidationError, match="from must be a date"):
            enforce_iso_day("2026-02-30", "from")


class TestTimeUtils:

    def test_parse_offset_to_utc_naive(self):
        assert parse_iso_datetime("2026-03-10T10:00:00+02:00") == datetime(2026, 3, 10, 8, 0)
        assert parse_iso_datetime("2026-03-10T10:00:00Z") == datetime(2026, 3, 10, 10, 0)

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2026, 3, 10, 8, 0, 5, 123)) == "2026-03-10T08:00:05Z"
        assert to_utc_z(None) is None

    def test_day_bounds_span_range(self):
        start, end = local_day_bounds(date(2026, 3, 1), date(2026, 3, 3), "UTC")
        assert start == datetime(2026, 3, 1)
        assert end == datetime(2026, 3, 4)

    def test_day_bounds_across_dst(self):
        # Europe/Berlin switches to summer time on 2026-03-29
        start, end = local_day_bounds(date(2026, 3, 29), date(2026, 3, 29), "Europe/Berlin")
        assert start == datetime(2026, 3, 28, 23, 0)
        assert end == datetime(2026, 3, 29, 22, 0)
