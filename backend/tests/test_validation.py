"""Payload validation and normalization."""

import pytest

from orderhub.blobs import ItemBlobs, decode_blob
from orderhub.validation import (
    MAX_AMOUNT_CENTS,
    ValidationError,
    normalize_order,
    normalize_order_batch,
    to_cents,
    to_int,
    validate_menu_snapshot,
)


class TestToCents:
    @pytest.mark.parametrize("value,expected", [
        (12.5, 1250),
        ("12.50", 1250),
        (0.005, 1),
        ("0.004", 0),
        (1.005, 101),
        (-2.5, -250),
        (7, 700),
    ])
    def test_half_up(self, value, expected):
        assert to_cents(value, "price") == expected

    def test_missing_uses_default(self):
        assert to_cents(None, "price") == 0
        assert to_cents("", "price", default=None) is None

    @pytest.mark.parametrize("value", ["abc", True, "nan", "inf"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            to_cents(value, "price")

    def test_rejects_out_of_range(self):
        with pytest.raises(ValidationError):
            to_cents(10_000_000, "price")

    @pytest.mark.parametrize("value", [1e30, "1e30", "-1E+400", 10 ** 20])
    def test_rejects_huge_exponents(self, value):
        with pytest.raises(ValidationError, match="exceeds maximum amount"):
            to_cents(value, "price")

    def test_largest_amount_accepted(self):
        assert to_cents("9999999.99", "price") == MAX_AMOUNT_CENTS


class TestToInt:
    def test_accepts_numeric_strings_and_whole_floats(self):
        assert to_int("42", "id") == 42
        assert to_int(42.0, "id") == 42

    def test_rejects_fractions_and_bools(self):
        with pytest.raises(ValidationError):
            to_int(4.2, "id")
        with pytest.raises(ValidationError):
            to_int(True, "id")

    def test_required(self):
        with pytest.raises(ValidationError, match="order.id is required"):
            to_int(None, "order.id", required=True)

    @pytest.mark.parametrize("value", [10 ** 20, -(2 ** 63) - 1, str(2 ** 64), 1e30])
    def test_rejects_values_outside_bigint(self, value):
        with pytest.raises(ValidationError, match="out of range"):
            to_int(value, "order.id")

    def test_bigint_bounds_accepted(self):
        assert to_int(2 ** 63 - 1, "id") == 2 ** 63 - 1
        assert to_int(str(-(2 ** 63)), "id") == -(2 ** 63)


class TestNormalizeOrder:
    def test_minimal_order(self, make_order):
        normalized = normalize_order(make_order())

        assert normalized["external_order_id"] == 555
        assert normalized["pos_system_id"] == 0
        assert normalized["type"] == "pickup"
        assert normalized["status"] == "accepted"
        assert normalized["total_price_cents"] == 1250
        assert normalized["items"][0]["total_price_cents"] == 1250
        assert normalized["client"] is None
        assert normalized["restaurant"] is None

    def test_type_is_lowercased(self, make_order):
        assert normalize_order(make_order(type="DELIVERY"))["type"] == "delivery"

    def test_item_total_defaults_to_price_times_quantity(self, make_order):
        order = make_order(items=[{"name": "Fries", "price": 2.25, "quantity": 3}])
        item = normalize_order(order)["items"][0]
        assert item["total_price_cents"] == 675
        assert item["type"] == "item"

    def test_platform_total_wins(self, make_order):
        order = make_order(items=[{"name": "Fries", "price": 2.25, "quantity": 3, "total_item_price": 6}])
        assert normalize_order(order)["items"][0]["total_price_cents"] == 600

    def test_client_fields_only_when_present(self, make_order):
        client = normalize_order(make_order(client_id="17", client_email="  ", client_phone="555"))["client"]
        assert client["external_id"] == 17
        assert client["fields"] == {"phone": "555"}
        assert client["order_count"] is None

    def test_fulfill_at_normalized_to_utc(self, make_order):
        normalized = normalize_order(make_order(fulfill_at="2024-01-15T18:30:00+02:00"))
        assert normalized["fulfill_at"].isoformat() == "2024-01-15T16:30:00"

    @pytest.mark.parametrize("mutate,message", [
        (lambda o: o.pop("id"), "order.id is required"),
        (lambda o: o.pop("type"), "order.type is required"),
        (lambda o: o.update(items="x"), "order.items must be a list"),
        (lambda o: o.update(items=[{"price": 1}]), "order.items[0].name is required"),
        (lambda o: o.update(fulfill_at="tomorrow"), "order.fulfill_at"),
    ])
    def test_rejections(self, make_order, mutate, message):
        order = make_order()
        mutate(order)
        with pytest.raises(ValidationError) as exc_info:
            normalize_order(order)
        assert message in str(exc_info.value)

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            normalize_order(["not", "a", "dict"])


class TestBatch:
    def test_orders_extracted(self):
        assert normalize_order_batch({"count": 1, "orders": [{"id": 1}]}) == [{"id": 1}]

    def test_missing_orders_is_empty(self):
        assert normalize_order_batch({"count": 0}) == []

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            normalize_order_batch(None)


class TestMenuSnapshot:
    def test_valid_snapshot_returned_unchanged(self, make_snapshot):
        snapshot = make_snapshot()
        assert validate_menu_snapshot(snapshot) is snapshot

    def test_missing_menu_id(self, make_snapshot):
        snapshot = make_snapshot()
        del snapshot["id"]
        with pytest.raises(ValidationError, match="menu.id is required"):
            validate_menu_snapshot(snapshot)

    def test_group_without_id_names_the_node(self, make_snapshot):
        snapshot = make_snapshot()
        del snapshot["categories"][0]["items"][1]["groups"][0]["id"]
        with pytest.raises(ValidationError, match=r"menu.categories\[0\].items\[1\].groups\[0\].id is required"):
            validate_menu_snapshot(snapshot)


class TestItemBlobs:
    def test_known_arrays_and_residual(self):
        blobs = ItemBlobs.from_payload({
            "tags": ["VEGAN"],
            "extras": {
                "menu_item_order_types": ["pickup"],
                "menu_item_kitchen_internal_name": "K1",
                "menu_item_color": "green",
            },
        })
        columns = blobs.columns()

        assert decode_blob(columns["tags_blob"]) == ["VEGAN"]
        assert decode_blob(columns["order_types_blob"]) == ["pickup"]
        assert columns["allergens_blob"] is None
        assert decode_blob(columns["extras_blob"]) == {"menu_item_color": "green"}

    def test_empty_values_are_not_stored(self):
        assert ItemBlobs.from_payload({"tags": [], "extras": {}}).columns()["tags_blob"] is None

    def test_undecodable_blob_returned_verbatim(self):
        assert decode_blob("not json") == "not json"
        assert decode_blob(None, default=[]) == []
