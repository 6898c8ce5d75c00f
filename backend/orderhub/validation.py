from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from orderhub.time_utils import parse_platform_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

# Signed 64-bit, the BIGINT range
MIN_BIGINT = -(2 ** 63)
MAX_BIGINT = 2 ** 63 - 1

DELIVERY = "delivery"
PICKUP = "pickup"


class ValidationError(ValueError):
    """400-level payload problem. Rejects the unit (order or snapshot) it was raised for."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def to_int(value: Any, field: str, *, required: bool = False, default: int | None = None) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer")
        number = int(value)
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    # Ids land in BIGINT columns
    if not MIN_BIGINT <= number <= MAX_BIGINT:
        raise ValidationError(f"{field} is out of range")
    return number


def to_cents(value: Any, field: str, *, default: int | None = 0) -> int | None:
    """Convert a platform decimal amount (12.5, "12.50") to integer cents, half-up."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    # 10,000,000 and up is out of range; checked on the exponent so 1e30 never reaches quantize()
    if amount and amount.adjusted() >= 7:
        raise ValidationError(f"{field} exceeds maximum amount")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum amount")
    return cents


def to_float(value: Any, field: str, *, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def to_datetime(value: Any, field: str):
    try:
        return parse_platform_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _require_text(obj: dict, key: str, where: str) -> str:
    text = to_text(obj.get(key))
    if text is None:
        raise ValidationError(f"{where}.{key} is required")
    return text


def _list_of_dicts(value: Any, where: str) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValidationError(f"{where} must be a list of objects")
    return value


# =============================================================================
# ORDERS
# =============================================================================

def normalize_order(raw: Any) -> dict[str, Any]:
    """
    Validate one order payload and return the normalized values the
    OrderNormalizer writes. Nothing here touches the database.
    """
    if not isinstance(raw, dict):
        raise ValidationError("order must be an object")

    external_order_id = to_int(raw.get("id"), "order.id", required=True)
    order_type = to_text(raw.get("type"))
    if order_type is None:
        raise ValidationError("order.type is required", details={"order_id": external_order_id})
    order_type = order_type.lower()

    items = []
    for idx, item in enumerate(_list_of_dicts(raw.get("items"), "order.items")):
        where = f"order.items[{idx}]"
        options = []
        for opt_idx, option in enumerate(_list_of_dicts(item.get("options"), f"{where}.options")):
            opt_where = f"{where}.options[{opt_idx}]"
            options.append({
                "external_id": to_int(option.get("id"), f"{opt_where}.id"),
                "name": _require_text(option, "name", opt_where),
                "group_name": to_text(option.get("group_name")),
                "type": to_text(option.get("type")) or "option",
                "type_id": to_int(option.get("type_id"), f"{opt_where}.type_id"),
                "quantity": to_int(option.get("quantity"), f"{opt_where}.quantity", default=1),
                "price_cents": to_cents(option.get("price"), f"{opt_where}.price"),
                "kitchen_internal_name": to_text(option.get("kitchen_internal_name")),
            })

        price_cents = to_cents(item.get("price"), f"{where}.price")
        quantity = to_int(item.get("quantity"), f"{where}.quantity", default=1)
        total_cents = to_cents(item.get("total_item_price"), f"{where}.total_item_price", default=None)
        if total_cents is None:
            total_cents = price_cents * quantity

        items.append({
            "external_id": to_int(item.get("id"), f"{where}.id"),
            "parent_external_id": to_int(item.get("parent_id"), f"{where}.parent_id"),
            "name": _require_text(item, "name", where),
            "type": to_text(item.get("type")) or "item",
            "type_id": to_int(item.get("type_id"), f"{where}.type_id"),
            "quantity": quantity,
            "price_cents": price_cents,
            "total_price_cents": total_cents,
            "tax_rate": to_float(item.get("tax_rate"), f"{where}.tax_rate"),
            "tax_value_cents": to_cents(item.get("tax_value"), f"{where}.tax_value"),
            "tax_type": to_text(item.get("tax_type")),
            "item_discount_cents": to_cents(item.get("item_discount"), f"{where}.item_discount"),
            "cart_discount_cents": to_cents(item.get("cart_discount"), f"{where}.cart_discount"),
            "cart_discount_rate": to_float(item.get("cart_discount_rate"), f"{where}.cart_discount_rate"),
            "instructions": to_text(item.get("instructions")),
            "kitchen_internal_name": to_text(item.get("kitchen_internal_name")),
            "coupon": to_text(item.get("coupon")),
            "options": options,
        })

    taxes = [
        {
            "type": to_text(tax.get("type")),
            "rate": to_float(tax.get("rate"), f"order.tax_list[{idx}].rate"),
            "value_cents": to_cents(tax.get("value"), f"order.tax_list[{idx}].value"),
        }
        for idx, tax in enumerate(_list_of_dicts(raw.get("tax_list"), "order.tax_list"))
    ]

    coupons = raw.get("coupons") or []
    if not isinstance(coupons, list):
        raise ValidationError("order.coupons must be a list")
    coupons = [c for c in (to_text(c) for c in coupons) if c]

    billing = raw.get("billing_details")
    if billing is not None and not isinstance(billing, dict):
        raise ValidationError("order.billing_details must be an object")

    address_parts = raw.get("client_address_parts")
    if address_parts is not None and not isinstance(address_parts, dict):
        raise ValidationError("order.client_address_parts must be an object")

    payment = raw.get("payment") if isinstance(raw.get("payment"), dict) else {}

    return {
        "external_order_id": external_order_id,
        "pos_system_id": to_int(raw.get("pos_system_id"), "order.pos_system_id", default=0),
        "type": order_type,
        "status": to_text(raw.get("status")) or "accepted",
        "source": to_text(raw.get("source")),
        "currency": to_text(raw.get("currency")) or "USD",
        "total_price_cents": to_cents(raw.get("total_price"), "order.total_price"),
        "sub_total_price_cents": to_cents(raw.get("sub_total_price"), "order.sub_total_price", default=None),
        "tax_value_cents": to_cents(raw.get("tax_value"), "order.tax_value"),
        "tax_type": to_text(raw.get("tax_type")),
        "tax_name": to_text(raw.get("tax_name")),
        "pickup_payment": to_text(raw.get("pickup_payment")),
        "delivery_payment": to_text(raw.get("delivery_payment")),
        "payment_status": to_text(payment.get("payment_status")) or "pending",
        "instructions": to_text(raw.get("instructions")),
        "fulfill_at": to_datetime(raw.get("fulfill_at"), "order.fulfill_at"),
        "accepted_at": to_datetime(raw.get("accepted_at"), "order.accepted_at"),
        "for_later": bool(raw.get("for_later")),
        "pin_skipped": bool(raw.get("pin_skipped")),
        "client_address": to_text(raw.get("client_address")),
        "latitude": to_text(raw.get("latitude")),
        "longitude": to_text(raw.get("longitude")),
        "delivery_zone": to_text(raw.get("delivery_zone_name")),
        "outside_delivery_area": bool(raw.get("outside_delivery_area")),
        "client": _normalize_client(raw),
        "address_parts": address_parts,
        "restaurant": _normalize_restaurant(raw),
        "items": items,
        "taxes": taxes,
        "coupons": coupons,
        "billing": billing,
    }


def _optional_flag(raw: dict, key: str) -> bool | None:
    value = raw.get(key)
    return None if value is None else bool(value)


def _normalize_client(raw: dict) -> dict[str, Any] | None:
    external_id = to_int(raw.get("client_id"), "order.client_id") or to_int(raw.get("user_id"), "order.user_id")
    if not external_id:
        return None
    # Only keys actually present are carried, so an update can leave the rest alone
    supplied = {}
    for key, column in (
        ("client_first_name", "first_name"),
        ("client_last_name", "last_name"),
        ("client_email", "email"),
        ("client_phone", "phone"),
    ):
        value = to_text(raw.get(key))
        if value is not None:
            supplied[column] = value
    return {
        "external_id": external_id,
        "fields": supplied,
        "order_count": to_int(raw.get("client_order_count"), "order.client_order_count"),
        "marketing_consent": _optional_flag(raw, "client_marketing_consent"),
    }


def _normalize_restaurant(raw: dict) -> dict[str, Any] | None:
    key = to_text(raw.get("restaurant_key"))
    if key is None:
        return None
    return {
        "restaurant_key": key,
        "external_id": to_int(raw.get("restaurant_id"), "order.restaurant_id"),
        "name": to_text(raw.get("restaurant_name")) or key,
        "timezone": to_text(raw.get("restaurant_timezone")) or "UTC",
        "currency": to_text(raw.get("currency")) or "USD",
    }


def normalize_order_batch(payload: Any) -> list[Any]:
    """Extract the orders list of a `{count, orders: [...]}` batch."""
    if not isinstance(payload, dict):
        raise ValidationError("batch must be an object")
    orders = payload.get("orders")
    if orders is None:
        return []
    if not isinstance(orders, list):
        raise ValidationError("batch.orders must be a list")
    return orders


# =============================================================================
# MENU SNAPSHOTS
# =============================================================================

def validate_menu_snapshot(snapshot: Any) -> dict[str, Any]:
    """
    Check the whole snapshot tree before anything is written.

    Returns the snapshot unchanged; raises ValidationError naming the first
    offending node.
    """
    if not isinstance(snapshot, dict):
        raise ValidationError("menu snapshot must be an object")
    to_int(snapshot.get("id"), "menu.id", required=True)
    to_int(snapshot.get("restaurant_id"), "menu.restaurant_id")

    for c_idx, category in enumerate(_list_of_dicts(snapshot.get("categories"), "menu.categories")):
        c_where = f"menu.categories[{c_idx}]"
        _require_text(category, "name", c_where)
        _validate_groups(category.get("groups"), f"{c_where}.groups")
        for i_idx, item in enumerate(_list_of_dicts(category.get("items"), f"{c_where}.items")):
            i_where = f"{c_where}.items[{i_idx}]"
            _require_text(item, "name", i_where)
            to_cents(item.get("price"), f"{i_where}.price")
            _validate_groups(item.get("groups"), f"{i_where}.groups")
            for s_idx, size in enumerate(_list_of_dicts(item.get("sizes"), f"{i_where}.sizes")):
                s_where = f"{i_where}.sizes[{s_idx}]"
                _require_text(size, "name", s_where)
                to_cents(size.get("price"), f"{s_where}.price")
                _validate_groups(size.get("groups"), f"{s_where}.groups")
    return snapshot


def _validate_groups(groups: Any, where: str) -> None:
    for g_idx, group in enumerate(_list_of_dicts(groups, where)):
        g_where = f"{where}[{g_idx}]"
        to_int(group.get("id"), f"{g_where}.id", required=True)
        _require_text(group, "name", g_where)
        to_int(group.get("force_min"), f"{g_where}.force_min")
        to_int(group.get("force_max"), f"{g_where}.force_max")
        for o_idx, option in enumerate(_list_of_dicts(group.get("options"), f"{g_where}.options")):
            o_where = f"{g_where}.options[{o_idx}]"
            _require_text(option, "name", o_where)
            to_cents(option.get("price"), f"{o_where}.price")
