# Overview: Read-side order queries and the status update used by the orders API.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db, result_cache
from ..models import Order, OrderItem
from orderhub.time_utils import parse_platform_datetime
from .concurrency import run_with_retry
from .result_cache import DASHBOARD_CACHE_KEY

MAX_PAGE_SIZE = 100


class OrderQueryError(ValueError):
    """Raised for invalid order read/update requests."""
    pass


def list_orders(
    *,
    page: int = 1,
    limit: int = 20,
    status: str | None = None,
    order_type: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    restaurant_id: int | None = None,
) -> tuple[list[Order], int]:
    """Newest first. Returns (page of orders, total matching)."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    try:
        start = parse_platform_datetime(date_from)
        end = parse_platform_datetime(date_to)
    except ValueError as exc:
        raise OrderQueryError("date_from and date_to must be ISO-8601 datetimes") from exc

    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if order_type:
        query = query.filter(Order.type == order_type.lower())
    if restaurant_id is not None:
        query = query.filter(Order.restaurant_id == restaurant_id)
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at <= end)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def get_order_with_details(order_id: int) -> dict | None:
    order = (
        db.session.query(Order)
        .options(
            selectinload(Order.items).selectinload(OrderItem.options),
            selectinload(Order.taxes),
            selectinload(Order.coupons),
        )
        .filter(Order.id == order_id)
        .first()
    )
    if order is None:
        return None

    items = []
    for item in order.items:
        data = item.to_dict()
        data["options"] = [o.to_dict() for o in item.options]
        items.append(data)

    return {
        "order": order.to_dict(),
        "items": items,
        "taxes": [t.to_dict() for t in order.taxes],
        "coupons": [c.coupon_code for c in order.coupons],
        "client": order.client.to_dict() if order.client else None,
        "restaurant": order.restaurant.to_dict() if order.restaurant else None,
        "billing": order.billing_details.to_dict() if order.billing_details else None,
    }


def update_order_status(order_id: int, status: str | None) -> Order | None:
    """Set a new status. Returns None when the order does not exist."""
    status = (status or "").strip()
    if not status:
        raise OrderQueryError("status is required")
    if len(status) > 32:
        raise OrderQueryError("status must be at most 32 characters")

    def _op():
        order = db.session.get(Order, order_id)
        if order is None:
            return None
        order.status = status
        db.session.commit()
        return order

    order = run_with_retry(_op, session=db.session)
    if order is not None:
        result_cache.invalidate(DASHBOARD_CACHE_KEY)
    return order
