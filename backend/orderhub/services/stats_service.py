# Overview: Dashboard aggregates over ingested orders (cached under dashboard:stats) and sales reports.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db, result_cache
from ..models import Client, Order, OrderItem
from ..validation import DELIVERY, PICKUP
from orderhub.time_utils import days_ago, to_utc_z, utcnow
from .result_cache import DASHBOARD_CACHE_KEY

RECENT_ORDERS_LIMIT = 10
TOP_CLIENTS_LIMIT = 5


def _period_stats(since: datetime) -> dict:
    orders, revenue, average = (
        db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_price_cents), 0),
            func.coalesce(func.avg(Order.total_price_cents), 0),
        )
        .filter(Order.created_at >= since)
        .one()
    )
    return {
        "orders": int(orders or 0),
        "revenue_cents": int(revenue or 0),
        "avg_order_value_cents": int(round(float(average or 0))),
    }


def _recent_orders(limit: int) -> list[dict]:
    rows = (
        db.session.query(Order, Client.first_name, Client.last_name)
        .outerjoin(Client, Client.id == Order.client_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    out = []
    for order, first_name, last_name in rows:
        data = order.to_dict()
        data["client_first_name"] = first_name
        data["client_last_name"] = last_name
        out.append(data)
    return out


def _top_clients(limit: int) -> list[dict]:
    total_spent = func.coalesce(func.sum(Order.total_price_cents), 0).label("total_spent_cents")
    rows = (
        db.session.query(Client, func.count(Order.id).label("total_orders"), total_spent)
        .join(Order, Order.client_id == Client.id)
        .group_by(Client.id)
        .order_by(total_spent.desc(), Client.id)
        .limit(limit)
        .all()
    )
    out = []
    for client, total_orders, spent in rows:
        data = client.to_dict()
        data["total_orders"] = int(total_orders or 0)
        data["total_spent_cents"] = int(spent or 0)
        out.append(data)
    return out


def _orders_by_type(since: datetime) -> dict:
    rows = (
        db.session.query(Order.type, func.count(Order.id))
        .filter(Order.created_at >= since, Order.type.in_((PICKUP, DELIVERY)))
        .group_by(Order.type)
        .all()
    )
    counts = {PICKUP: 0, DELIVERY: 0}
    for order_type, count in rows:
        counts[order_type] = int(count)
    return counts


def compute_dashboard_stats(*, now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "today": _period_stats(days_ago(0, now=now)),
        "week": _period_stats(days_ago(7, now=now)),
        "month": _period_stats(days_ago(30, now=now)),
        "recent_orders": _recent_orders(RECENT_ORDERS_LIMIT),
        "top_clients": _top_clients(TOP_CLIENTS_LIMIT),
        "orders_by_type": _orders_by_type(days_ago(30, now=now)),
        "generated_at": to_utc_z(now),
    }


def get_dashboard_stats(*, ttl: int | None = None) -> dict:
    cached = result_cache.get(DASHBOARD_CACHE_KEY)
    if cached is not None:
        return cached

    stats = compute_dashboard_stats()
    result_cache.put(DASHBOARD_CACHE_KEY, stats, ttl=ttl)
    return stats


def sales_by_day(days: int = 30, *, now: datetime | None = None) -> list[dict]:
    """One row per calendar day with orders in the window, oldest first. Reports are not cached."""
    day = func.strftime("%Y-%m-%d", Order.created_at).label("day")
    rows = (
        db.session.query(
            day,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_price_cents), 0),
            func.coalesce(func.avg(Order.total_price_cents), 0),
        )
        .filter(Order.created_at >= days_ago(days, now=now or utcnow()))
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [
        {
            "date": d,
            "orders": int(orders or 0),
            "revenue_cents": int(revenue or 0),
            "avg_order_value_cents": int(round(float(average or 0))),
        }
        for d, orders, revenue, average in rows
    ]


def sales_by_hour(*, now: datetime | None = None) -> list[dict]:
    """Orders and revenue per hour of day over the last 30 days."""
    hour = func.strftime("%H", Order.created_at).label("hour")
    rows = (
        db.session.query(hour, func.count(Order.id), func.coalesce(func.sum(Order.total_price_cents), 0))
        .filter(Order.created_at >= days_ago(30, now=now or utcnow()))
        .group_by(hour)
        .order_by(hour)
        .all()
    )
    return [
        {"hour": int(h), "orders": int(orders or 0), "revenue_cents": int(revenue or 0)}
        for h, orders, revenue in rows
    ]


def top_products(limit: int = 10) -> list[dict]:
    total_quantity = func.coalesce(func.sum(OrderItem.quantity), 0).label("total_quantity")
    rows = (
        db.session.query(
            OrderItem.name,
            total_quantity,
            func.coalesce(func.sum(OrderItem.total_price_cents), 0),
            func.count(func.distinct(OrderItem.order_id)),
        )
        .filter(OrderItem.type == "item")
        .group_by(OrderItem.name)
        .order_by(total_quantity.desc(), OrderItem.name)
        .limit(limit)
        .all()
    )
    return [
        {
            "name": name,
            "total_quantity": int(quantity or 0),
            "total_revenue_cents": int(revenue or 0),
            "order_count": int(order_count or 0),
        }
        for name, quantity, revenue, order_count in rows
    ]


def payment_stats() -> list[dict]:
    count = func.count(Order.id).label("count")
    rows = (
        db.session.query(Order.payment_method, count, func.coalesce(func.sum(Order.total_price_cents), 0))
        .filter(Order.payment_method.isnot(None))
        .group_by(Order.payment_method)
        .order_by(count.desc(), Order.payment_method)
        .all()
    )
    return [
        {"payment_method": method, "count": int(n or 0), "total_cents": int(total or 0)}
        for method, n, total in rows
    ]


def delivery_zone_stats() -> list[dict]:
    orders = func.count(Order.id).label("orders")
    rows = (
        db.session.query(
            Order.delivery_zone,
            orders,
            func.coalesce(func.sum(Order.total_price_cents), 0),
            func.coalesce(func.avg(Order.delivery_fee_cents), 0),
        )
        .filter(Order.type == DELIVERY, Order.delivery_zone.isnot(None))
        .group_by(Order.delivery_zone)
        .order_by(orders.desc(), Order.delivery_zone)
        .all()
    )
    return [
        {
            "zone": zone,
            "orders": int(n or 0),
            "revenue_cents": int(revenue or 0),
            "avg_delivery_fee_cents": int(round(float(fee or 0))),
        }
        for zone, n, revenue, fee in rows
    ]
