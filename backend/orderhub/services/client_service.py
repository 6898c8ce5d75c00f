# Overview: Read-side client queries and the manual client update used by the clients API.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, or_

from ..extensions import db, result_cache
from ..models import Client, ClientAddress, Order
from ..validation import DELIVERY, PICKUP
from orderhub.time_utils import days_ago, to_utc_z, utcnow
from .concurrency import run_with_retry
from .order_query_service import MAX_PAGE_SIZE
from .result_cache import DASHBOARD_CACHE_KEY

RECENT_ORDERS_LIMIT = 10

# Column -> max length; marketing_consent is handled separately
EDITABLE_TEXT_FIELDS = {
    "first_name": 128,
    "last_name": 128,
    "email": 255,
    "phone": 64,
}


class ClientUpdateError(ValueError):
    """Raised for an invalid client update body."""
    pass


def list_clients(*, page: int = 1, limit: int = 20, search: str | None = None) -> tuple[list[Client], int]:
    """Most frequent clients first. search matches name, email or phone."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    query = db.session.query(Client)
    search = (search or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Client.first_name.ilike(pattern),
            Client.last_name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.phone.ilike(pattern),
        ))

    total = query.count()
    clients = (
        query.order_by(Client.order_count.desc(), Client.created_at.desc(), Client.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return clients, total


def _order_stats(client_id: int) -> dict:
    total_orders, total_spent, average, last_order, delivery_orders, pickup_orders = (
        db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_price_cents), 0),
            func.coalesce(func.avg(Order.total_price_cents), 0),
            func.max(Order.created_at),
            func.coalesce(func.sum(case((Order.type == DELIVERY, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Order.type == PICKUP, 1), else_=0)), 0),
        )
        .filter(Order.client_id == client_id)
        .one()
    )
    return {
        "total_orders": int(total_orders or 0),
        "total_spent_cents": int(total_spent or 0),
        "avg_order_value_cents": int(round(float(average or 0))),
        "last_order_date": to_utc_z(last_order) if isinstance(last_order, datetime) else last_order,
        "delivery_orders": int(delivery_orders or 0),
        "pickup_orders": int(pickup_orders or 0),
    }


def get_client_with_details(client_id: int) -> dict | None:
    client = db.session.get(Client, client_id)
    if client is None:
        return None

    addresses = (
        db.session.query(ClientAddress)
        .filter(ClientAddress.client_id == client_id)
        .order_by(ClientAddress.created_at.desc(), ClientAddress.id.desc())
        .all()
    )
    orders = (
        db.session.query(Order)
        .filter(Order.client_id == client_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )
    return {
        "client": client.to_dict(),
        "addresses": [a.to_dict() for a in addresses],
        "orders": [o.to_dict() for o in orders],
        "stats": _order_stats(client_id),
    }


def get_top_clients(limit: int = 10) -> list[dict]:
    """Ranked by number of orders, then by spend. Clients without orders rank last."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    total_orders = func.count(Order.id).label("total_orders")
    total_spent = func.coalesce(func.sum(Order.total_price_cents), 0).label("total_spent_cents")
    rows = (
        db.session.query(
            Client,
            total_orders,
            total_spent,
            func.avg(Order.total_price_cents),
            func.max(Order.created_at),
        )
        .outerjoin(Order, Order.client_id == Client.id)
        .group_by(Client.id)
        .order_by(total_orders.desc(), total_spent.desc(), Client.id)
        .limit(limit)
        .all()
    )
    out = []
    for client, orders, spent, average, last_order in rows:
        data = client.to_dict()
        data["total_orders"] = int(orders or 0)
        data["total_spent_cents"] = int(spent or 0)
        data["avg_order_value_cents"] = int(round(float(average or 0)))
        data["last_order"] = to_utc_z(last_order) if isinstance(last_order, datetime) else last_order
        out.append(data)
    return out


def get_marketing_clients() -> list[Client]:
    """Clients who opted in and can actually be reached by email."""
    return (
        db.session.query(Client)
        .filter(Client.marketing_consent.is_(True), Client.email.isnot(None))
        .order_by(Client.order_count.desc(), Client.id)
        .all()
    )


def get_clients_stats(*, now: datetime | None = None) -> dict:
    total, with_marketing, new_this_month, avg_orders = (
        db.session.query(
            func.count(Client.id),
            func.coalesce(func.sum(case((Client.marketing_consent.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((Client.created_at >= days_ago(30, now=now or utcnow()), 1), else_=0)), 0),
            func.coalesce(func.avg(Client.order_count), 0),
        )
        .one()
    )
    return {
        "total": int(total or 0),
        "with_marketing": int(with_marketing or 0),
        "new_this_month": int(new_this_month or 0),
        "avg_orders_per_client": round(float(avg_orders or 0), 2),
    }


def _clean_update(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ClientUpdateError("body must be a JSON object")

    fields = {}
    for key, max_length in EDITABLE_TEXT_FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if value is not None and not isinstance(value, str):
            raise ClientUpdateError(f"{key} must be a string or null")
        value = (value or "").strip() or None
        if value is not None and len(value) > max_length:
            raise ClientUpdateError(f"{key} must be at most {max_length} characters")
        fields[key] = value

    if "marketing_consent" in data:
        if not isinstance(data["marketing_consent"], bool):
            raise ClientUpdateError("marketing_consent must be a boolean")
        fields["marketing_consent"] = data["marketing_consent"]

    if not fields:
        raise ClientUpdateError(
            "No updatable fields supplied (first_name, last_name, email, phone, marketing_consent)"
        )
    return fields


def update_client(client_id: int, data: dict) -> Client | None:
    """
    Apply a manual edit. Only keys present in data change.

    Returns None when the client does not exist. A later order from the
    platform may overwrite these fields again.
    """
    fields = _clean_update(data)

    def _op():
        client = db.session.get(Client, client_id)
        if client is None:
            return None
        for key, value in fields.items():
            setattr(client, key, value)
        db.session.commit()
        return client

    client = run_with_retry(_op, session=db.session)
    if client is not None:
        # Client names are embedded in the dashboard's recent orders and top clients
        result_cache.invalidate(DASHBOARD_CACHE_KEY)
    return client
