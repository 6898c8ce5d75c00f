# Overview: Flask API routes for ingested orders; parses input and returns JSON responses.

import math

from flask import Blueprint, jsonify, request

from ..decorators import require_api_token
from ..services import order_query_service
from ..services.ingestion_gateway import build_gateway
from ..services.order_query_service import OrderQueryError
from .errors import ingestion_error_response

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_api_token
def list_orders_route():
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)
    limit = max(1, min(limit, order_query_service.MAX_PAGE_SIZE))
    page = max(1, page)

    try:
        orders, total = order_query_service.list_orders(
            page=page,
            limit=limit,
            status=request.args.get("status"),
            order_type=request.args.get("type"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            restaurant_id=request.args.get("restaurant_id", type=int),
        )
    except OrderQueryError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    return jsonify({
        "success": True,
        "data": [o.to_dict() for o in orders],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    })


@orders_bp.get("/<int:order_id>")
@require_api_token
def get_order_route(order_id: int):
    details = order_query_service.get_order_with_details(order_id)
    if details is None:
        return jsonify({"success": False, "error": "Order not found"}), 404
    return jsonify({"success": True, "data": details})


@orders_bp.put("/<int:order_id>/status")
@require_api_token
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = order_query_service.update_order_status(order_id, data.get("status"))
    except OrderQueryError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    if order is None:
        return jsonify({"success": False, "error": "Order not found"}), 404
    return jsonify({"success": True, "message": "Status updated", "data": order.to_dict()})


@orders_bp.post("/poll")
@require_api_token
def poll_orders_route():
    """Pull pending orders from the platform (alternative to the webhook)."""
    try:
        result = build_gateway().pull_orders()
    except Exception as e:
        return ingestion_error_response(e, "order poll")
    return jsonify(result.to_dict())
