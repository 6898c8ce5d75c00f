# Overview: Flask API routes for dashboard statistics and sales reports.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_token
from ..services import stats_service

stats_bp = Blueprint("stats", __name__, url_prefix="/api/stats")

MAX_REPORT_DAYS = 365
MAX_REPORT_LIMIT = 100


@stats_bp.get("/dashboard")
@require_api_token
def dashboard_route():
    stats = stats_service.get_dashboard_stats(ttl=current_app.config["DASHBOARD_CACHE_TTL"])
    return jsonify({"success": True, "data": stats})


@stats_bp.get("/sales/daily")
@require_api_token
def sales_daily_route():
    days = request.args.get("days", default=30, type=int)
    days = max(1, min(days, MAX_REPORT_DAYS))
    return jsonify({"success": True, "data": stats_service.sales_by_day(days)})


@stats_bp.get("/sales/hourly")
@require_api_token
def sales_hourly_route():
    return jsonify({"success": True, "data": stats_service.sales_by_hour()})


@stats_bp.get("/products/top")
@require_api_token
def top_products_route():
    limit = request.args.get("limit", default=10, type=int)
    limit = max(1, min(limit, MAX_REPORT_LIMIT))
    return jsonify({"success": True, "data": stats_service.top_products(limit)})


@stats_bp.get("/payments")
@require_api_token
def payments_route():
    return jsonify({"success": True, "data": stats_service.payment_stats()})


@stats_bp.get("/delivery-zones")
@require_api_token
def delivery_zones_route():
    return jsonify({"success": True, "data": stats_service.delivery_zone_stats()})
