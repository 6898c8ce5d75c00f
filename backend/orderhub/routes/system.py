# backend/orderhub/routes/system.py
"""
API index, health and version endpoints.

The health check reports on the store and the in-process result cache, and
flags menu sync leases that were never released.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db, result_cache
from ..models import IngestionEvent, Menu, MenuSyncLease, Order
from orderhub.time_utils import utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


@system_bp.get("/")
def index():
    return {
        "name": "OrderHub Ingestion API",
        "version": API_VERSION,
        "status": "running",
        "endpoints": {
            "webhook": "POST /webhook/orders",
            "orders": "GET /api/orders",
            "poll": "POST /api/orders/poll",
            "menu": "GET /api/menu",
            "menu_sync": "POST /api/menu/sync",
            "clients": "GET /api/clients",
            "stats": "GET /api/stats/dashboard",
            "reports": "GET /api/stats/sales/daily",
            "logs": "GET /api/logs",
        },
    }


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        menu_count = db.session.query(Menu).count()
        event_count = db.session.query(IngestionEvent).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "menus": menu_count,
                "ingestion_events": event_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_menu_sync_health() -> dict:
    """A lease past its expiry means a sync died holding it."""
    try:
        now = utcnow()
        active = db.session.query(MenuSyncLease).filter(MenuSyncLease.expires_at >= now).count()
        stale = db.session.query(MenuSyncLease).filter(MenuSyncLease.expires_at < now).count()
        last_synced = db.session.query(db.func.max(Menu.synced_at)).scalar()
    except Exception:
        current_app.logger.exception("Menu sync health check failed")
        return {"status": "unhealthy", "error": "Menu sync state unavailable"}

    details = {
        "syncs_in_progress": active,
        "stale_leases": stale,
        "last_synced_at": last_synced.isoformat() + "Z" if last_synced else None,
    }
    if stale:
        return {"status": "degraded", "warning": f"{stale} stale menu sync lease(s)", "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    menu_sync_health = check_menu_sync_health()

    all_checks = [database_health, menu_sync_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "ok"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "menu_sync": menu_sync_health,
            "result_cache": {"status": "healthy", "details": result_cache.stats()},
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    import sys

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
