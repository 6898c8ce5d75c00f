# Overview: Flask API routes for the ingestion event log.

from flask import Blueprint, jsonify, request

from ..decorators import require_api_token
from ..extensions import db
from ..services import event_log_service

logs_bp = Blueprint("logs", __name__, url_prefix="/api/logs")


@logs_bp.get("")
@require_api_token
def list_logs_route():
    page = max(1, request.args.get("page", default=1, type=int))
    limit = request.args.get("limit", default=50, type=int)
    limit = max(1, min(limit, 500))

    events = event_log_service.list_events(
        db.session,
        page=page,
        limit=limit,
        event_type=request.args.get("event_type"),
    )
    return jsonify({"success": True, "data": [e.to_dict() for e in events]})
