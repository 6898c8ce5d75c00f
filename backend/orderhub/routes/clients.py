# Overview: Flask API routes for clients known from ingested orders.

import math

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_token
from ..services import client_service
from ..services.client_service import ClientUpdateError

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_api_token
def list_clients_route():
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", default=20, type=int)
    limit = max(1, min(limit, client_service.MAX_PAGE_SIZE))
    page = max(1, page)

    clients, total = client_service.list_clients(page=page, limit=limit, search=request.args.get("search"))
    return jsonify({
        "success": True,
        "data": [c.to_dict() for c in clients],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    })


@clients_bp.get("/top")
@require_api_token
def top_clients_route():
    limit = request.args.get("limit", default=10, type=int)
    return jsonify({"success": True, "data": client_service.get_top_clients(limit)})


@clients_bp.get("/marketing")
@require_api_token
def marketing_clients_route():
    clients = client_service.get_marketing_clients()
    return jsonify({"success": True, "data": [c.to_dict() for c in clients]})


@clients_bp.get("/stats")
@require_api_token
def clients_stats_route():
    return jsonify({"success": True, "data": client_service.get_clients_stats()})


@clients_bp.get("/<int:client_id>")
@require_api_token
def get_client_route(client_id: int):
    details = client_service.get_client_with_details(client_id)
    if details is None:
        return jsonify({"success": False, "error": "Client not found"}), 404
    return jsonify({"success": True, "data": details})


@clients_bp.put("/<int:client_id>")
@require_api_token
def update_client_route(client_id: int):
    data = request.get_json(silent=True)
    try:
        client = client_service.update_client(client_id, data if data is not None else {})
    except ClientUpdateError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    if client is None:
        return jsonify({"success": False, "error": "Client not found"}), 404
    current_app.logger.info("Client %s updated manually", client_id)
    return jsonify({"success": True, "message": "Client updated", "data": client.to_dict()})
