# Overview: GloriaFood push delivery endpoint.

from flask import Blueprint, jsonify, request

from ..services.ingestion_gateway import build_gateway
from .errors import ingestion_error_response

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhook")


@webhooks_bp.post("/orders")
def receive_orders_route():
    """
    Authenticated by the master key in the raw Authorization header (no
    Bearer prefix), exactly as the platform sends it.
    """
    payload = request.get_json(silent=True)
    try:
        result = build_gateway().receive_push(payload, request.headers.get("Authorization"))
    except Exception as e:
        return ingestion_error_response(e, "order push")
    return jsonify(result.to_dict())
