# Overview: Flask API routes for the synchronized menu; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_api_token
from ..services import menu_service
from ..services.ingestion_gateway import build_gateway
from ..services.menu_service import MenuQueryError
from .errors import ingestion_error_response

menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


@menu_bp.get("")
@require_api_token
def get_menu_route():
    menu = menu_service.get_full_menu(ttl=current_app.config["MENU_CACHE_TTL"])
    if menu is None:
        return jsonify({
            "success": False,
            "error": "Menu not found. Please sync first with POST /api/menu/sync",
        }), 404
    return jsonify({"success": True, "data": menu})


@menu_bp.get("/categories")
@require_api_token
def list_categories_route():
    return jsonify({"success": True, "data": menu_service.get_categories()})


@menu_bp.get("/categories/<int:category_id>/items")
@require_api_token
def list_category_items_route(category_id: int):
    return jsonify({"success": True, "data": menu_service.get_items_by_category(category_id)})


@menu_bp.get("/search")
@require_api_token
def search_menu_route():
    try:
        items = menu_service.search_items(request.args.get("q", ""))
    except MenuQueryError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    return jsonify({"success": True, "data": items})


@menu_bp.post("/sync")
@require_api_token
def sync_menu_route():
    try:
        stats = build_gateway().sync_menu(trigger="manual")
    except Exception as e:
        return ingestion_error_response(e, "menu sync")
    return jsonify({"success": True, "message": "Menu synchronized", "stats": stats.to_dict()})
