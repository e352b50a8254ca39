# Overview: Flask API routes for the shopper wishlist; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import wishlist_service
from ..validation import parse_positive_int, require_fields, require_json_object

wishlist_bp = Blueprint("wishlist", __name__, url_prefix="/api/wishlist")


@wishlist_bp.get("")
@require_auth
def get_wishlist_route():
    user_id = g.current_user.id
    items = wishlist_service.get_wishlist(user_id)
    return jsonify({
        "items": [item.to_dict() for item in items],
        "count": wishlist_service.wishlist_count(user_id),
    }), 200


@wishlist_bp.post("/items")
@require_auth
def add_item_route():
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "product_id")

        item = wishlist_service.add_to_wishlist(
            g.current_user.id,
            parse_positive_int(data["product_id"], "product_id"),
        )
        return jsonify({"item": item.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add wishlist item")
        return jsonify({"error": "Internal server error"}), 500


@wishlist_bp.get("/items/<int:product_id>")
@require_auth
def check_item_route(product_id: int):
    return jsonify({"in_wishlist": wishlist_service.is_in_wishlist(g.current_user.id, product_id)}), 200


@wishlist_bp.delete("/items/<int:product_id>")
@require_auth
def remove_item_route(product_id: int):
    if not wishlist_service.remove_from_wishlist(g.current_user.id, product_id):
        return jsonify({"error": "Item not in wishlist"}), 404
    return jsonify({"message": "Item removed"}), 200


@wishlist_bp.delete("")
@require_auth
def clear_wishlist_route():
    removed = wishlist_service.clear_wishlist(g.current_user.id)
    return jsonify({"removed": removed}), 200
