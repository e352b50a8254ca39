# Overview: Flask API routes for the shopper cart; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import cart_service
from ..validation import parse_int, parse_positive_int, require_fields, require_json_object

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    """Current user's cart with catalog prices and subtotal."""
    return jsonify(cart_service.cart_summary(g.current_user.id)), 200


@cart_bp.post("/items")
@require_auth
def add_item_route():
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "product_id")

        item = cart_service.add_to_cart(
            g.current_user.id,
            parse_positive_int(data["product_id"], "product_id"),
            parse_positive_int(data.get("quantity", 1), "quantity"),
        )
        return jsonify({"item": item.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/items/<int:product_id>")
@require_auth
def update_item_route(product_id: int):
    """Set quantity; 0 removes the line."""
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "quantity")

        item = cart_service.update_cart_item(
            g.current_user.id,
            product_id,
            parse_int(data["quantity"], "quantity", minimum=0),
        )
        return jsonify({"item": item.to_dict() if item else None}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:product_id>")
@require_auth
def remove_item_route(product_id: int):
    if not cart_service.remove_from_cart(g.current_user.id, product_id):
        return jsonify({"error": "Item not in cart"}), 404
    return jsonify({"message": "Item removed"}), 200


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    removed = cart_service.clear_cart(g.current_user.id)
    return jsonify({"removed": removed}), 200
