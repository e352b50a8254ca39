# Overview: Flask API routes for orders and vendor fulfillment; parses input and returns JSON responses.

"""
Order API routes

Checkout, customer order history, vendor order slices and per-line
fulfillment updates.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import order_service
from ..validation import parse_bool, parse_cart_lines, parse_optional_str, require_fields, require_json_object

orders_bp = Blueprint("orders", __name__, url_prefix="/api")


@orders_bp.post("/orders")
@require_auth
def place_order_route():
    """
    Place an order.

    Body:
        lines: [{product_id, quantity}, ...]   (or from_cart: true)
        shipping_address: {full_name, street, city, state, zip_code, country, phone?}
        billing_address: optional, defaults to shipping_address
        payment_method: optional, defaults to "card"

    Prices are taken from the catalog; any client-side price is ignored.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "shipping_address")

        payment_method = data.get("payment_method") or "card"
        from_cart = parse_bool(data.get("from_cart", False), "from_cart")

        if from_cart:
            order = order_service.checkout_cart(
                g.current_user.id,
                data["shipping_address"],
                data.get("billing_address"),
                payment_method,
            )
        else:
            order = order_service.place_order(
                g.current_user.id,
                parse_cart_lines(data.get("lines")),
                data["shipping_address"],
                data.get("billing_address"),
                payment_method,
            )

        return jsonify({"order": order.to_dict(include_lines=True)}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/orders")
@require_auth
def list_orders_route():
    """Current user's orders, newest first."""
    orders = order_service.list_customer_orders(g.current_user.id)
    return jsonify({"orders": [o.to_dict(include_lines=True) for o in orders]}), 200


@orders_bp.get("/orders/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Visible to the customer, admins and vendors with a line on the order."""
    try:
        order = order_service.get_order(order_id, actor=g.current_user)
        return jsonify({"order": order.to_dict(include_lines=True)}), 200
    except ServiceError as e:
        return error_response(e)


@orders_bp.post("/orders/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(order_id, actor=g.current_user)
        return jsonify({"order": order.to_dict(include_lines=True)}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/orders/<int:order_id>/payment-status")
@require_auth
def update_payment_status_route(order_id: int):
    """Record a payment outcome: pending, paid, failed or refunded."""
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "payment_status")

        order = order_service.update_payment_status(
            order_id, str(data["payment_status"]).strip().lower(), actor=g.current_user
        )
        return jsonify({"order": order.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Vendor fulfillment
# ---------------------------------------------------------------------------

@orders_bp.get("/vendor/stores/<int:store_id>/orders")
@require_auth
@require_role(ROLE_VENDOR)
def vendor_orders_route(store_id: int):
    """This store's lines grouped per order, with vendor subtotal and shipping."""
    try:
        orders = order_service.get_vendor_orders(store_id, actor=g.current_user)
        return jsonify({"orders": orders}), 200
    except ServiceError as e:
        return error_response(e)


@orders_bp.put("/order-lines/<int:line_id>/status")
@require_auth
@require_role(ROLE_VENDOR)
def update_line_status_route(line_id: int):
    """
    Advance one line's fulfillment status.

    Body: status (pending|processing|shipped|delivered|failed),
    tracking_number (optional).
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "status")

        line = order_service.update_line_status(
            line_id,
            str(data["status"]).strip().lower(),
            tracking_number=parse_optional_str(data.get("tracking_number"), "tracking_number", max_length=128),
            actor=g.current_user,
        )
        return jsonify({
            "line": line.to_dict(),
            "order_status": line.order.status,
        }), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order line status")
        return jsonify({"error": "Internal server error"}), 500
