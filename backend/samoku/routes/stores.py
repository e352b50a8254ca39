# Overview: Flask API routes for stores and products; parses input and returns JSON responses.

"""
Store and catalog API routes

Browsing is public; vendors manage their own stores and products, admins
approve stores and set commission rates.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import optional_user, require_admin, require_auth, require_role
from ..errors import ServiceError, UnauthorizedResponseError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import catalog_service
from ..validation import (
    parse_bool,
    parse_int,
    parse_optional_str,
    parse_price_cents,
    require_fields,
    require_json_object,
)

stores_bp = Blueprint("stores", __name__, url_prefix="/api")


@stores_bp.get("/stores")
def list_stores_route():
    """
    List stores.

    Anonymous callers and customers see approved stores only. Admins see all
    stores; vendors also see their own unapproved ones.
    """
    user = optional_user()
    if user is not None and user.is_admin:
        stores = catalog_service.list_stores()
    else:
        stores = [
            s for s in catalog_service.list_stores()
            if s.is_approved or (user is not None and s.owner_user_id == user.id)
        ]
    return jsonify({"stores": [s.to_dict() for s in stores]}), 200


@stores_bp.post("/stores")
@require_auth
@require_role(ROLE_VENDOR)
def create_store_route():
    """
    Create a store owned by the current user.

    New stores start unapproved and are hidden from the storefront.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "name")

        store = catalog_service.create_store(
            g.current_user,
            data["name"],
            parse_optional_str(data.get("description"), "description"),
        )
        return jsonify({"store": store.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/stores/<int:store_id>")
def get_store_route(store_id: int):
    try:
        store = catalog_service.get_store(store_id)
        return jsonify({"store": store.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@stores_bp.post("/stores/<int:store_id>/approve")
@require_auth
@require_admin
def approve_store_route(store_id: int):
    """Approve (or with {"approved": false} un-approve) a store. Admin only."""
    try:
        data = require_json_object(request.get_json(silent=True))
        approved = parse_bool(data.get("approved", True), "approved")

        store = catalog_service.approve_store(store_id, approved)
        return jsonify({"store": store.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.put("/stores/<int:store_id>/commission-rate")
@require_auth
@require_admin
def set_commission_rate_route(store_id: int):
    """
    Set a store's commission rate in basis points (500 = 5.0%).

    Only affects future sales; existing order lines keep their snapshot.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "commission_rate_bps")
        rate_bps = parse_int(data["commission_rate_bps"], "commission_rate_bps", minimum=0, maximum=10_000)

        store = catalog_service.set_commission_rate(store_id, rate_bps)
        return jsonify({"store": store.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set commission rate")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@stores_bp.get("/products")
def list_products_route():
    """
    Storefront product listing.

    Query params: store_id (optional). Inactive products are only listed for
    the store's manager with include_inactive=true.
    """
    try:
        store_id = request.args.get("store_id")
        store_id = parse_int(store_id, "store_id", minimum=1) if store_id else None

        include_inactive = False
        if store_id is not None and request.args.get("include_inactive"):
            include_inactive = parse_bool(request.args["include_inactive"], "include_inactive")
            if include_inactive:
                user = optional_user()
                if user is None:
                    raise UnauthorizedResponseError("Authentication required to view inactive products")
                catalog_service.ensure_can_manage_store(catalog_service.get_store(store_id), user)

        products = catalog_service.list_products(store_id, include_inactive=include_inactive)
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.post("/products")
@require_auth
@require_role(ROLE_VENDOR)
def create_product_route():
    """
    Create a product in one of the caller's stores.

    Body: store_id, sku, name, price_cents, stock_quantity (optional),
    description, category, images, low_stock_threshold.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "store_id", "sku", "name", "price_cents")

        threshold = data.get("low_stock_threshold")
        product = catalog_service.create_product(
            parse_int(data["store_id"], "store_id", minimum=1),
            sku=str(data["sku"]),
            name=str(data["name"]),
            price_cents=parse_price_cents(data["price_cents"]),
            stock_quantity=parse_int(data.get("stock_quantity", 0), "stock_quantity", minimum=0),
            description=parse_optional_str(data.get("description"), "description"),
            category=parse_optional_str(data.get("category"), "category", max_length=120),
            images=data.get("images"),
            low_stock_threshold=(
                parse_int(threshold, "low_stock_threshold", minimum=0) if threshold is not None else None
            ),
            actor=g.current_user,
        )
        return jsonify({"product": product.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@stores_bp.patch("/products/<int:product_id>")
@require_auth
@require_role(ROLE_VENDOR)
def update_product_route(product_id: int):
    """
    Patch catalog fields. Stock changes go through POST /api/products/<id>/stock.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        product = catalog_service.update_product(product_id, data, actor=g.current_user)
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500
