# Overview: Flask API routes for vendor inventory; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import catalog_service, inventory_service
from ..validation import (
    ValidationError,
    parse_bool,
    parse_int,
    parse_optional_str,
    require_fields,
    require_json_object,
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")


def _managed_store(store_id: int):
    store = catalog_service.get_store(store_id)
    catalog_service.ensure_can_manage_store(store, g.current_user)
    return store


@inventory_bp.get("/stores/<int:store_id>/stock-levels")
@require_auth
@require_role(ROLE_VENDOR)
def stock_levels_route(store_id: int):
    try:
        _managed_store(store_id)
        return jsonify({"products": inventory_service.get_stock_levels(store_id)}), 200
    except ServiceError as e:
        return error_response(e)


@inventory_bp.post("/products/<int:product_id>/stock")
@require_auth
@require_role(ROLE_VENDOR)
def adjust_stock_route(product_id: int):
    """
    Manual stock update.

    Body: quantity (>= 0), operation (set|add|subtract), reason (optional).
    Subtracting more than is on hand returns 409.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "quantity", "operation")

        product = inventory_service.adjust_stock(
            product_id,
            parse_int(data["quantity"], "quantity", minimum=0),
            str(data["operation"]).strip().lower(),
            reason=parse_optional_str(data.get("reason"), "reason", max_length=255),
            actor=g.current_user,
        )
        return jsonify({"product": product.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/inventory/bulk")
@require_auth
@require_role(ROLE_VENDOR)
def bulk_adjust_route():
    """Body: updates [{product_id, quantity, operation, reason?}, ...]."""
    try:
        data = require_json_object(request.get_json(silent=True))
        updates = data.get("updates")
        if not isinstance(updates, list) or not updates:
            raise ValidationError("updates must be a non-empty list")

        result = inventory_service.bulk_adjust_stock(updates, actor=g.current_user)
        return jsonify(result), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply bulk stock update")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stores/<int:store_id>/inventory-alerts")
@require_auth
@require_role(ROLE_VENDOR)
def list_alerts_route(store_id: int):
    """Open alerts by default; include_resolved=true for history."""
    try:
        _managed_store(store_id)
        include_resolved = parse_bool(request.args.get("include_resolved", "false"), "include_resolved")
        alerts = inventory_service.list_alerts(store_id, include_resolved=include_resolved)
        return jsonify({"alerts": [a.to_dict() for a in alerts]}), 200
    except ServiceError as e:
        return error_response(e)


@inventory_bp.post("/inventory-alerts/<int:alert_id>/resolve")
@require_auth
@require_role(ROLE_VENDOR)
def resolve_alert_route(alert_id: int):
    try:
        alert = inventory_service.resolve_alert(alert_id, actor=g.current_user)
        return jsonify({"alert": alert.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resolve inventory alert")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/inventory-history")
@require_auth
@require_role(ROLE_VENDOR)
def inventory_history_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        catalog_service.ensure_can_manage_store(product.store, g.current_user)

        limit = parse_int(request.args.get("limit", "50"), "limit", minimum=1, maximum=500)
        logs = inventory_service.get_inventory_history(product_id, limit=limit)
        return jsonify({"history": [log.to_dict() for log in logs]}), 200
    except ServiceError as e:
        return error_response(e)
