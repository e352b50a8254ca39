# Overview: Flask API routes for dropshipping; provider webhooks and admin import/sync.

"""
Dropshipping API routes

SECURITY: the webhook endpoint is unauthenticated but signed. The
X-Webhook-Signature header must be the hex HMAC-SHA256 of the raw request
body keyed with DROPSHIP_WEBHOOK_SECRET. Without a configured secret every
webhook is rejected unless DROPSHIP_WEBHOOK_ALLOW_UNSIGNED is set
(development only).
"""

import json

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth, require_role
from ..errors import ServiceError, error_response
from ..models.auth import ROLE_VENDOR
from ..services import dropshipping_service
from ..validation import parse_int, parse_optional_str, require_fields, require_json_object

dropshipping_bp = Blueprint("dropshipping", __name__, url_prefix="/api/dropshipping")

SIGNATURE_HEADER = "X-Webhook-Signature"


def _webhook_authorized(raw_body: bytes) -> bool:
    secret = current_app.config.get("DROPSHIP_WEBHOOK_SECRET")
    if not secret:
        if current_app.config.get("DROPSHIP_WEBHOOK_ALLOW_UNSIGNED"):
            current_app.logger.warning("Accepting unsigned dropshipping webhook (no secret configured)")
            return True
        return False
    return dropshipping_service.verify_webhook_signature(
        raw_body, request.headers.get(SIGNATURE_HEADER), secret
    )


@dropshipping_bp.post("/webhook")
def webhook_route():
    """
    Provider callback.

    Body: {"type": "order.status_changed" | "product.stock_changed" |
    "product.updated", "data": {...}}
    """
    raw_body = request.get_data()
    if not _webhook_authorized(raw_body):
        current_app.logger.warning("Rejected dropshipping webhook with invalid signature")
        return jsonify({"error": "Invalid webhook signature"}), 401

    try:
        payload = json.loads(raw_body or b"null")
    except ValueError:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        result = dropshipping_service.handle_webhook(payload)
        return jsonify({"success": True, **result}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process dropshipping webhook")
        return jsonify({"error": "Internal server error"}), 500


@dropshipping_bp.post("/import")
@require_auth
@require_role(ROLE_VENDOR)
def import_route():
    """
    Import provider products into a store.

    Body: store_id, provider, products (provider response body or a list).
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "store_id", "provider", "products")

        result = dropshipping_service.import_products(
            parse_int(data["store_id"], "store_id", minimum=1),
            str(data["provider"]),
            data["products"],
            actor=g.current_user,
        )
        return jsonify(result), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to import dropshipping products")
        return jsonify({"error": "Internal server error"}), 500


@dropshipping_bp.post("/sync")
@require_auth
@require_admin
def sync_route():
    """Copy mirrored provider stock onto local products. Admin only."""
    try:
        return jsonify(dropshipping_service.sync_inventory()), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to sync dropshipping inventory")
        return jsonify({"error": "Internal server error"}), 500


@dropshipping_bp.get("/sync-logs")
@require_auth
@require_admin
def sync_logs_route():
    """Most recent import, sync, fulfillment and webhook runs. Admin only."""
    try:
        limit = parse_int(request.args.get("limit", 50), "limit", minimum=1, maximum=500)
        logs = dropshipping_service.list_sync_logs(limit)
        return jsonify({"logs": [log.to_dict() for log in logs]}), 200
    except ServiceError as e:
        return error_response(e)


@dropshipping_bp.post("/fulfillments")
@require_auth
@require_role(ROLE_VENDOR)
def record_fulfillment_route():
    """
    Record the provider order placed for a dropshipped line.

    Body: order_line_id, external_order_id, tracking_number (optional),
    provider (optional, defaults to the product's provider).
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "order_line_id", "external_order_id")

        fulfillment = dropshipping_service.record_fulfillment(
            parse_int(data["order_line_id"], "order_line_id", minimum=1),
            str(data["external_order_id"]),
            tracking_number=parse_optional_str(data.get("tracking_number"), "tracking_number", max_length=128),
            provider=parse_optional_str(data.get("provider"), "provider", max_length=64),
            actor=g.current_user,
        )
        return jsonify({"fulfillment": fulfillment.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record dropshipping fulfillment")
        return jsonify({"error": "Internal server error"}), 500


@dropshipping_bp.get("/fulfillments")
@require_auth
@require_admin
def list_fulfillments_route():
    """Provider orders, newest first. Query params: order_id (optional). Admin only."""
    try:
        order_id = request.args.get("order_id")
        order_id = parse_int(order_id, "order_id", minimum=1) if order_id else None
        fulfillments = dropshipping_service.list_fulfillments(order_id)
        return jsonify({"fulfillments": [f.to_dict() for f in fulfillments]}), 200
    except ServiceError as e:
        return error_response(e)
