# Overview: Flask API routes for in-app notifications.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError, error_response
from ..services import notification_service
from ..validation import parse_bool, parse_int

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Query params: limit (default 50), unread_only (default false)."""
    try:
        limit = parse_int(request.args.get("limit", "50"), "limit", minimum=1, maximum=200)
        unread_only = parse_bool(request.args.get("unread_only", "false"), "unread_only")
    except ServiceError as e:
        return error_response(e)

    notifications = notification_service.list_notifications(
        g.current_user.id, limit=limit, unread_only=unread_only
    )
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": notification_service.unread_count(g.current_user.id),
    }), 200


@notifications_bp.get("/unread-count")
@require_auth
def unread_count_route():
    return jsonify({"unread_count": notification_service.unread_count(g.current_user.id)}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_as_read(notification_id, g.current_user.id)
        return jsonify({"notification": notification.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    updated = notification_service.mark_all_as_read(g.current_user.id)
    return jsonify({"updated": updated}), 200


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    try:
        notification_service.delete_notification(notification_id, g.current_user.id)
        return jsonify({"message": "Notification deleted"}), 200
    except ServiceError as e:
        return error_response(e)
